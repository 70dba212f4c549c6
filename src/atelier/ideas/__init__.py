"""Idea store and exploration-thread scheduler."""

from .models import (
    ExplorationThread,
    Feedback,
    FeedbackSource,
    Idea,
    IdeaStatus,
    ResultKind,
    ThreadResult,
    ThreadStatus,
)
from .scheduler import IdeaScheduler
