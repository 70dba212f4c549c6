"""
Multi-agent collaboration.

CollaborationCoordinator runs named sessions among a subset of the role agents,
using one of seven patterns (patterns.py). The Director's fixed pipeline runs
over the MessageBus directly and needs no coordinator.
"""
from .collaboration import (
    CollaborationCoordinator,
    CollaborationSession,
    SessionMetrics,
    SessionState,
)
from .patterns import PATTERN_RUNNERS, best_specialist
