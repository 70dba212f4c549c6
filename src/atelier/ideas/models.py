"""
Idea and exploration-thread records.

The scheduler is the only writer. Records reference each other by id: an
Idea lists its thread ids, a thread names its idea_id, and results name
their thread_id.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


def _new_id() -> str:
    return str(uuid.uuid4())[:12]


def _now() -> str:
    return datetime.now().isoformat()


# =============================================================================
# STATUS CONSTANTS
# =============================================================================


class IdeaStatus:
    """Idea lifecycle, derived from its threads (see IdeaScheduler)."""

    PENDING = "pending"
    EXPLORING = "exploring"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class ThreadStatus:
    """Thread lifecycle: active <-> paused, active -> completed | abandoned."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    TERMINAL = frozenset({COMPLETED, ABANDONED})


class ResultKind:
    SKETCH = "sketch"
    CONCEPT = "concept"
    STYLE = "style"
    IMAGE = "image"


class FeedbackSource:
    SELF = "self"
    USER = "user"
    CRITIC = "critic"

    ALL = ("self", "user", "critic")


# =============================================================================
# RECORDS
# =============================================================================


@dataclass(frozen=True)
class ThreadResult:
    """One artifact produced by a pipeline step. Never modified once appended."""

    thread_id: str
    kind: str  # ResultKind
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)


@dataclass
class Feedback:
    """A rating and comment attached to an idea."""

    text: str
    rating: float
    source: str = FeedbackSource.USER
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)


@dataclass
class ExplorationThread:
    """
    One line of exploration for an idea.

    sequence is the scheduler's creation counter; it breaks admission ties
    where ISO timestamps could collide.
    """

    idea_id: str
    direction: str
    description: str = ""
    status: str = ThreadStatus.ACTIVE
    progress: float = 0.0
    results: list[ThreadResult] = field(default_factory=list)
    sequence: int = 0
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in ThreadStatus.TERMINAL

    def result_of(self, kind: str) -> ThreadResult | None:
        """Most recent result of the given kind, if any."""
        return next((r for r in reversed(self.results) if r.kind == kind), None)

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Idea:
    """A creative idea submitted for exploration."""

    title: str
    description: str
    style: str = ""
    theme: str = ""
    priority: int = 1
    status: str = IdeaStatus.PENDING
    thread_ids: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    inspirations: list[str] = field(default_factory=list)
    feedback: list[Feedback] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def touch(self) -> None:
        self.updated_at = _now()

    def to_dict(self) -> dict:
        return asdict(self)
