"""
Preference-learning data models.

Ratings and preferences are plain dataclasses with to_dict/from_dict so the
PreferenceStore can round-trip them through JSON. Timestamps are ISO strings,
matching the rest of the engine.
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


class RatingOutcome:
    """Result of one side of a pairwise comparison."""

    WON = "won"
    LOST = "lost"


# =============================================================================
# CANDIDATES
# =============================================================================


@dataclass
class StyleCandidate:
    """
    A competing creative artifact (usually a style result) to choose between.

    tags drive preference alignment; content is whatever the producer
    generated and is carried through untouched.
    """

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    name: str = ""
    tags: list[str] = field(default_factory=list)
    content: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# RATING HISTORY
# =============================================================================


@dataclass
class StyleRating:
    """One history entry: the rating an artifact ended at after a comparison."""

    style_id: str
    rating: float
    outcome: str  # RatingOutcome
    opponent_id: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StyleRating":
        return cls(
            style_id=data["style_id"],
            rating=float(data["rating"]),
            outcome=data.get("outcome", RatingOutcome.WON),
            opponent_id=data.get("opponent_id", ""),
            timestamp=data.get("timestamp") or datetime.now().isoformat(),
        )


# =============================================================================
# LEARNED PREFERENCES
# =============================================================================


@dataclass
class StylePreference:
    """
    Learned affinity for an attribute (tag).

    weight in [-1, 1]: negative = disliked, positive = liked.
    confidence in [0, 1]: grows with every comparison that moves the weight.
    examples: the most recent artifact ids that contributed, newest last.
    """

    attribute: str
    weight: float = 0.0
    confidence: float = 0.0
    examples: list[str] = field(default_factory=list)
    last_updated: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def strength(self) -> float:
        """Ranking key for reports: confident, strong preferences first."""
        return self.confidence * abs(self.weight)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StylePreference":
        return cls(
            attribute=data["attribute"],
            weight=float(data.get("weight", 0.0)),
            confidence=float(data.get("confidence", 0.0)),
            examples=list(data.get("examples", [])),
            last_updated=data.get("last_updated") or datetime.now().isoformat(),
        )
