"""
PreferenceEngine -- ELO ratings plus learned tag preferences for choosing
between competing creative artifacts.

Two signals feed selection:
  - Pairwise outcomes (update_ratings): standard ELO with K=32, seeded at 1400.
    Tags unique to the winner gain weight, tags unique to the loser lose it.
  - Exploration: rarely picked candidates get a bonus that decays with
    1/sqrt(access_count), stale candidates get a recency bonus, and once a
    day the winner is drawn at random from the top three.

Usage:
    engine = PreferenceEngine(PreferenceConfig(), store=PreferenceStore(path))
    await engine.load()
    await engine.update_ratings("style_a", "style_b", ["ink", "muted"], ["neon"])
    best = engine.select_best_style([cand_a, cand_b, cand_c])
    report = engine.generate_report()
"""

import asyncio
import logging
import math
import random
from collections.abc import Callable
from datetime import datetime, timedelta

from ..config import PreferenceConfig
from ..errors import NoCandidatesError
from .models import RatingOutcome, StyleCandidate, StylePreference, StyleRating
from .store import PreferenceSnapshot, PreferenceStore

logger = logging.getLogger(__name__)

EXPLORATION_POOL = 3
RECENCY_HORIZON_DAYS = 30


def expected_score(rating_a: float, rating_b: float) -> float:
    """Probability that A beats B under the ELO model."""
    return 1.0 / (1.0 + 10 ** ((rating_b - rating_a) / 400.0))


class PreferenceEngine:
    """
    Owns artifact ratings, rating history, tag preferences and access counts.

    Only update_ratings() and select_best_style() mutate state. Persistence
    is best-effort: failures are logged and the in-memory state stays
    authoritative.
    """

    def __init__(
        self,
        config: PreferenceConfig | None = None,
        store: PreferenceStore | None = None,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
    ):
        self.config = config or PreferenceConfig()
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()

        self._ratings: dict[str, float] = {}
        self._history: list[StyleRating] = []
        self._preferences: dict[str, StylePreference] = {}
        self._access_counts: dict[str, int] = {}
        self._tags: dict[str, list[str]] = {}
        self._last_exploration = self._clock()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Restore ratings, history and preferences from the store, if any."""
        if self._store is None:
            return
        try:
            snapshot = await asyncio.to_thread(self._store.load)
        except Exception as e:
            logger.warning(f"[Preference] Failed to load state, starting fresh: {e}")
            return
        self._ratings.update(snapshot.ratings)
        self._history.extend(snapshot.history)
        for pref in snapshot.preferences:
            self._preferences[pref.attribute] = pref

    async def _persist(self) -> None:
        if self._store is None or not self.config.persist:
            return
        snapshot = PreferenceSnapshot(
            ratings=dict(self._ratings),
            history=list(self._history),
            preferences=list(self._preferences.values()),
        )
        try:
            await asyncio.to_thread(self._store.save, snapshot)
        except Exception as e:
            logger.warning(f"[Preference] Failed to persist state: {e}")

    # -------------------------------------------------------------------------
    # Ratings
    # -------------------------------------------------------------------------

    def get_rating(self, style_id: str) -> float:
        """Current rating, or the seed rating for an unseen artifact."""
        return self._ratings.get(style_id, self.config.initial_rating)

    def get_access_count(self, style_id: str) -> int:
        return self._access_counts.get(style_id, 0)

    def register_style(self, candidate: StyleCandidate) -> None:
        """Remember a candidate's tags so later comparisons can learn from them."""
        if candidate.tags:
            self._tags[candidate.id] = list(candidate.tags)

    async def update_ratings(
        self,
        winner_id: str,
        loser_id: str,
        winner_tags: list[str] | None = None,
        loser_tags: list[str] | None = None,
    ) -> tuple[float, float]:
        """
        Record that winner_id was preferred over loser_id.

        Returns the new (winner, loser) ratings. Tags default to those seen via
        register_style() or select_best_style().
        """
        r_winner = self.get_rating(winner_id)
        r_loser = self.get_rating(loser_id)
        k = self.config.k_factor

        new_winner = r_winner + k * (1 - expected_score(r_winner, r_loser))
        new_loser = r_loser + k * (0 - expected_score(r_loser, r_winner))
        self._ratings[winner_id] = new_winner
        self._ratings[loser_id] = new_loser

        now = self._clock().isoformat()
        self._history.append(
            StyleRating(winner_id, new_winner, RatingOutcome.WON, loser_id, timestamp=now)
        )
        self._history.append(
            StyleRating(loser_id, new_loser, RatingOutcome.LOST, winner_id, timestamp=now)
        )

        if winner_tags is not None:
            self._tags[winner_id] = list(winner_tags)
        if loser_tags is not None:
            self._tags[loser_id] = list(loser_tags)
        self._learn_from_comparison(winner_id, loser_id)

        logger.info(
            f"[Preference] {winner_id} beat {loser_id}: "
            f"{r_winner:.0f}->{new_winner:.0f} / {r_loser:.0f}->{new_loser:.0f}"
        )
        await self._persist()
        return new_winner, new_loser

    def _learn_from_comparison(self, winner_id: str, loser_id: str) -> None:
        winner_tags = set(self._tags.get(winner_id, []))
        loser_tags = set(self._tags.get(loser_id, []))
        step = self.config.tag_learning_rate

        for tag in sorted(winner_tags - loser_tags):
            self._adjust_preference(tag, step, winner_id)
        for tag in sorted(loser_tags - winner_tags):
            self._adjust_preference(tag, -step, loser_id)

    def _adjust_preference(self, attribute: str, adjustment: float, example_id: str) -> None:
        pref = self._preferences.get(attribute)
        if pref is None:
            pref = StylePreference(attribute=attribute)
            self._preferences[attribute] = pref

        pref.weight = max(-1.0, min(1.0, pref.weight + adjustment))
        pref.confidence = min(1.0, pref.confidence + abs(adjustment) * 0.1)
        if example_id in pref.examples:
            pref.examples.remove(example_id)
        pref.examples.append(example_id)
        pref.examples = pref.examples[-self.config.max_examples :]
        pref.last_updated = self._clock().isoformat()

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def select_best_style(self, candidates: list[StyleCandidate]) -> StyleCandidate:
        """
        Pick the candidate with the best exploration-adjusted score.

        A single candidate is returned as-is with no state change. Raises
        NoCandidatesError for an empty list.
        """
        if not candidates:
            raise NoCandidatesError("No candidate styles provided")
        if len(candidates) == 1:
            return candidates[0]

        for candidate in candidates:
            self.register_style(candidate)

        scored = sorted(
            ((self.score_candidate(c), c) for c in candidates),
            key=lambda pair: pair[0],
            reverse=True,
        )
        best = scored[0][1]
        self._access_counts[best.id] = self.get_access_count(best.id) + 1

        now = self._clock()
        interval = timedelta(hours=self.config.exploration_interval_hours)
        if now - self._last_exploration > interval:
            pool = scored[: min(EXPLORATION_POOL, len(scored))]
            self._last_exploration = now
            choice = pool[self._rng.randrange(len(pool))][1]
            logger.info(f"[Preference] Forced exploration picked {choice.id} over {best.id}")
            return choice

        logger.debug(f"[Preference] Selected {best.id} from {len(candidates)} candidates")
        return best

    def score_candidate(self, candidate: StyleCandidate) -> float:
        """rating + (exploration + recency) * seed + preference alignment."""
        seed = self.config.initial_rating
        return (
            self.get_rating(candidate.id)
            + self._exploration_bonus(candidate.id) * seed
            + self._recency_bonus(candidate.id) * seed
            + self.preference_alignment(candidate.tags or self._tags.get(candidate.id, []))
        )

    def _exploration_bonus(self, style_id: str) -> float:
        count = self.get_access_count(style_id)
        if count == 0:
            return self.config.exploration_bonus
        return self.config.exploration_bonus / math.sqrt(count)

    def _recency_bonus(self, style_id: str) -> float:
        last = next((h for h in reversed(self._history) if h.style_id == style_id), None)
        if last is None:
            return 0.0
        try:
            elapsed = self._clock() - datetime.fromisoformat(last.timestamp)
        except ValueError:
            return 0.0
        days = max(0.0, elapsed.total_seconds() / 86400)
        return self.config.recency_weight * min(days, RECENCY_HORIZON_DAYS) / RECENCY_HORIZON_DAYS

    def preference_alignment(self, tags: list[str]) -> float:
        """Confidence-weighted mean weight of the tags present, scaled to 100."""
        total_confidence = sum(p.confidence for p in self._preferences.values())
        if total_confidence == 0:
            return 0.0
        present = set(tags)
        score = sum(
            p.weight * p.confidence
            for p in self._preferences.values()
            if p.attribute in present
        )
        return score / total_confidence * 100

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def top_rated(self, n: int = 10) -> list[tuple[str, float]]:
        return sorted(self._ratings.items(), key=lambda kv: kv[1], reverse=True)[:n]

    def bottom_rated(self, n: int = 10) -> list[tuple[str, float]]:
        return sorted(self._ratings.items(), key=lambda kv: kv[1])[:n]

    def top_preferences(self, n: int = 10) -> list[StylePreference]:
        return sorted(self._preferences.values(), key=lambda p: p.strength, reverse=True)[:n]

    def get_preference(self, attribute: str) -> StylePreference | None:
        return self._preferences.get(attribute)

    def get_history(self, style_id: str | None = None) -> list[StyleRating]:
        if style_id is None:
            return list(self._history)
        return [h for h in self._history if h.style_id == style_id]

    def rating_stats(self) -> dict:
        values = sorted(self._ratings.values())
        if not values:
            return {"count": 0, "min": 0.0, "max": 0.0, "average": 0.0, "median": 0.0}
        return {
            "count": len(values),
            "min": values[0],
            "max": values[-1],
            "average": sum(values) / len(values),
            "median": values[len(values) // 2],
        }

    def generate_report(self) -> dict:
        """Summary used by the CLI report command."""
        return {
            "top_rated": self.top_rated(10),
            "bottom_rated": self.bottom_rated(10),
            "top_preferences": [p.to_dict() for p in self.top_preferences(10)],
            "stats": self.rating_stats(),
            "total_comparisons": len(self._history) // 2,
        }
