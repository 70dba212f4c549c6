"""
PreferenceStore -- JSON persistence for the PreferenceEngine.

Two documents under the data dir:

    ratings.json      {"current_ratings": {id: rating}, "history": [StyleRating, ...]}
    preferences.json  [StylePreference, ...]

Only field presence is checked on load; anything unreadable is skipped with
a warning. Methods are synchronous, the engine runs them via asyncio.to_thread.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .models import StylePreference, StyleRating

logger = logging.getLogger(__name__)

RATINGS_FILE = "ratings.json"
PREFERENCES_FILE = "preferences.json"


@dataclass
class PreferenceSnapshot:
    """Everything the engine persists."""

    ratings: dict[str, float] = field(default_factory=dict)
    history: list[StyleRating] = field(default_factory=list)
    preferences: list[StylePreference] = field(default_factory=list)


class PreferenceStore:
    """
    Reads and writes preference state as JSON files.

    Usage:
        store = PreferenceStore(Path(".atelier/aesthetic"))
        snapshot = store.load()
        store.save(snapshot)
    """

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    @property
    def ratings_path(self) -> Path:
        return self._data_dir / RATINGS_FILE

    @property
    def preferences_path(self) -> Path:
        return self._data_dir / PREFERENCES_FILE

    def load(self) -> PreferenceSnapshot:
        """Load persisted state. Missing files yield an empty snapshot."""
        snapshot = PreferenceSnapshot()

        ratings_doc = self._read(self.ratings_path)
        if isinstance(ratings_doc, dict):
            current = ratings_doc.get("current_ratings", {})
            if isinstance(current, dict):
                snapshot.ratings = {str(k): float(v) for k, v in current.items()}
            for entry in ratings_doc.get("history", []):
                try:
                    snapshot.history.append(StyleRating.from_dict(entry))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[PreferenceStore] Skipping malformed history entry: {e}")

        prefs_doc = self._read(self.preferences_path)
        if isinstance(prefs_doc, list):
            for entry in prefs_doc:
                try:
                    snapshot.preferences.append(StylePreference.from_dict(entry))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"[PreferenceStore] Skipping malformed preference: {e}")

        logger.info(
            f"[PreferenceStore] Loaded {len(snapshot.ratings)} ratings, "
            f"{len(snapshot.history)} history entries, "
            f"{len(snapshot.preferences)} preferences from {self._data_dir}"
        )
        return snapshot

    def save(self, snapshot: PreferenceSnapshot) -> None:
        """Write both documents. Raises OSError on failure; the caller logs it."""
        self._data_dir.mkdir(parents=True, exist_ok=True)
        with open(self.ratings_path, "w") as f:
            json.dump(
                {
                    "current_ratings": snapshot.ratings,
                    "history": [h.to_dict() for h in snapshot.history],
                },
                f,
                indent=2,
            )
        with open(self.preferences_path, "w") as f:
            json.dump([p.to_dict() for p in snapshot.preferences], f, indent=2)

    def _read(self, path: Path):
        if not path.exists():
            return None
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[PreferenceStore] Failed to read {path}: {e}")
            return None
