"""
Preference learning -- choose among competing artifacts and learn what wins.

  - models.py: StyleCandidate, StyleRating, StylePreference
  - store.py: JSON persistence (ratings.json, preferences.json)
  - aesthetic.py: PreferenceEngine (ELO + exploration + tag preferences)
"""

from .models import RatingOutcome, StyleCandidate, StylePreference, StyleRating
from .store import PreferenceSnapshot, PreferenceStore
from .aesthetic import PreferenceEngine, expected_score
