"""
Issue classification rules.

Pure functions, no I/O:
- labels.py: label allow-list filter
- difficulty.py: weighted difficulty level
- time_estimate.py: effort bucket
- popularity.py: comment-based popularity score
"""

from classification.difficulty import (
    DEFAULT_LABEL_WEIGHTS,
    DifficultyConfig,
    DifficultyLevel,
    classify_difficulty,
)
from classification.labels import filter_labels, is_label_in_scope
from classification.popularity import score_popularity
from classification.time_estimate import TimeBucket, estimate_time

__all__ = [
    "DEFAULT_LABEL_WEIGHTS",
    "DifficultyConfig",
    "DifficultyLevel",
    "TimeBucket",
    "classify_difficulty",
    "estimate_time",
    "filter_labels",
    "is_label_in_scope",
    "score_popularity",
]
