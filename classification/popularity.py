"""
Popularity score from comment count.

Linear reward for the first comments, flattening out past ~30:

    n <= 0      -> 0
    1..5        -> 8n
    6..15       -> 40 + 4(n - 5)
    16..30      -> 80 + 2(n - 15)
    > 30        -> 110 + 10 ln(n - 29)

clamped to [0, 100].
"""

from __future__ import annotations

import math
from typing import Optional

MIN_POPULARITY_SCORE = 0
MAX_POPULARITY_SCORE = 100


def score_popularity(comment_count: Optional[int]) -> int:
    """Return an integer popularity score in [0, 100]."""
    if comment_count is None or comment_count <= 0:
        return MIN_POPULARITY_SCORE

    n = comment_count
    if n <= 5:
        score = 8 * n
    elif n <= 15:
        score = 40 + 4 * (n - 5)
    elif n <= 30:
        score = 80 + 2 * (n - 15)
    else:
        score = 110 + 10 * math.log(n - 29)

    return int(max(MIN_POPULARITY_SCORE, min(score, MAX_POPULARITY_SCORE)))
