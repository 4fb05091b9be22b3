"""
Effort estimation from issue labels.

Explicit size labels win outright. Otherwise each label adds a score for its
kind of work, the target adds a complexity bonus, and the total is bucketed.
Beginner-tagged issues never drop below the 1-3h bucket unless the score is
already high.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Sequence, Tuple

from services.targets import RepositoryTarget

logger = logging.getLogger(__name__)


class TimeBucket(str, Enum):
    """Estimated time to resolve an issue, shortest first."""
    UNDER_1H = "<1h"
    ONE_TO_THREE_H = "1-3h"
    THREE_TO_EIGHT_H = "3-8h"
    OVER_8H = ">8h"


# Scanned per label in this order; first hit returns.
SIZE_LABELS: Tuple[Tuple[Tuple[str, ...], TimeBucket], ...] = (
    (("size/xs", "tiny"), TimeBucket.UNDER_1H),
    (("size/s", "small"), TimeBucket.ONE_TO_THREE_H),
    (("size/m", "medium"), TimeBucket.THREE_TO_EIGHT_H),
    (("size/l", "size/xl", "large", "huge"), TimeBucket.OVER_8H),
)

# Work categories; a label only scores for the first category it matches.
WORK_TYPE_SCORES: Tuple[Tuple[Tuple[str, ...], int], ...] = (
    (("documentation", "docs"), -20),
    (("bug", "fix"), 10),
    (("feature", "enhancement"), 20),
    (("refactor", "performance"), 30),
    (("test",), 15),
)

BEGINNER_MARKERS = ("good first issue", "beginner")
BEGINNER_SCORE = -15
FRONTEND_BONUS = 5
LARGE_PROJECT_BONUS = 10
BEGINNER_FLOOR_SCORE = 10


def _contains_any(label_name: str, patterns: Sequence[str]) -> bool:
    return any(p in label_name for p in patterns)


def explicit_size(labels: Sequence[str]) -> Optional[TimeBucket]:
    """Bucket named by a size label, if any."""
    for label_name in labels:
        lowered = (label_name or "").lower()
        for patterns, bucket in SIZE_LABELS:
            if _contains_any(lowered, patterns):
                return bucket
    return None


def is_beginner_tagged(labels: Sequence[str]) -> bool:
    return any(_contains_any((name or "").lower(), BEGINNER_MARKERS) for name in labels)


def repository_complexity_bonus(target: Optional[RepositoryTarget]) -> int:
    if target is None:
        return 0
    bonus = 0
    if target.is_frontend:
        bonus += FRONTEND_BONUS
    if target.large_project:
        bonus += LARGE_PROJECT_BONUS
    return bonus


def calculate_time_score(labels: Sequence[str], target: Optional[RepositoryTarget]) -> int:
    score = 0
    for label_name in labels:
        lowered = (label_name or "").lower()

        for patterns, contribution in WORK_TYPE_SCORES:
            if _contains_any(lowered, patterns):
                score += contribution
                break

        if _contains_any(lowered, BEGINNER_MARKERS):
            score += BEGINNER_SCORE

    return score + repository_complexity_bonus(target)


def score_to_bucket(score: int, beginner: bool) -> TimeBucket:
    if beginner and score < BEGINNER_FLOOR_SCORE:
        return TimeBucket.ONE_TO_THREE_H

    if score < -10:
        return TimeBucket.UNDER_1H
    if score < 15:
        return TimeBucket.ONE_TO_THREE_H
    if score < 30:
        return TimeBucket.THREE_TO_EIGHT_H
    return TimeBucket.OVER_8H


def estimate_time(labels: Sequence[str], target: Optional[RepositoryTarget]) -> TimeBucket:
    """
    Estimate the effort bucket for an issue.

    Args:
        labels: Label names, in the order GitHub returned them
        target: Target the issue was collected for

    Returns:
        TimeBucket; ONE_TO_THREE_H when the issue has no labels
    """
    if not labels:
        return TimeBucket.ONE_TO_THREE_H

    sized = explicit_size(labels)
    if sized is not None:
        return sized

    score = calculate_time_score(labels, target)
    bucket = score_to_bucket(score, is_beginner_tagged(labels))
    logger.debug(f"Time score={score} -> {bucket.value}")
    return bucket
