"""
Label-weighted difficulty classification.

Each in-scope label contributes a weight looked up by substring: the
repository's own table first, then the global table, else 0. The summed
score is mapped to a level by two thresholds.

Weights are negative for beginner-friendly work (docs, triage, good first
issue) and positive for harder work (features, refactors, security).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence

from classification.labels import is_label_in_scope
from services.targets import RepositoryTarget

logger = logging.getLogger(__name__)


class DifficultyLevel(str, Enum):
    """Difficulty of an issue, easiest first."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)


_LEVEL_ORDER = [
    DifficultyLevel.BEGINNER,
    DifficultyLevel.INTERMEDIATE,
    DifficultyLevel.ADVANCED,
]


# Table order matters: the first pattern contained in a label wins.
DEFAULT_LABEL_WEIGHTS: Mapping[str, int] = MappingProxyType({
    # Beginner friendly
    "good first issue": -30,
    "beginner": -25,
    "easy": -25,
    "starter": -20,
    "help wanted": -15,
    "contribution welcome": -15,

    # Documentation
    "documentation": -20,
    "docs": -20,
    "type: documentation": -20,

    # Awaiting triage, usually small
    "waiting-for-triage": -15,
    "needs-triage": -15,

    # Bug fixes
    "bug": 10,
    "type: bug": 10,
    "bugfix": 10,

    # Features
    "enhancement": 15,
    "feature": 20,
    "new feature": 20,

    # Refactoring
    "refactor": 20,
    "refactoring": 20,

    # Performance
    "performance": 25,
    "optimization": 25,

    # Security
    "security": 30,
    "vulnerability": 30,

    # Component work
    "component:": 10,
    "module:": 10,
})

DEFAULT_BEGINNER_CUTOFF = -15
DEFAULT_INTERMEDIATE_CUTOFF = 15


@dataclass(frozen=True)
class DifficultyConfig:
    """Weights and thresholds for difficulty classification."""
    label_weights: Mapping[str, int] = field(default_factory=lambda: DEFAULT_LABEL_WEIGHTS)
    beginner_cutoff: int = DEFAULT_BEGINNER_CUTOFF
    intermediate_cutoff: int = DEFAULT_INTERMEDIATE_CUTOFF
    # full_name -> {pattern: weight}
    repository_weights: Mapping[str, Mapping[str, int]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def __post_init__(self):
        if self.beginner_cutoff > self.intermediate_cutoff:
            raise ValueError(
                f"beginner_cutoff ({self.beginner_cutoff}) must not exceed "
                f"intermediate_cutoff ({self.intermediate_cutoff})"
            )

    def weights_for(self, target: Optional[RepositoryTarget]) -> Mapping[str, int]:
        """Per-repository override table (empty if none)."""
        if target is None:
            return MappingProxyType({})
        return self.repository_weights.get(target.full_name, MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DifficultyConfig:
        """
        Build from a config mapping.

        Keys (all optional):
            label_weights: replaces the global table
            thresholds: {"beginner": int, "intermediate": int}
            repository_weights: {"owner/name": {pattern: weight}}
        """
        thresholds = data.get("thresholds") or {}
        label_weights = data.get("label_weights")
        repository_weights = data.get("repository_weights") or {}

        return cls(
            label_weights=(
                MappingProxyType({str(k): int(v) for k, v in label_weights.items()})
                if label_weights else DEFAULT_LABEL_WEIGHTS
            ),
            beginner_cutoff=int(thresholds.get("beginner", DEFAULT_BEGINNER_CUTOFF)),
            intermediate_cutoff=int(thresholds.get("intermediate", DEFAULT_INTERMEDIATE_CUTOFF)),
            repository_weights=MappingProxyType({
                repo: MappingProxyType({str(k): int(v) for k, v in table.items()})
                for repo, table in repository_weights.items()
            }),
        )


def resolve_label_weight(
    label_name: str,
    repository_weights: Mapping[str, int],
    global_weights: Mapping[str, int],
) -> int:
    """Weight for a single label; repository table wins over global."""
    lowered = label_name.lower()

    for pattern, weight in repository_weights.items():
        if pattern.lower() in lowered:
            logger.debug(f"Repository weight for '{label_name}': {weight}")
            return weight

    for pattern, weight in global_weights.items():
        if pattern.lower() in lowered:
            return weight

    return 0


def calculate_difficulty_score(
    labels: Sequence[str],
    target: Optional[RepositoryTarget],
    config: DifficultyConfig,
) -> int:
    """Sum of weights over the in-scope labels."""
    allowed = target.labels if target else ()
    repository_weights = config.weights_for(target)

    score = 0
    for label_name in labels:
        if not label_name or not is_label_in_scope(label_name, allowed):
            continue
        score += resolve_label_weight(label_name, repository_weights, config.label_weights)
    return score


def score_to_level(score: int, config: DifficultyConfig) -> DifficultyLevel:
    if score < config.beginner_cutoff:
        return DifficultyLevel.BEGINNER
    if score < config.intermediate_cutoff:
        return DifficultyLevel.INTERMEDIATE
    return DifficultyLevel.ADVANCED


def classify_difficulty(
    labels: Sequence[str],
    target: Optional[RepositoryTarget],
    config: Optional[DifficultyConfig] = None,
) -> DifficultyLevel:
    """
    Classify an issue by its labels.

    Args:
        labels: Label names as returned by GitHub
        target: Target the issue was collected for (allow-list + overrides)
        config: Weights and thresholds (defaults if omitted)

    Returns:
        DifficultyLevel; INTERMEDIATE when the issue has no labels
    """
    config = config or DifficultyConfig()
    if not labels:
        return DifficultyLevel.INTERMEDIATE

    score = calculate_difficulty_score(labels, target, config)
    level = score_to_level(score, config)
    logger.debug(f"Difficulty score={score} -> {level.value}")
    return level
