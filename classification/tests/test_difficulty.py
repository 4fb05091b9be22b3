"""
Tests for label-weighted difficulty classification.
"""

import pytest

from classification.difficulty import (
    DEFAULT_LABEL_WEIGHTS,
    DifficultyConfig,
    DifficultyLevel,
    calculate_difficulty_score,
    classify_difficulty,
    resolve_label_weight,
    score_to_level,
)
from services.targets import RepositoryTarget


@pytest.fixture
def react_target():
    return RepositoryTarget(
        "facebook/react",
        "javascript",
        ("good first issue", "Component: Developer Tools"),
    )


@pytest.fixture
def spring_target():
    return RepositoryTarget(
        "spring-projects/spring-boot",
        "java",
        ("good first issue", "status: ideal-for-contribution"),
        large_project=True,
    )


class TestClassifyDifficulty:

    def test_good_first_issue_is_beginner(self):
        assert classify_difficulty(["good first issue"], None) == DifficultyLevel.BEGINNER

    def test_no_labels_is_intermediate(self):
        assert classify_difficulty([], None) == DifficultyLevel.INTERMEDIATE

    def test_bug_is_intermediate(self):
        assert classify_difficulty(["bug"], None) == DifficultyLevel.INTERMEDIATE

    def test_feature_and_security_are_advanced(self):
        assert classify_difficulty(["feature"], None) == DifficultyLevel.ADVANCED
        assert classify_difficulty(["security"], None) == DifficultyLevel.ADVANCED

    def test_threshold_is_exclusive(self):
        # help wanted = -15, not strictly below the beginner cutoff
        assert classify_difficulty(["help wanted"], None) == DifficultyLevel.INTERMEDIATE

    def test_out_of_scope_labels_are_ignored(self, spring_target):
        labels = ["good first issue", "security"]
        assert classify_difficulty(labels, spring_target) == DifficultyLevel.BEGINNER
        # Without an allow-list the security label pulls the score up
        assert classify_difficulty(labels, None) == DifficultyLevel.INTERMEDIATE

    def test_repository_override_beats_global_table(self, react_target):
        labels = ["Component: Developer Tools"]
        assert classify_difficulty(labels, react_target) == DifficultyLevel.INTERMEDIATE

        config = DifficultyConfig(repository_weights={
            "facebook/react": {"component: developer tools": 40},
        })
        assert classify_difficulty(labels, react_target, config) == DifficultyLevel.ADVANCED

    def test_override_for_other_repository_has_no_effect(self, spring_target):
        config = DifficultyConfig(repository_weights={"facebook/react": {"good first issue": 100}})
        assert classify_difficulty(["good first issue"], spring_target, config) == DifficultyLevel.BEGINNER

    def test_deterministic(self, react_target):
        labels = ["good first issue", "Component: Developer Tools", "bug"]
        results = {classify_difficulty(labels, react_target) for _ in range(10)}
        assert len(results) == 1


class TestScoring:

    def test_first_matching_pattern_wins(self):
        # "type: bug" contains "bug" which comes first in the table
        assert resolve_label_weight("type: bug", {}, DEFAULT_LABEL_WEIGHTS) == 10
        assert resolve_label_weight("Good First Issue", {}, DEFAULT_LABEL_WEIGHTS) == -30

    def test_unknown_label_weighs_zero(self):
        assert resolve_label_weight("wontfix", {}, DEFAULT_LABEL_WEIGHTS) == 0

    def test_score_sums_weights(self):
        score = calculate_difficulty_score(["bug", "feature"], None, DifficultyConfig())
        assert score == 30

    def test_level_is_monotonic_in_score(self):
        config = DifficultyConfig()
        ranks = [score_to_level(s, config).rank for s in range(-100, 101)]
        assert ranks == sorted(ranks)
        assert ranks[0] == DifficultyLevel.BEGINNER.rank
        assert ranks[-1] == DifficultyLevel.ADVANCED.rank


class TestDifficultyConfig:

    def test_defaults(self):
        config = DifficultyConfig()
        assert config.beginner_cutoff == -15
        assert config.intermediate_cutoff == 15
        assert config.label_weights["security"] == 30

    def test_default_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_LABEL_WEIGHTS["bug"] = 99

    def test_inverted_cutoffs_rejected(self):
        with pytest.raises(ValueError):
            DifficultyConfig(beginner_cutoff=20, intermediate_cutoff=10)

    def test_from_dict(self):
        config = DifficultyConfig.from_dict({
            "thresholds": {"beginner": -5, "intermediate": 5},
            "repository_weights": {"vuejs/vue": {"contribution welcome": -50}},
        })
        assert config.beginner_cutoff == -5
        assert config.intermediate_cutoff == 5
        assert config.label_weights is DEFAULT_LABEL_WEIGHTS
        assert config.repository_weights["vuejs/vue"]["contribution welcome"] == -50

    def test_from_dict_replaces_global_table(self):
        config = DifficultyConfig.from_dict({"label_weights": {"bug": "40"}})
        assert dict(config.label_weights) == {"bug": 40}
        assert classify_difficulty(["bug"], None, config) == DifficultyLevel.ADVANCED
