"""Tests for repository targets."""
import pytest

from services.targets import DEFAULT_TARGETS, RepositoryTarget, targets_by_language


class TestRepositoryTarget:

    def test_owner_and_name(self):
        target = RepositoryTarget("vercel/next.js", "javascript")
        assert target.owner == "vercel"
        assert target.name == "next.js"

    @pytest.mark.parametrize("full_name", ["", "vue", "vuejs/", "/vue", "a/b/c"])
    def test_invalid_full_name_rejected(self, full_name):
        with pytest.raises(ValueError):
            RepositoryTarget(full_name, "javascript")

    def test_labels_become_tuple(self):
        target = RepositoryTarget("vuejs/vue", "javascript", ["good first issue"])
        assert target.labels == ("good first issue",)
        hash(target)

    @pytest.mark.parametrize("language, expected", [
        ("javascript", True),
        ("TypeScript", True),
        ("java", False),
        ("", False),
    ])
    def test_is_frontend(self, language, expected):
        assert RepositoryTarget("a/b", language).is_frontend is expected

    def test_dict_conversion(self):
        data = {
            "full_name": "elastic/elasticsearch",
            "language": "java",
            "labels": ["good first issue", "help wanted"],
            "large_project": True,
        }
        target = RepositoryTarget.from_dict(data)
        assert target.large_project is True
        assert target.to_dict() == data

    @pytest.mark.parametrize("labels", ["good first issue", [1, 2], {"good first issue": 1}])
    def test_from_dict_rejects_non_list_labels(self, labels):
        with pytest.raises(ValueError, match="list of strings"):
            RepositoryTarget.from_dict({"full_name": "vuejs/vue", "labels": labels})

    def test_from_dict_defaults(self):
        target = RepositoryTarget.from_dict({"full_name": "vuejs/vue"})
        assert target.language == ""
        assert target.labels == ()
        assert target.large_project is False


class TestDefaultTargets:

    def test_default_targets(self):
        names = [t.full_name for t in DEFAULT_TARGETS]
        assert names == [
            "spring-projects/spring-boot",
            "elastic/elasticsearch",
            "facebook/react",
            "vuejs/vue",
            "vercel/next.js",
        ]
        assert all("good first issue" in t.labels for t in DEFAULT_TARGETS)

    def test_large_projects_are_java(self):
        large = [t for t in DEFAULT_TARGETS if t.large_project]
        assert {t.language for t in large} == {"java"}

    def test_targets_by_language(self):
        java = targets_by_language(list(DEFAULT_TARGETS), "JAVA")
        assert [t.full_name for t in java] == [
            "spring-projects/spring-boot",
            "elastic/elasticsearch",
        ]
