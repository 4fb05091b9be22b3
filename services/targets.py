"""
Repository targets for the issue sync.

A target is one GitHub repository plus the labels we collect from it.
The default list covers two backend (Java) and three frontend (JavaScript)
projects with active "good first issue" triage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

FRONTEND_LANGUAGES = {"javascript", "typescript"}


@dataclass(frozen=True)
class RepositoryTarget:
    """A repository to sweep, with its label allow-list."""
    full_name: str  # owner/name
    language: str
    labels: Tuple[str, ...] = field(default_factory=tuple)
    large_project: bool = False  # large codebases take longer per issue

    def __post_init__(self):
        parts = self.full_name.split("/") if self.full_name else []
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Target must be 'owner/name', got {self.full_name!r}")
        # Accept lists from JSON config, keep the dataclass hashable
        object.__setattr__(self, "labels", tuple(self.labels))

    @property
    def owner(self) -> str:
        return self.full_name.split("/")[0]

    @property
    def name(self) -> str:
        return self.full_name.split("/")[1]

    @property
    def is_frontend(self) -> bool:
        return (self.language or "").lower() in FRONTEND_LANGUAGES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RepositoryTarget:
        """
        Build from a config entry.

        Raises:
            ValueError: labels is not a list of strings
        """
        labels = data.get("labels") or []
        valid = isinstance(labels, (list, tuple)) and all(isinstance(label, str) for label in labels)
        if not valid:
            raise ValueError(f"labels for {data.get('full_name')!r} must be a list of strings")

        return cls(
            full_name=data["full_name"],
            language=data.get("language", ""),
            labels=tuple(labels),
            large_project=bool(data.get("large_project", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name,
            "language": self.language,
            "labels": list(self.labels),
            "large_project": self.large_project,
        }


DEFAULT_TARGETS: Tuple[RepositoryTarget, ...] = (
    # Backend
    RepositoryTarget(
        "spring-projects/spring-boot",
        "java",
        ("good first issue", "status: ideal-for-contribution"),
        large_project=True,
    ),
    RepositoryTarget(
        "elastic/elasticsearch",
        "java",
        ("good first issue", "help wanted"),
        large_project=True,
    ),
    # Frontend
    RepositoryTarget(
        "facebook/react",
        "javascript",
        ("good first issue", "Component: Developer Tools"),
    ),
    RepositoryTarget(
        "vuejs/vue",
        "javascript",
        ("good first issue", "contribution welcome"),
    ),
    RepositoryTarget(
        "vercel/next.js",
        "javascript",
        ("good first issue", "Documentation"),
    ),
)


def targets_by_language(targets: List[RepositoryTarget], language: str) -> List[RepositoryTarget]:
    """Filter targets by primary language (case-insensitive)."""
    language = language.lower()
    return [t for t in targets if (t.language or "").lower() == language]
