"""
Sync config loader: targets and difficulty settings from a JSON file.

File format (every key optional):

    {
      "targets": [
        {"full_name": "vuejs/vue", "language": "javascript",
         "labels": ["good first issue"], "large_project": false}
      ],
      "difficulty": {
        "label_weights": {"good first issue": -30, "...": 0},
        "thresholds": {"beginner": -15, "intermediate": 15},
        "repository_weights": {"vuejs/vue": {"contribution welcome": -20}}
      }
    }

The file is re-read at most once per TTL, so edits (per-repository weights
in particular) take effect on the next run without a restart. Without a
file, or when the first read fails, the built-in defaults are used.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from classification.difficulty import DifficultyConfig
from services.targets import DEFAULT_TARGETS, RepositoryTarget

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "defaults"


@dataclass
class ActiveConfig:
    """Resolved sync configuration (from file or defaults)."""
    targets: Tuple[RepositoryTarget, ...]
    difficulty: DifficultyConfig
    content_hash: str
    source: str  # file path, or "defaults"
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_default(self) -> bool:
        return self.source == DEFAULT_VERSION


class ConfigLoader:
    """
    Load sync configuration from a JSON file with TTL caching.
    """

    def __init__(
        self,
        config_path: Optional[Union[str, Path]] = None,
        cache_ttl_seconds: int = 300,
    ) -> None:
        self.config_path = Path(config_path) if config_path else None
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: Optional[Tuple[ActiveConfig, float]] = None

    def clear_cache(self) -> None:
        """Clear cached config (forces reload on next request)."""
        self._cache = None

    def get_active_config(self, force_refresh: bool = False) -> ActiveConfig:
        """Get the active config, with TTL caching."""
        if self._cache and not force_refresh:
            config, fetched_at = self._cache
            if (time.time() - fetched_at) < self.cache_ttl_seconds:
                return config

        previous = self._cache[0] if self._cache else None
        config = self._load(previous)
        self._cache = (config, time.time())
        return config

    def get_targets(self) -> Tuple[RepositoryTarget, ...]:
        return self.get_active_config().targets

    def get_difficulty_config(self) -> DifficultyConfig:
        return self.get_active_config().difficulty

    def _load(self, previous: Optional[ActiveConfig]) -> ActiveConfig:
        if not self.config_path:
            return previous or self._build_fallback()

        try:
            content_text = self.config_path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning(f"Config file {self.config_path} unreadable: {exc}")
            return previous or self._build_fallback()

        content_hash = self._hash_content(content_text)
        if previous and previous.content_hash == content_hash:
            return previous

        try:
            config = self._parse(content_text, content_hash)
        except (ValueError, KeyError, TypeError) as exc:
            if previous:
                logger.warning(f"Invalid config in {self.config_path}; keeping previous: {exc}")
                return previous
            logger.warning(f"Invalid config in {self.config_path}; using defaults: {exc}")
            return self._build_fallback()

        logger.info(
            f"Loaded config from {self.config_path}: {len(config.targets)} targets "
            f"(hash {content_hash[:12]})"
        )
        return config

    def _parse(self, content_text: str, content_hash: str) -> ActiveConfig:
        data = json.loads(content_text)
        if not isinstance(data, dict):
            raise ValueError("config root must be an object")

        raw_targets = data.get("targets")
        if raw_targets:
            targets = tuple(RepositoryTarget.from_dict(t) for t in raw_targets)
        else:
            targets = DEFAULT_TARGETS

        difficulty = DifficultyConfig.from_dict(data.get("difficulty") or {})

        return ActiveConfig(
            targets=targets,
            difficulty=difficulty,
            content_hash=content_hash,
            source=str(self.config_path),
        )

    def _build_fallback(self) -> ActiveConfig:
        content_text = json.dumps(
            {"targets": [t.to_dict() for t in DEFAULT_TARGETS]},
            sort_keys=True,
        )
        return ActiveConfig(
            targets=DEFAULT_TARGETS,
            difficulty=DifficultyConfig(),
            content_hash=self._hash_content(content_text),
            source=DEFAULT_VERSION,
        )

    @staticmethod
    def _hash_content(content_text: str) -> str:
        return hashlib.sha256(content_text.encode("utf-8")).hexdigest()
