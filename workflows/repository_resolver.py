"""
Repository resolution for synced issues.

Maps a target to its stored Repository row, creating it from GitHub
metadata the first time. Resolutions are cached for one run; the star
count of an existing row is refreshed at most once per run.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from collectors.github_issues import GitHubIssuesClient, RepositoryInfo
from services.targets import RepositoryTarget
from storage.issue_store import IssueStore, Repository
from utils.pacing import SleepInterrupted

logger = logging.getLogger(__name__)


class RepositoryResolutionError(Exception):
    """A target's repository could not be found or created."""

    def __init__(self, full_name: str, reason: str):
        super().__init__(f"Cannot resolve repository {full_name}: {reason}")
        self.full_name = full_name
        self.reason = reason


def repository_from_info(info: RepositoryInfo, target: RepositoryTarget) -> Repository:
    """
    Build a Repository row from API metadata.

    Missing url, language or stars fall back to the GitHub url, the target's
    language and 0. A missing id is an error.
    """
    if info.id is None:
        raise RepositoryResolutionError(target.full_name, "GitHub returned no repository id")

    return Repository(
        github_repo_id=info.id,
        owner=target.owner,
        name=target.name,
        html_url=info.html_url or f"https://github.com/{target.full_name}",
        primary_language=info.language or target.language,
        stars_count=info.stargazers_count if info.stargazers_count is not None else 0,
    )


class RepositoryResolver:
    """
    Find-or-create repositories for targets.

    Usage:
        resolver = RepositoryResolver(store, client)
        resolver.reset()                   # at the start of each run
        repo = await resolver.resolve(target)
    """

    def __init__(
        self,
        store: IssueStore,
        client: GitHubIssuesClient,
        refresh_stars: bool = True,
    ):
        self.store = store
        self.client = client
        self.refresh_stars = refresh_stars
        self._cache: Dict[str, Repository] = {}

    def reset(self) -> None:
        """Forget this run's resolutions."""
        self._cache.clear()

    def cached(self, target: RepositoryTarget) -> Optional[Repository]:
        return self._cache.get(target.full_name)

    async def resolve(self, target: RepositoryTarget) -> Repository:
        """
        Stored repository for the target, created if absent.

        Raises:
            RepositoryResolutionError: metadata fetch failed, id missing, or
                the row could not be saved
            SleepInterrupted: a retry backoff was interrupted
        """
        cached = self._cache.get(target.full_name)
        if cached:
            return cached

        existing = await self.store.get_repository(target.owner, target.name)
        if existing:
            if self.refresh_stars:
                existing = await self._refresh_stars(existing)
            self._cache[target.full_name] = existing
            return existing

        repository = await self._create(target)
        self._cache[target.full_name] = repository
        return repository

    async def _create(self, target: RepositoryTarget) -> Repository:
        try:
            info = await self.client.fetch_repository_info(target.full_name)
        except SleepInterrupted:
            raise
        except Exception as e:
            raise RepositoryResolutionError(target.full_name, str(e)) from e

        repository = repository_from_info(info, target)

        try:
            saved = await self.store.save_repository(repository)
        except Exception as e:
            raise RepositoryResolutionError(target.full_name, f"save failed: {e}") from e

        logger.info(
            f"Created repository {saved.full_name} "
            f"(github id {saved.github_repo_id}, {saved.stars_count} stars)"
        )
        return saved

    async def _refresh_stars(self, repository: Repository) -> Repository:
        """Best effort: keeps the stored count if GitHub can't be reached."""
        try:
            info = await self.client.fetch_repository_info(repository.full_name)
        except SleepInterrupted:
            raise
        except Exception as e:
            logger.warning(f"Star refresh failed for {repository.full_name}, keeping stored count: {e}")
            return repository

        stars = info.stargazers_count
        if stars is None or stars == repository.stars_count:
            return repository

        await self.store.update_repository_stars(repository.id, stars)
        logger.debug(f"{repository.full_name} stars: {repository.stars_count} -> {stars}")
        repository.stars_count = stars
        return repository
