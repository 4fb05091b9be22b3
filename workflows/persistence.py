"""
Persistence gateway: one search page in, stored issues out.

For each page:
1. parse raw items (malformed ones are logged and dropped)
2. skip issues already stored or repeated within the page
3. resolve the repository once, only if something is new
4. classify and insert the new issues in one transaction, each in its own
   savepoint so a failing item does not undo its siblings
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set

import aiosqlite

from classification.difficulty import DifficultyConfig, classify_difficulty
from classification.labels import is_label_in_scope
from classification.popularity import score_popularity
from classification.time_estimate import estimate_time
from collectors.github_issues import IssueItem
from services.targets import RepositoryTarget
from storage.issue_store import IssueRecord, IssueStore, Label
from workflows.repository_resolver import RepositoryResolver
from workflows.results import RunResult

logger = logging.getLogger(__name__)


def build_issue_record(
    item: IssueItem,
    target: RepositoryTarget,
    repository_id: int,
    difficulty_config: Optional[DifficultyConfig] = None,
) -> IssueRecord:
    """Classify a parsed item and keep only its in-scope labels."""
    label_names = item.label_names
    labels = [
        Label.from_github_color(label.name, label.color)
        for label in item.labels
        if is_label_in_scope(label.name, target.labels)
    ]

    return IssueRecord(
        github_issue_id=item.id,
        repository_id=repository_id,
        title=item.title,
        html_url=item.html_url,
        github_created_at=item.created_at,
        difficulty_level=classify_difficulty(label_names, target, difficulty_config),
        estimated_time=estimate_time(label_names, target),
        popularity_score=score_popularity(item.comments),
        comments_count=item.comments,
        labels=labels,
    )


class PersistenceGateway:
    """
    Stores search pages idempotently.

    Re-persisting a page that is already stored writes nothing and counts
    every item as skipped.
    """

    def __init__(
        self,
        store: IssueStore,
        resolver: RepositoryResolver,
        difficulty_config: Optional[DifficultyConfig] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.difficulty_config = difficulty_config or DifficultyConfig()

    async def persist_page(
        self,
        items: List[Dict[str, Any]],
        target: RepositoryTarget,
    ) -> RunResult:
        """
        Persist one page of raw search items for a target.

        Returns:
            RunResult with processed/skipped/invalid counts

        Raises:
            RepositoryResolutionError: new issues but no repository row
        """
        result = RunResult()
        new_items: List[IssueItem] = []
        seen: Set[int] = set()

        for raw in items:
            try:
                item = IssueItem.from_api_response(raw)
            except ValueError as e:
                logger.warning(f"Dropping malformed item from {target.full_name}: {e}")
                result.invalid += 1
                continue

            if item.id in seen or await self.store.issue_exists(item.id):
                result.skipped += 1
                continue

            seen.add(item.id)
            new_items.append(item)

        if not new_items:
            return result

        repository = await self.resolver.resolve(target)

        async with self.store.transaction():
            for item in new_items:
                try:
                    record = build_issue_record(item, target, repository.id, self.difficulty_config)
                    async with self.store.savepoint():
                        await self.store.insert_issue(record)
                except aiosqlite.IntegrityError:
                    # Stored by an overlapping writer since issue_exists()
                    logger.debug(f"Issue {item.id} already stored, skipping")
                    result.skipped += 1
                except Exception as e:
                    logger.warning(f"Failed to store issue {item.id} from {target.full_name}: {e}")
                    result.invalid += 1
                else:
                    result.processed += 1

        logger.debug(f"{target.full_name} page stored: {result.summary()}")
        return result
