"""
Sync Orchestrator for the issue ingestion pipeline

Ties together one sync run:
  targets → search pages → parse/dedup → classify → store

Coordinates:
- Target and difficulty config (hot-reloaded between runs)
- GitHub client with retry and interruptible pacing
- Repository resolution (cached per run)
- Page-level persistence in SQLite

Targets run strictly one after another. A failing target is logged and
counted; the run always continues with the next one.

Usage:
    from workflows.pipeline import IssueSyncPipeline

    pipeline = IssueSyncPipeline()
    await pipeline.initialize()

    stats = await pipeline.run()
    print(stats.to_dict())

    await pipeline.close()
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from collectors.github_issues import GitHubIssuesClient
from services.config_loader import ConfigLoader
from services.targets import RepositoryTarget
from storage.issue_store import IssueStore
from utils.pacing import Pacer
from workflows.pagination import (
    DEFAULT_MAX_PAGES,
    DEFAULT_PAGE_DELAY_SECONDS,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RECOVERY_DELAY_SECONDS,
    PaginationDriver,
)
from workflows.persistence import PersistenceGateway
from workflows.repository_resolver import RepositoryResolver
from workflows.results import RunResult, TargetResult, TargetStatus

logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

DEFAULT_SYNC_INTERVAL_SECONDS = 4 * 60 * 60


@dataclass
class SyncConfig:
    """Configuration for the issue sync"""

    # GitHub
    github_token: Optional[str] = None

    # Storage
    db_path: str = "issues.db"

    # Targets / difficulty weights (JSON file; defaults if unset)
    config_path: Optional[str] = None
    config_ttl_seconds: int = 300

    # Scheduling
    sync_interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS

    # Pagination
    page_delay_seconds: float = DEFAULT_PAGE_DELAY_SECONDS
    recovery_delay_seconds: float = DEFAULT_RECOVERY_DELAY_SECONDS
    max_pages: int = DEFAULT_MAX_PAGES
    page_size: int = DEFAULT_PAGE_SIZE

    # Repositories
    refresh_stars: bool = True  # Refresh star counts once per run

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load configuration from environment variables"""
        return cls(
            github_token=os.getenv("GITHUB_TOKEN"),
            db_path=os.getenv("ISSUE_DB_PATH", "issues.db"),
            config_path=os.getenv("SYNC_CONFIG_PATH") or None,
            config_ttl_seconds=int(os.getenv("SYNC_CONFIG_TTL_SECONDS", "300")),
            sync_interval_seconds=int(
                os.getenv("SYNC_INTERVAL_SECONDS", str(DEFAULT_SYNC_INTERVAL_SECONDS))
            ),
            page_delay_seconds=float(
                os.getenv("PAGE_DELAY_SECONDS", str(DEFAULT_PAGE_DELAY_SECONDS))
            ),
            recovery_delay_seconds=float(
                os.getenv("RECOVERY_DELAY_SECONDS", str(DEFAULT_RECOVERY_DELAY_SECONDS))
            ),
            max_pages=int(os.getenv("MAX_PAGES", str(DEFAULT_MAX_PAGES))),
            page_size=int(os.getenv("PAGE_SIZE", str(DEFAULT_PAGE_SIZE))),
            refresh_stars=os.getenv("REFRESH_STARS", "true").lower() == "true",
        )


@dataclass
class SyncStats:
    """Statistics from a sync run"""

    # Target stats
    targets_run: int = 0
    targets_succeeded: int = 0
    targets_failed: int = 0

    # Issue stats
    issues_processed: int = 0
    issues_skipped: int = 0
    issues_invalid: int = 0

    target_results: List[TargetResult] = field(default_factory=list)

    # Errors
    errors: List[str] = field(default_factory=list)

    # Rate limit snapshot at run start
    rate_limit: Optional[Dict[str, Any]] = None

    # Timing
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    def record(self, target_result: TargetResult) -> None:
        """Fold one target's result into the run totals"""
        self.target_results.append(target_result)
        self.targets_run += 1

        if target_result.succeeded:
            self.targets_succeeded += 1
        else:
            self.targets_failed += 1

        self.issues_processed += target_result.result.processed
        self.issues_skipped += target_result.result.skipped
        self.issues_invalid += target_result.result.invalid

        if target_result.error_message:
            self.errors.append(f"{target_result.target}: {target_result.error_message}")

    @property
    def result(self) -> RunResult:
        return RunResult(
            processed=self.issues_processed,
            skipped=self.issues_skipped,
            invalid=self.issues_invalid,
        )

    def complete(self):
        """Mark run as completed"""
        self.completed_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Run duration in seconds"""
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/display"""
        return {
            "targets": {
                "run": self.targets_run,
                "succeeded": self.targets_succeeded,
                "failed": self.targets_failed,
            },
            "issues": self.result.to_dict(),
            "target_results": [r.to_dict() for r in self.target_results],
            "errors": self.errors,
            "rate_limit": self.rate_limit,
            "timing": {
                "started_at": self.started_at.isoformat(),
                "completed_at": self.completed_at.isoformat() if self.completed_at else None,
                "duration_seconds": self.duration_seconds,
            },
        }


# =============================================================================
# SYNC ORCHESTRATOR
# =============================================================================

class IssueSyncPipeline:
    """
    Orchestrates sync runs across all configured targets.

    Only one run may be active at a time: a run() call made while another
    is in progress returns None without doing anything.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        store: Optional[IssueStore] = None,
        client: Optional[GitHubIssuesClient] = None,
        config_loader: Optional[ConfigLoader] = None,
        pacer: Optional[Pacer] = None,
    ):
        """
        Initialize pipeline with configuration.

        Args:
            config: Sync configuration (defaults to environment variables)
            store: Pre-initialized store (not closed by the pipeline)
            client: Pre-built GitHub client (not closed by the pipeline)
            config_loader: Target/difficulty source (built from config if omitted)
            pacer: Shared pacer for page pauses and retry backoff
        """
        self.config = config or SyncConfig.from_env()
        self.pacer = pacer or Pacer()
        self.config_loader = config_loader or ConfigLoader(
            self.config.config_path,
            cache_ttl_seconds=self.config.config_ttl_seconds,
        )

        self._store = store
        self._owns_store = store is None
        self._client = client
        self._owns_client = client is None

        self._resolver: Optional[RepositoryResolver] = None
        self._gateway: Optional[PersistenceGateway] = None
        self._driver: Optional[PaginationDriver] = None

        # State
        self._initialized = False
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def store(self) -> Optional[IssueStore]:
        return self._store

    async def initialize(self) -> None:
        """Initialize pipeline components"""
        if self._initialized:
            return

        logger.info("Initializing issue sync pipeline...")

        if self._store is None:
            self._store = IssueStore(self.config.db_path)
            await self._store.initialize()

        if self._client is None:
            self._client = GitHubIssuesClient(
                token=self.config.github_token,
                sleep=self.pacer.sleep,
            )
            await self._client.__aenter__()

        self._resolver = RepositoryResolver(
            self._store,
            self._client,
            refresh_stars=self.config.refresh_stars,
        )
        self._gateway = PersistenceGateway(self._store, self._resolver)
        self._driver = PaginationDriver(
            self._client,
            self._gateway,
            self.pacer,
            max_pages=self.config.max_pages,
            page_size=self.config.page_size,
            page_delay=self.config.page_delay_seconds,
            recovery_delay=self.config.recovery_delay_seconds,
        )

        self._initialized = True
        logger.info("Pipeline initialization complete")

    async def close(self) -> None:
        """Clean up resources"""
        if self._client and self._owns_client:
            await self._client.close()
            self._client = None
        if self._store and self._owns_store:
            await self._store.close()
            self._store = None
        self._initialized = False

    def interrupt(self) -> None:
        """Abandon the target currently sleeping (or the next one to sleep)."""
        self.pacer.interrupt()

    async def check_rate_limit(self) -> Optional[Dict[str, Any]]:
        await self.initialize()
        return await self._client.check_rate_limit()

    async def run(
        self,
        targets: Optional[Sequence[RepositoryTarget]] = None,
    ) -> Optional[SyncStats]:
        """
        Run one sync across all targets.

        Args:
            targets: Targets to sync (None = from the config loader)

        Returns:
            SyncStats, or None if a run was already in progress
        """
        if self._running:
            logger.warning("Sync run already in progress; skipping this trigger")
            return None

        self._running = True
        try:
            return await self._run(targets)
        finally:
            self._running = False

    async def _run(self, targets: Optional[Sequence[RepositoryTarget]]) -> SyncStats:
        stats = SyncStats()

        try:
            await self.initialize()

            active = self.config_loader.get_active_config()
            targets = list(targets) if targets is not None else list(active.targets)
            self._gateway.difficulty_config = active.difficulty
            self._resolver.reset()

            logger.info(f"Starting sync run ({len(targets)} targets, config: {active.source})")

            stats.rate_limit = await self._client.check_rate_limit()

            for target in targets:
                stats.record(await self._sync_target(target))

            logger.info(
                f"Sync run complete: {stats.targets_succeeded}/{stats.targets_run} targets ok, "
                f"{stats.result.summary()}"
            )

        except Exception as e:
            logger.exception("Sync run failed")
            stats.errors.append(f"Run error: {str(e)}")

        finally:
            stats.complete()

        return stats

    async def _sync_target(self, target: RepositoryTarget) -> TargetResult:
        """Sync a single target; errors become an ERROR result"""
        try:
            return await self._driver.collect(target)
        except Exception as e:
            logger.exception(f"Error syncing {target.full_name}")
            return TargetResult(
                target=target.full_name,
                status=TargetStatus.ERROR,
                error_message=str(e),
            )


# =============================================================================
# CONTEXT MANAGER
# =============================================================================

@asynccontextmanager
async def pipeline_context(config: Optional[SyncConfig] = None) -> AsyncIterator[IssueSyncPipeline]:
    """
    Context manager for pipeline that handles initialization and cleanup.

    Usage:
        async with pipeline_context() as pipeline:
            stats = await pipeline.run()
    """
    pipeline = IssueSyncPipeline(config)
    await pipeline.initialize()
    try:
        yield pipeline
    finally:
        await pipeline.close()
