"""
Scheduled sync loop.

Runs IssueSyncPipeline.run() forever with a fixed pause between runs. The
pause is never shorter than an hour. A run that is still going when the
next trigger fires is skipped by the pipeline itself.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from workflows.pipeline import IssueSyncPipeline, SyncStats

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 60 * 60


def effective_interval(interval_seconds: float) -> float:
    """Clamp the interval to at least one hour."""
    if interval_seconds < MIN_INTERVAL_SECONDS:
        logger.warning(
            f"Sync interval {interval_seconds}s is below {MIN_INTERVAL_SECONDS}s; "
            f"using {MIN_INTERVAL_SECONDS}s"
        )
        return MIN_INTERVAL_SECONDS
    return interval_seconds


async def run_scheduled_sync(
    pipeline: IssueSyncPipeline,
    interval_seconds: float,
    max_runs: Optional[int] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """
    Run the sync on a schedule.

    Args:
        pipeline: Initialized (or lazily initializing) pipeline
        interval_seconds: Pause between runs, at least one hour
        max_runs: Stop after this many runs (None = forever)
        sleep: Awaitable sleep between runs
    """
    interval = effective_interval(interval_seconds)
    logger.info(f"Starting scheduled issue sync (interval: {interval}s)")

    runs = 0
    while True:
        try:
            stats: Optional[SyncStats] = await pipeline.run()
            if stats is not None:
                logger.info(f"Scheduled run finished in {stats.duration_seconds:.1f}s")

        except Exception as e:
            logger.exception(f"Error in scheduled sync: {e}")

        runs += 1
        if max_runs is not None and runs >= max_runs:
            break

        # Wait for next run
        logger.info(f"Next sync in {interval} seconds...")
        await sleep(interval)
