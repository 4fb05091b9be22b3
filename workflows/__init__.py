"""
Sync workflows.

- pagination.py: walks a target's search pages with pacing
- persistence.py: dedup, classify and store one page
- repository_resolver.py: find-or-create repository rows
- pipeline.py: one run across all targets (SyncConfig, SyncStats)
- scheduler.py: repeat runs on an interval
"""

from workflows.pipeline import IssueSyncPipeline, SyncConfig, SyncStats, pipeline_context
from workflows.results import RunResult, TargetResult, TargetStatus
from workflows.scheduler import run_scheduled_sync

__all__ = [
    "IssueSyncPipeline",
    "RunResult",
    "SyncConfig",
    "SyncStats",
    "TargetResult",
    "TargetStatus",
    "pipeline_context",
    "run_scheduled_sync",
]
