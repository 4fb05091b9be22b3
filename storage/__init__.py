"""
Storage layer for the issue sync.

Persistent SQLite storage for repositories, classified issues and their
labels, with deduplication on GitHub ids.

Main components:
- IssueStore: Async SQLite storage with page transactions and savepoints
- Repository, IssueRecord, Label: Rows loaded from the database

Quick start:
    from storage import issue_store

    async with issue_store("issues.db") as store:
        if not await store.issue_exists(github_issue_id):
            await store.insert_issue(record)

        stats = await store.get_stats()
"""

from storage.issue_store import (
    IssueStore,
    IssueRecord,
    Label,
    Repository,
    issue_store,
    CURRENT_SCHEMA_VERSION,
)

__all__ = [
    "IssueStore",
    "IssueRecord",
    "Label",
    "Repository",
    "issue_store",
    "CURRENT_SCHEMA_VERSION",
]

__version__ = "1.0.0"
