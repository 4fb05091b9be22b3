"""
Issue Storage Layer

Persistent SQLite storage for synced repositories, issues and their labels:
- Deduplication via unique GitHub ids
- Page-level transactions with per-item savepoints
- Migration support
- Read helpers for the CLI (stats, listings)

Tables:
  - repositories: GitHub repositories we have issues for
  - issues: classified open issues (created once, never re-scored)
  - labels: in-scope labels, owned by one issue
  - schema_migrations: Track applied migrations

Usage:
    async with issue_store("issues.db") as store:
        if not await store.issue_exists(12345):
            async with store.transaction():
                async with store.savepoint():
                    await store.insert_issue(record)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import aiosqlite

from classification.difficulty import DifficultyLevel
from classification.time_estimate import TimeBucket
from storage.sqlite_pragmas import apply_sqlite_pragmas

logger = logging.getLogger(__name__)


# =============================================================================
# SCHEMA VERSION
# =============================================================================

CURRENT_SCHEMA_VERSION = 1

MIGRATIONS = {
    1: """
    -- Repositories: one row per GitHub repository
    CREATE TABLE IF NOT EXISTS repositories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        github_repo_id INTEGER NOT NULL UNIQUE,
        owner TEXT NOT NULL,
        name TEXT NOT NULL,
        html_url TEXT,
        primary_language TEXT,
        stars_count INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,  -- ISO 8601
        updated_at TEXT NOT NULL,  -- ISO 8601

        UNIQUE(owner, name)
    );

    -- Issues: classified at insert time
    CREATE TABLE IF NOT EXISTS issues (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        github_issue_id INTEGER NOT NULL UNIQUE,
        repository_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        html_url TEXT,
        github_created_at TEXT,  -- ISO 8601, upstream creation time
        difficulty_level TEXT NOT NULL
            CHECK (difficulty_level IN ('beginner', 'intermediate', 'advanced')),
        estimated_time TEXT NOT NULL
            CHECK (estimated_time IN ('<1h', '1-3h', '3-8h', '>8h')),
        popularity_score INTEGER NOT NULL
            CHECK (popularity_score BETWEEN 0 AND 100),
        comments_count INTEGER NOT NULL DEFAULT 0,
        synced_at TEXT NOT NULL,  -- ISO 8601

        FOREIGN KEY (repository_id) REFERENCES repositories(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_issues_repository_id ON issues(repository_id);
    CREATE INDEX IF NOT EXISTS idx_issues_difficulty ON issues(difficulty_level);
    CREATE INDEX IF NOT EXISTS idx_issues_github_created_at ON issues(github_created_at);

    -- Labels: owned by exactly one issue
    CREATE TABLE IF NOT EXISTS labels (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        issue_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        color TEXT,  -- '#rrggbb'

        UNIQUE(issue_id, name),
        FOREIGN KEY (issue_id) REFERENCES issues(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_labels_name ON labels(name);

    -- Schema migrations tracking
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version INTEGER PRIMARY KEY,
        applied_at TEXT NOT NULL,
        description TEXT
    );
    """,
}


# =============================================================================
# DATA CLASSES
# =============================================================================

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Repository:
    """A repository row"""
    github_repo_id: int
    owner: str
    name: str
    html_url: Optional[str] = None
    primary_language: Optional[str] = None
    stars_count: int = 0
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class Label:
    """A persisted label (color stored with a leading '#')"""
    name: str
    color: Optional[str] = None

    @classmethod
    def from_github_color(cls, name: str, color: Optional[str]) -> Label:
        if color and not color.startswith("#"):
            color = f"#{color}"
        return cls(name=name, color=color)


@dataclass
class IssueRecord:
    """An issue row together with its labels"""
    github_issue_id: int
    repository_id: int
    title: str
    html_url: Optional[str]
    difficulty_level: DifficultyLevel
    estimated_time: TimeBucket
    popularity_score: int
    github_created_at: Optional[datetime] = None
    comments_count: int = 0
    labels: List[Label] = field(default_factory=list)
    id: Optional[int] = None
    synced_at: Optional[datetime] = None

    @property
    def label_names(self) -> List[str]:
        return [label.name for label in self.labels]


# =============================================================================
# ISSUE STORE
# =============================================================================

class IssueStore:
    """
    Async SQLite storage for synced issues.

    Writes go through transaction(); the sync groups one page of inserts in a
    single transaction and isolates each issue in a savepoint.
    """

    def __init__(self, db_path: Union[str, Path] = "issues.db"):
        """
        Args:
            db_path: Path to SQLite database file (":memory:" for tests)
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._savepoint_seq = 0

    @property
    def is_memory(self) -> bool:
        return self.db_path == ":memory:"

    async def initialize(self) -> None:
        """
        Open the connection and apply migrations.
        Should be called once at startup.
        """
        if not self.is_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(str(self.db_path))
        await apply_sqlite_pragmas(self._db, wal=not self.is_memory)

        await self._apply_migrations()

        logger.info(f"IssueStore initialized: {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Context manager for transactions.

        Usage:
            async with store.transaction() as conn:
                await conn.execute(...)
                # Commits on success, rolls back on exception
        """
        db = self._require_db()

        async with self._lock:
            try:
                await db.execute("BEGIN")
                yield db
                await db.commit()
            except BaseException:
                await db.rollback()
                raise

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Nested unit of work inside an open transaction.

        On exception only the savepoint's own writes are undone; the
        enclosing transaction stays usable.
        """
        db = self._require_db()
        if not db.in_transaction:
            raise RuntimeError("savepoint() requires an open transaction")

        self._savepoint_seq += 1
        name = f"sp_{self._savepoint_seq}"

        await db.execute(f"SAVEPOINT {name}")
        try:
            yield db
        except BaseException:
            await db.execute(f"ROLLBACK TO SAVEPOINT {name}")
            await db.execute(f"RELEASE SAVEPOINT {name}")
            raise
        await db.execute(f"RELEASE SAVEPOINT {name}")

    # =========================================================================
    # MIGRATIONS
    # =========================================================================

    async def _apply_migrations(self) -> None:
        """Apply pending schema migrations."""
        db = self._require_db()

        try:
            cursor = await db.execute("SELECT MAX(version) FROM schema_migrations")
            row = await cursor.fetchone()
            current_version = row[0] if row and row[0] else 0
        except aiosqlite.OperationalError:
            # Table doesn't exist yet
            current_version = 0

        for version in sorted(MIGRATIONS.keys()):
            if version <= current_version:
                continue

            logger.info(f"Applying migration v{version}...")

            # executescript commits on its own; DDL is idempotent (IF NOT EXISTS)
            await db.executescript(MIGRATIONS[version])

            async with self.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO schema_migrations (version, applied_at, description)
                    VALUES (?, ?, ?)
                    """,
                    (version, _now().isoformat(), f"Schema version {version}")
                )

            logger.info(f"Migration v{version} applied successfully")

    async def get_schema_version(self) -> int:
        db = self._require_db()
        cursor = await db.execute("SELECT MAX(version) FROM schema_migrations")
        row = await cursor.fetchone()
        return row[0] if row and row[0] else 0

    # =========================================================================
    # REPOSITORIES
    # =========================================================================

    _REPOSITORY_COLUMNS = """
        id, github_repo_id, owner, name, html_url, primary_language,
        stars_count, created_at, updated_at
    """

    @staticmethod
    def _row_to_repository(row) -> Repository:
        return Repository(
            id=row[0],
            github_repo_id=row[1],
            owner=row[2],
            name=row[3],
            html_url=row[4],
            primary_language=row[5],
            stars_count=row[6],
            created_at=_parse_datetime(row[7]),
            updated_at=_parse_datetime(row[8]),
        )

    async def get_repository(self, owner: str, name: str) -> Optional[Repository]:
        """Look up a repository by owner and name."""
        db = self._require_db()
        cursor = await db.execute(
            f"SELECT {self._REPOSITORY_COLUMNS} FROM repositories WHERE owner = ? AND name = ?",
            (owner, name)
        )
        row = await cursor.fetchone()
        return self._row_to_repository(row) if row else None

    async def get_repository_by_github_id(self, github_repo_id: int) -> Optional[Repository]:
        db = self._require_db()
        cursor = await db.execute(
            f"SELECT {self._REPOSITORY_COLUMNS} FROM repositories WHERE github_repo_id = ?",
            (github_repo_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_repository(row) if row else None

    async def save_repository(self, repository: Repository) -> Repository:
        """
        Insert a repository, or update the row with the same github_repo_id
        (covers renamed or transferred repositories).

        Returns the stored repository with its id.
        """
        self._require_db()
        now = _now().isoformat()

        async with self.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO repositories (
                    github_repo_id, owner, name, html_url, primary_language,
                    stars_count, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(github_repo_id) DO UPDATE SET
                    owner = excluded.owner,
                    name = excluded.name,
                    html_url = excluded.html_url,
                    primary_language = excluded.primary_language,
                    stars_count = excluded.stars_count,
                    updated_at = excluded.updated_at
                """,
                (
                    repository.github_repo_id,
                    repository.owner,
                    repository.name,
                    repository.html_url,
                    repository.primary_language,
                    repository.stars_count,
                    now,
                    now,
                )
            )

        stored = await self.get_repository_by_github_id(repository.github_repo_id)
        logger.debug(f"Saved repository {stored.full_name} (id={stored.id})")
        return stored

    async def update_repository_stars(self, repository_id: int, stars_count: int) -> None:
        """Refresh the star count of an existing repository."""
        self._require_db()
        async with self.transaction() as conn:
            await conn.execute(
                "UPDATE repositories SET stars_count = ?, updated_at = ? WHERE id = ?",
                (stars_count, _now().isoformat(), repository_id)
            )

    # =========================================================================
    # ISSUES
    # =========================================================================

    async def issue_exists(self, github_issue_id: int) -> bool:
        """True if an issue with this GitHub id is already stored."""
        db = self._require_db()
        cursor = await db.execute(
            "SELECT 1 FROM issues WHERE github_issue_id = ?",
            (github_issue_id,)
        )
        return await cursor.fetchone() is not None

    async def insert_issue(self, record: IssueRecord) -> int:
        """
        Insert an issue and its labels.

        Runs inside the caller's transaction when one is open, otherwise in
        its own. Returns the new row id.

        Raises:
            aiosqlite.IntegrityError: github_issue_id already stored
        """
        db = self._require_db()
        if db.in_transaction:
            return await self._insert_issue(db, record)
        async with self.transaction() as conn:
            return await self._insert_issue(conn, record)

    async def _insert_issue(self, conn: aiosqlite.Connection, record: IssueRecord) -> int:
        synced_at = record.synced_at or _now()
        cursor = await conn.execute(
            """
            INSERT INTO issues (
                github_issue_id, repository_id, title, html_url, github_created_at,
                difficulty_level, estimated_time, popularity_score, comments_count,
                synced_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.github_issue_id,
                record.repository_id,
                record.title,
                record.html_url,
                _format_datetime(record.github_created_at),
                DifficultyLevel(record.difficulty_level).value,
                TimeBucket(record.estimated_time).value,
                record.popularity_score,
                record.comments_count,
                synced_at.isoformat(),
            )
        )
        issue_id = cursor.lastrowid

        if record.labels:
            await conn.executemany(
                "INSERT OR IGNORE INTO labels (issue_id, name, color) VALUES (?, ?, ?)",
                [(issue_id, label.name, label.color) for label in record.labels]
            )

        logger.debug(f"Inserted issue {record.github_issue_id} (id={issue_id})")
        return issue_id

    async def _load_labels(self, issue_ids: List[int]) -> Dict[int, List[Label]]:
        if not issue_ids:
            return {}
        db = self._require_db()
        placeholders = ",".join("?" for _ in issue_ids)
        cursor = await db.execute(
            f"SELECT issue_id, name, color FROM labels WHERE issue_id IN ({placeholders}) ORDER BY id",
            issue_ids
        )
        labels: Dict[int, List[Label]] = {}
        for issue_id, name, color in await cursor.fetchall():
            labels.setdefault(issue_id, []).append(Label(name=name, color=color))
        return labels

    _ISSUE_COLUMNS = """
        i.id, i.github_issue_id, i.repository_id, i.title, i.html_url,
        i.github_created_at, i.difficulty_level, i.estimated_time,
        i.popularity_score, i.comments_count, i.synced_at
    """

    @staticmethod
    def _row_to_issue(row, labels: List[Label]) -> IssueRecord:
        return IssueRecord(
            id=row[0],
            github_issue_id=row[1],
            repository_id=row[2],
            title=row[3],
            html_url=row[4],
            github_created_at=_parse_datetime(row[5]),
            difficulty_level=DifficultyLevel(row[6]),
            estimated_time=TimeBucket(row[7]),
            popularity_score=row[8],
            comments_count=row[9],
            synced_at=_parse_datetime(row[10]),
            labels=labels,
        )

    async def get_issue(self, github_issue_id: int) -> Optional[IssueRecord]:
        """Get an issue with its labels by GitHub id."""
        db = self._require_db()
        cursor = await db.execute(
            f"SELECT {self._ISSUE_COLUMNS} FROM issues i WHERE i.github_issue_id = ?",
            (github_issue_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        labels = await self._load_labels([row[0]])
        return self._row_to_issue(row, labels.get(row[0], []))

    async def list_issues(
        self,
        repository: Optional[str] = None,
        difficulty: Optional[DifficultyLevel] = None,
        estimated_time: Optional[TimeBucket] = None,
        limit: Optional[int] = 50,
    ) -> List[IssueRecord]:
        """
        List stored issues, newest upstream first.

        Args:
            repository: Filter by "owner/name"
            difficulty: Filter by difficulty level
            estimated_time: Filter by time bucket
            limit: Maximum number of issues (None = all)
        """
        db = self._require_db()

        query = f"""
            SELECT {self._ISSUE_COLUMNS}
            FROM issues i
            INNER JOIN repositories r ON r.id = i.repository_id
            WHERE 1 = 1
        """
        params: List[Any] = []

        if repository:
            owner, _, name = repository.partition("/")
            query += " AND r.owner = ? AND r.name = ?"
            params.extend([owner, name])

        if difficulty:
            query += " AND i.difficulty_level = ?"
            params.append(DifficultyLevel(difficulty).value)

        if estimated_time:
            query += " AND i.estimated_time = ?"
            params.append(TimeBucket(estimated_time).value)

        query += " ORDER BY i.github_created_at DESC, i.id DESC"

        if limit:
            query += " LIMIT ?"
            params.append(limit)

        cursor = await db.execute(query, params)
        rows = await cursor.fetchall()
        labels = await self._load_labels([row[0] for row in rows])
        return [self._row_to_issue(row, labels.get(row[0], [])) for row in rows]

    async def get_stats(self) -> Dict[str, Any]:
        """Get overall database statistics."""
        db = self._require_db()

        async def scalar(sql: str) -> int:
            cursor = await db.execute(sql)
            return (await cursor.fetchone())[0]

        cursor = await db.execute(
            "SELECT difficulty_level, COUNT(*) FROM issues GROUP BY difficulty_level"
        )
        by_difficulty = dict(await cursor.fetchall())

        cursor = await db.execute(
            "SELECT estimated_time, COUNT(*) FROM issues GROUP BY estimated_time"
        )
        by_time = dict(await cursor.fetchall())

        cursor = await db.execute(
            """
            SELECT r.owner || '/' || r.name, COUNT(i.id)
            FROM repositories r
            LEFT JOIN issues i ON i.repository_id = r.id
            GROUP BY r.id
            ORDER BY r.owner, r.name
            """
        )
        by_repository = dict(await cursor.fetchall())

        return {
            "total_repositories": await scalar("SELECT COUNT(*) FROM repositories"),
            "total_issues": await scalar("SELECT COUNT(*) FROM issues"),
            "total_labels": await scalar("SELECT COUNT(*) FROM labels"),
            "issues_by_difficulty": by_difficulty,
            "issues_by_estimated_time": by_time,
            "issues_by_repository": by_repository,
            "database_path": str(self.db_path),
        }


# =============================================================================
# CONTEXT MANAGER FOR EASY USAGE
# =============================================================================

@asynccontextmanager
async def issue_store(db_path: Union[str, Path] = "issues.db") -> AsyncIterator[IssueStore]:
    """
    Context manager for IssueStore that handles initialization and cleanup.

    Usage:
        async with issue_store("issues.db") as store:
            stats = await store.get_stats()
    """
    store = IssueStore(db_path)
    await store.initialize()
    try:
        yield store
    finally:
        await store.close()
