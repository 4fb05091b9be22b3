"""Tests for IssueStore - repositories, issues and labels in SQLite."""
import pytest
import aiosqlite
from datetime import datetime, timezone

from classification.difficulty import DifficultyLevel
from classification.time_estimate import TimeBucket
from storage.issue_store import IssueStore, IssueRecord, Label, Repository, issue_store


async def _store() -> IssueStore:
    store = IssueStore(":memory:")
    await store.initialize()
    return store


async def _repository(store: IssueStore, github_repo_id=11730342, owner="vuejs", name="vue") -> Repository:
    return await store.save_repository(Repository(
        github_repo_id=github_repo_id,
        owner=owner,
        name=name,
        html_url=f"https://github.com/{owner}/{name}",
        primary_language="TypeScript",
        stars_count=200,
    ))


def _record(repository_id: int, github_issue_id=1001, **overrides) -> IssueRecord:
    values = dict(
        github_issue_id=github_issue_id,
        repository_id=repository_id,
        title="Fix typo in README",
        html_url=f"https://github.com/vuejs/vue/issues/{github_issue_id}",
        difficulty_level=DifficultyLevel.BEGINNER,
        estimated_time=TimeBucket.ONE_TO_THREE_H,
        popularity_score=24,
        github_created_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        comments_count=3,
        labels=[Label("good first issue", "#7057ff")],
    )
    values.update(overrides)
    return IssueRecord(**values)


class TestSchema:

    @pytest.mark.asyncio
    async def test_migrations_applied(self):
        store = await _store()
        assert await store.get_schema_version() == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_requires_initialize(self):
        store = IssueStore(":memory:")
        with pytest.raises(RuntimeError):
            await store.issue_exists(1)

    @pytest.mark.asyncio
    async def test_reopening_file_database_keeps_data(self, tmp_path):
        db_path = tmp_path / "nested" / "issues.db"

        async with issue_store(db_path) as store:
            repo = await _repository(store)
            await store.insert_issue(_record(repo.id))

        async with issue_store(db_path) as store:
            assert await store.issue_exists(1001)
            assert await store.get_schema_version() == 1


class TestRepositories:

    @pytest.mark.asyncio
    async def test_save_and_get_repository(self):
        store = await _store()
        saved = await _repository(store)

        assert saved.id is not None
        assert saved.full_name == "vuejs/vue"
        assert saved.created_at is not None

        loaded = await store.get_repository("vuejs", "vue")
        assert loaded == saved
        assert await store.get_repository("vuejs", "core") is None
        await store.close()

    @pytest.mark.asyncio
    async def test_save_is_upsert_on_github_id(self):
        """A renamed repository keeps its row"""
        store = await _store()
        first = await _repository(store)
        renamed = await _repository(store, owner="vuejs", name="vue-legacy")

        assert renamed.id == first.id
        assert await store.get_repository("vuejs", "vue") is None
        assert (await store.get_stats())["total_repositories"] == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_owner_name_unique(self):
        store = await _store()
        await _repository(store)
        with pytest.raises(aiosqlite.IntegrityError):
            await _repository(store, github_repo_id=999)
        await store.close()

    @pytest.mark.asyncio
    async def test_update_stars(self):
        store = await _store()
        repo = await _repository(store)
        await store.update_repository_stars(repo.id, 5000)

        loaded = await store.get_repository("vuejs", "vue")
        assert loaded.stars_count == 5000
        await store.close()


class TestIssues:

    @pytest.mark.asyncio
    async def test_insert_and_get_issue(self):
        store = await _store()
        repo = await _repository(store)

        await store.insert_issue(_record(repo.id))

        issue = await store.get_issue(1001)
        assert issue is not None
        assert issue.title == "Fix typo in README"
        assert issue.difficulty_level == DifficultyLevel.BEGINNER
        assert issue.estimated_time == TimeBucket.ONE_TO_THREE_H
        assert issue.popularity_score == 24
        assert issue.labels == [Label("good first issue", "#7057ff")]
        assert issue.synced_at is not None
        assert issue.github_created_at.year == 2024
        await store.close()

    @pytest.mark.asyncio
    async def test_issue_exists(self):
        store = await _store()
        repo = await _repository(store)

        assert await store.issue_exists(1001) is False
        await store.insert_issue(_record(repo.id))
        assert await store.issue_exists(1001) is True
        await store.close()

    @pytest.mark.asyncio
    async def test_duplicate_issue_rejected(self):
        store = await _store()
        repo = await _repository(store)
        await store.insert_issue(_record(repo.id))

        with pytest.raises(aiosqlite.IntegrityError):
            await store.insert_issue(_record(repo.id, title="Other title"))

        issue = await store.get_issue(1001)
        assert issue.title == "Fix typo in README"
        await store.close()

    @pytest.mark.asyncio
    async def test_popularity_out_of_range_rejected(self):
        store = await _store()
        repo = await _repository(store)
        with pytest.raises(aiosqlite.IntegrityError):
            await store.insert_issue(_record(repo.id, popularity_score=101))
        await store.close()

    @pytest.mark.asyncio
    async def test_unknown_repository_rejected(self):
        store = await _store()
        with pytest.raises(aiosqlite.IntegrityError):
            await store.insert_issue(_record(repository_id=424242))
        await store.close()

    @pytest.mark.asyncio
    async def test_labels_deleted_with_issue(self):
        store = await _store()
        repo = await _repository(store)
        await store.insert_issue(_record(repo.id))

        async with store.transaction() as conn:
            await conn.execute("DELETE FROM issues WHERE github_issue_id = ?", (1001,))

        assert (await store.get_stats())["total_labels"] == 0
        await store.close()


class TestTransactions:

    @pytest.mark.asyncio
    async def test_savepoint_isolates_failed_item(self):
        store = await _store()
        repo = await _repository(store)
        await store.insert_issue(_record(repo.id, github_issue_id=1))

        async with store.transaction():
            for github_issue_id in (2, 1, 3):
                try:
                    async with store.savepoint():
                        await store.insert_issue(_record(repo.id, github_issue_id=github_issue_id))
                except aiosqlite.IntegrityError:
                    pass

        for github_issue_id in (1, 2, 3):
            assert await store.issue_exists(github_issue_id)
        assert (await store.get_stats())["total_issues"] == 3
        await store.close()

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_on_error(self):
        store = await _store()
        repo = await _repository(store)

        with pytest.raises(ValueError):
            async with store.transaction():
                await store.insert_issue(_record(repo.id))
                raise ValueError("boom")

        assert await store.issue_exists(1001) is False
        await store.close()

    @pytest.mark.asyncio
    async def test_savepoint_outside_transaction_rejected(self):
        store = await _store()
        with pytest.raises(RuntimeError):
            async with store.savepoint():
                pass
        await store.close()


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_issues_filters(self):
        store = await _store()
        vue = await _repository(store)
        react = await _repository(store, github_repo_id=10270250, owner="facebook", name="react")

        await store.insert_issue(_record(vue.id, github_issue_id=1))
        await store.insert_issue(_record(
            react.id,
            github_issue_id=2,
            difficulty_level=DifficultyLevel.ADVANCED,
            estimated_time=TimeBucket.OVER_8H,
            github_created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        ))

        everything = await store.list_issues()
        assert [i.github_issue_id for i in everything] == [2, 1]

        assert [i.github_issue_id for i in await store.list_issues(repository="vuejs/vue")] == [1]
        assert [i.github_issue_id for i in await store.list_issues(difficulty=DifficultyLevel.ADVANCED)] == [2]
        assert [i.github_issue_id for i in await store.list_issues(estimated_time="1-3h")] == [1]
        assert len(await store.list_issues(limit=1)) == 1
        await store.close()

    @pytest.mark.asyncio
    async def test_get_stats(self):
        store = await _store()
        vue = await _repository(store)
        await _repository(store, github_repo_id=10270250, owner="facebook", name="react")
        await store.insert_issue(_record(vue.id, github_issue_id=1))
        await store.insert_issue(_record(vue.id, github_issue_id=2, labels=[]))

        stats = await store.get_stats()
        assert stats["total_repositories"] == 2
        assert stats["total_issues"] == 2
        assert stats["total_labels"] == 1
        assert stats["issues_by_difficulty"] == {"beginner": 2}
        assert stats["issues_by_estimated_time"] == {"1-3h": 2}
        assert stats["issues_by_repository"] == {"facebook/react": 0, "vuejs/vue": 2}
        await store.close()
