"""Tests for IssueSyncPipeline - end-to-end runs against a fake GitHub."""
import asyncio
import pytest
import pytest_asyncio
import httpx
import aiosqlite
from unittest.mock import AsyncMock

from collectors.github_issues import GitHubIssuesClient
from services.config_loader import ConfigLoader
from services.targets import RepositoryTarget
from storage.issue_store import IssueStore
from workflows.pipeline import IssueSyncPipeline, SyncConfig, pipeline_context
from workflows.results import RunResult, TargetStatus

VUE = RepositoryTarget("vuejs/vue", "javascript", ("good first issue",))
GONE = RepositoryTarget("someone/deleted", "java", ())

REPOS = {
    "/repos/vuejs/vue": {
        "id": 11730342,
        "full_name": "vuejs/vue",
        "html_url": "https://github.com/vuejs/vue",
        "language": "TypeScript",
        "stargazers_count": 207000,
    },
}


def _issue(issue_id, labels=("good first issue",)):
    return {
        "id": issue_id,
        "title": f"Issue {issue_id}",
        "html_url": f"https://github.com/x/y/issues/{issue_id}",
        "comments": 2,
        "created_at": "2024-03-01T12:00:00Z",
        "labels": [{"name": name, "color": "ededed"} for name in labels],
    }


class FakeGitHub:
    """Routes requests like the GitHub API would"""

    def __init__(self):
        self.requests = []
        self.search_gate = None  # asyncio.Event blocking searches when set

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/rate_limit":
            return httpx.Response(200, json={"resources": {"core": {"limit": 5000, "remaining": 4999}}})

        if path == "/search/issues":
            if self.search_gate is not None:
                await self.search_gate.wait()
            query = request.url.params["q"]
            if "repo:vuejs/vue" in query:
                return httpx.Response(200, json={"total_count": 2, "items": [_issue(1), _issue(2)]})
            return httpx.Response(200, json={"total_count": 1, "items": [_issue(99)]})

        if path in REPOS:
            return httpx.Response(200, json=REPOS[path])

        return httpx.Response(404, json={"message": "Not Found"})


@pytest_asyncio.fixture
async def store():
    store = IssueStore(":memory:")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def github():
    return FakeGitHub()


@pytest_asyncio.fixture
async def pipeline(store, github):
    async def no_sleep(seconds):
        return None

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(github))
    client = GitHubIssuesClient(token="t", http_client=http_client, sleep=no_sleep)
    config = SyncConfig(page_delay_seconds=0, recovery_delay_seconds=0)

    pipeline = IssueSyncPipeline(
        config=config,
        store=store,
        client=client,
        config_loader=ConfigLoader(None),
    )
    yield pipeline
    await pipeline.close()
    await http_client.aclose()


class TestRun:

    @pytest.mark.asyncio
    async def test_run_stores_issues(self, pipeline, store):
        stats = await pipeline.run([VUE])

        assert stats.targets_run == 1
        assert stats.targets_succeeded == 1
        assert stats.issues_processed == 2
        assert stats.rate_limit["resources"]["core"]["remaining"] == 4999
        assert stats.completed_at is not None

        repo = await store.get_repository("vuejs", "vue")
        assert repo.stars_count == 207000
        assert len(await store.list_issues(repository="vuejs/vue")) == 2

    @pytest.mark.asyncio
    async def test_second_run_skips_everything(self, pipeline):
        first = await pipeline.run([VUE])
        second = await pipeline.run([VUE])

        assert (first.issues_processed, first.issues_skipped) == (2, 0)
        assert (second.issues_processed, second.issues_skipped) == (0, 2)
        assert second.result.has_new_issues is False

    @pytest.mark.asyncio
    async def test_failing_target_does_not_stop_run(self, pipeline, store):
        stats = await pipeline.run([GONE, VUE])

        assert stats.targets_run == 2
        assert stats.targets_failed == 1
        assert stats.targets_succeeded == 1
        assert stats.target_results[0].status == TargetStatus.ERROR
        assert "someone/deleted" in stats.errors[0]
        assert stats.issues_processed == 2
        assert await store.issue_exists(99) is False

    @pytest.mark.asyncio
    async def test_store_failure_reports_committed_pages(self, pipeline):
        await pipeline.initialize()
        pipeline._driver.page_size = 2  # both fake items fill a page
        pipeline._gateway.persist_page = AsyncMock(side_effect=[
            RunResult(processed=2),
            aiosqlite.OperationalError("database is locked"),
        ])

        stats = await pipeline.run([VUE])

        result = stats.target_results[0]
        assert result.status == TargetStatus.ERROR
        assert result.result.processed == 2
        assert stats.issues_processed == 2
        assert stats.targets_failed == 1
        assert "database is locked" in stats.errors[0]

    @pytest.mark.asyncio
    async def test_targets_default_to_config_loader(self, pipeline, github):
        pipeline.config_loader = ConfigLoader(None)
        pipeline.config_loader.get_active_config()  # warm cache
        stats = await pipeline.run()

        # Five default targets; only vuejs/vue resolves in the fake API
        assert stats.targets_run == 5
        assert stats.targets_succeeded == 1

    @pytest.mark.asyncio
    async def test_overlapping_run_is_refused(self, pipeline, github):
        github.search_gate = asyncio.Event()

        first = asyncio.create_task(pipeline.run([VUE]))
        for _ in range(100):
            if pipeline.is_running and any(r.url.path == "/search/issues" for r in github.requests):
                break
            await asyncio.sleep(0.01)

        assert pipeline.is_running
        assert await pipeline.run([VUE]) is None

        github.search_gate.set()
        stats = await first
        assert stats.issues_processed == 2
        assert pipeline.is_running is False


class TestSyncConfig:

    def test_defaults(self):
        config = SyncConfig()
        assert config.db_path == "issues.db"
        assert config.sync_interval_seconds == 4 * 60 * 60
        assert config.page_delay_seconds == 30.0
        assert config.recovery_delay_seconds == 120.0
        assert config.max_pages == 10
        assert config.page_size == 100
        assert config.refresh_stars is True

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
        monkeypatch.setenv("ISSUE_DB_PATH", "/tmp/x.db")
        monkeypatch.setenv("SYNC_CONFIG_PATH", "/etc/sync.json")
        monkeypatch.setenv("SYNC_INTERVAL_SECONDS", "7200")
        monkeypatch.setenv("PAGE_DELAY_SECONDS", "1.5")
        monkeypatch.setenv("MAX_PAGES", "3")
        monkeypatch.setenv("REFRESH_STARS", "false")

        config = SyncConfig.from_env()

        assert config.github_token == "ghp_test"
        assert config.db_path == "/tmp/x.db"
        assert config.config_path == "/etc/sync.json"
        assert config.sync_interval_seconds == 7200
        assert config.page_delay_seconds == 1.5
        assert config.max_pages == 3
        assert config.refresh_stars is False


class TestPipelineContext:

    @pytest.mark.asyncio
    async def test_context_initializes_and_closes(self, tmp_path):
        config = SyncConfig(db_path=str(tmp_path / "issues.db"))

        async with pipeline_context(config) as pipeline:
            assert pipeline.store is not None
            assert await pipeline.store.get_schema_version() == 1

        assert pipeline.store is None
