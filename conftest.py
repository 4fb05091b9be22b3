"""
Root-level pytest configuration for the issue sync.

Configures:
- pytest-asyncio for async test support
- Custom markers (integration, etc.)
- Test environment setup
"""

import pytest


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (may require network access)"
    )
    config.addinivalue_line(
        "markers",
        "asyncio: marks tests as async (handled by pytest-asyncio)"
    )


pytest_plugins = ["pytest_asyncio"]


@pytest.fixture(autouse=True)
def isolated_sync_env(monkeypatch):
    """Keep a developer's sync settings out of SyncConfig.from_env() in tests."""
    for name in (
        "GITHUB_TOKEN",
        "ISSUE_DB_PATH",
        "SYNC_CONFIG_PATH",
        "SYNC_CONFIG_TTL_SECONDS",
        "SYNC_INTERVAL_SECONDS",
        "PAGE_DELAY_SECONDS",
        "RECOVERY_DELAY_SECONDS",
        "MAX_PAGES",
        "PAGE_SIZE",
        "REFRESH_STARS",
    ):
        monkeypatch.delenv(name, raising=False)
