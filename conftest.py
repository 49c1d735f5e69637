"""Pytest configuration: shared settings, clock and a real SQLite-backed storage per test."""

import pytest
import pytest_asyncio

from onetime.clock import fixed_clock
from onetime.config import Settings

FILES_KEY = "test-files-key"
LINKS_KEY = "test-links-key"
NOW = 1_600_000_000_000


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a fresh SQLite file under tmp_path."""
    return Settings(
        provider="sql",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'onetime.db'}",
        files_api_key=FILES_KEY,
        links_api_key=LINKS_KEY,
        storage_timeout_seconds=30.0,
        log_level="WARNING",
    )


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest_asyncio.fixture
async def sql_storage(settings):
    """Initialized SqlStorage; engine disposed after the test."""
    from onetime.storage.sql import SqlStorage

    storage = SqlStorage.from_settings(settings)
    await storage.init()
    yield storage
    await storage.close()
