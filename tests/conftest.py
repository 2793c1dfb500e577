"""Shared fixtures."""

import pytest
import pytest_asyncio

from readingsync.infrastructure.sql_state_store import SqlStateStore


class FakeClock:
    """Manually advanced clock for deterministic timing."""

    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'state.db'}"


@pytest_asyncio.fixture
async def store(database_url):
    """Fresh SQL state store on a temporary SQLite file."""
    state_store = SqlStateStore(database_url)
    await state_store.create_schema()
    yield state_store
    await state_store.dispose()
