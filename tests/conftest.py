"""
Shared fixtures for Gloworld tests.

Every test gets its own temporary database directory and a controllable
clock so timestamp assertions are exact.
"""

import tempfile

import pytest
import pytest_asyncio

from gloworld_server.config import Settings
from gloworld_server.main import Gloworld

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    """Create controllable clock."""
    return FakeClock()


@pytest.fixture
def settings(data_dir):
    """Settings pointing at the temporary directory."""
    return Settings(database_path=f"{data_dir}/gloworld.db", wal_mode=False)


@pytest.fixture
def fresh_app(settings, clock):
    """Wired components on an empty database (nothing bootstrapped)."""
    return Gloworld(settings, clock=clock)


@pytest_asyncio.fixture
async def app(fresh_app):
    """Wired components on a bootstrapped database."""
    await fresh_app.bootstrap.apply()
    return fresh_app


@pytest.fixture
def register(app):
    """Register principals through the identity boundary."""

    async def _register(principal_id: str, **metadata):
        await app.identity.principal_created(principal_id, metadata=metadata or None)
        return principal_id

    return _register
