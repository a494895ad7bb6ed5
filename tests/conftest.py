"""Pytest configuration and shared fixtures."""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest

# Add src to Python path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from data.repositories import Repository  # noqa: E402


class FakeClock:
    """Controllable clock returning aware UTC datetimes."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
async def repository(temp_dir):
    """Create an initialized repository backed by a temporary file."""
    repo = Repository(temp_dir / "test.db")
    await repo.initialize()
    yield repo
    await repo.close()


@pytest.fixture
def clock():
    return FakeClock()
