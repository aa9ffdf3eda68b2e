"""公共测试 fixtures."""

from datetime import UTC, datetime

import pytest

from elasticshift.coordination import InMemoryCacheClient, InMemoryLockProvider
from tests.fakes import FakeClock, FakeIndexManager


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 6, 15, 10, 30, tzinfo=UTC))


@pytest.fixture
def index_manager() -> FakeIndexManager:
    return FakeIndexManager()


@pytest.fixture
def cache(clock) -> InMemoryCacheClient:
    return InMemoryCacheClient(clock)


@pytest.fixture
def locks(clock) -> InMemoryLockProvider:
    return InMemoryLockProvider(clock)
