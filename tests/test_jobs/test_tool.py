"""后台任务单元测试."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from elasticshift.configuration import ElasticConfiguration
from elasticshift.coordination import InMemoryWorkQueue
from elasticshift.core import LockKeys
from elasticshift.descriptors import IndexConfigBuilder
from elasticshift.jobs import MaintainIndexesJob, ReindexQueueWorker, ReindexWorkItemHandler
from elasticshift.reindex import MigrationFatalError, ReindexConfig, Reindexer, ReindexTask


def _task() -> ReindexTask:
    return ReindexTask("employees-v1", "employees-v2", alias="employees")


@pytest.fixture
def configuration(index_manager, cache, locks, clock) -> ElasticConfiguration:
    return ElasticConfiguration(
        index_manager,
        [IndexConfigBuilder("employees").version(2).build()],
        cache=cache,
        lock_provider=locks,
        work_queue=InMemoryWorkQueue(),
        now_func=clock,
    )


class TestMaintainIndexesJob:
    """MaintainIndexesJob 测试."""

    @pytest.mark.asyncio
    async def test_runs_and_releases_lock(self, configuration, index_manager, locks) -> None:
        index_manager.add_index("employees-v1")

        assert await MaintainIndexesJob(configuration).run() is True

        assert index_manager.aliases_of("employees-v1") == {"employees"}
        assert not await locks.is_locked(LockKeys.MAINTAIN_INDEXES)

    @pytest.mark.asyncio
    async def test_skipped_when_locked(self, configuration, index_manager, locks) -> None:
        index_manager.add_index("employees-v1")
        await locks.try_acquire(LockKeys.MAINTAIN_INDEXES, timedelta(minutes=30))

        assert await MaintainIndexesJob(configuration).run() is False
        assert index_manager.alias_updates == []

    @pytest.mark.asyncio
    async def test_lock_released_on_failure(self, locks) -> None:
        configuration = MagicMock()
        configuration.maintain_indexes = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await MaintainIndexesJob(configuration, lock_provider=locks).run()

        assert not await locks.is_locked(LockKeys.MAINTAIN_INDEXES)
        configuration.maintain_indexes.assert_awaited_once_with(True)


class TestReindexWorkItemHandler:
    """ReindexWorkItemHandler 测试."""

    @pytest.mark.asyncio
    async def test_holds_lock_while_running(self, locks) -> None:
        observed = []

        async def reindex(task, progress):
            observed.append(await locks.is_locked(task.lock_key))
            return "result"

        reindexer = MagicMock()
        reindexer.reindex = AsyncMock(side_effect=reindex)

        result = await ReindexWorkItemHandler(reindexer, locks).handle(_task())

        assert result == "result"
        assert observed == [True]
        assert not await locks.is_locked(_task().lock_key)

    @pytest.mark.asyncio
    async def test_skipped_when_running_elsewhere(self, locks) -> None:
        reindexer = MagicMock()
        reindexer.reindex = AsyncMock()
        await locks.try_acquire(_task().lock_key, timedelta(minutes=20))

        assert await ReindexWorkItemHandler(reindexer, locks).handle(_task()) is None
        reindexer.reindex.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lock_released_on_failure(self, locks) -> None:
        reindexer = MagicMock()
        reindexer.reindex = AsyncMock(side_effect=MigrationFatalError("boom"))

        with pytest.raises(MigrationFatalError):
            await ReindexWorkItemHandler(reindexer, locks).handle(_task())

        assert not await locks.is_locked(_task().lock_key)

    @pytest.mark.asyncio
    async def test_lock_renewed_during_long_running_task(
        self, configuration, index_manager, cache, locks, clock
    ) -> None:
        """运行时间超过锁有效期的任务不会被再次入队."""
        documents = {str(i): {"name": f"employee-{i}"} for i in range(1, 6)}
        index_manager.add_index("employees-v1", aliases=["employees"], documents=documents)
        index_manager.add_index("employees-v2")
        reindexer = Reindexer(index_manager, cache, ReindexConfig(page_size=1), now_func=clock)
        started = clock()
        enqueued = []

        async def slow_progress(percent, message):
            clock.advance(timedelta(minutes=7))
            if clock() - started > timedelta(minutes=21):
                enqueued.append(await configuration.enqueue_reindex(_task()))

        result = await ReindexWorkItemHandler(reindexer, locks).handle(_task(), slow_progress)

        assert result.source_deleted
        assert enqueued
        assert not any(enqueued)
        assert not await locks.is_locked(_task().lock_key)

    @pytest.mark.asyncio
    async def test_expired_lock_reacquired_on_progress(self, locks, clock) -> None:
        observed = []

        async def reindex(task, progress):
            clock.advance(timedelta(minutes=25))
            observed.append(await locks.is_locked(task.lock_key))
            await progress(50, "总数: 2 已完成: 1")
            observed.append(await locks.is_locked(task.lock_key))
            return "result"

        reindexer = MagicMock()
        reindexer.reindex = AsyncMock(side_effect=reindex)
        messages = []

        result = await ReindexWorkItemHandler(reindexer, locks).handle(
            _task(), lambda percent, message: messages.append((percent, message))
        )

        assert result == "result"
        assert observed == [False, True]
        assert messages == [(50, "总数: 2 已完成: 1")]


class TestReindexQueueWorker:
    """ReindexQueueWorker 测试."""

    @pytest.mark.asyncio
    async def test_run_once_executes_task(self, index_manager, cache, locks, clock) -> None:
        index_manager.add_index("employees-v1", aliases=["employees"], documents={"1": {"a": 1}})
        index_manager.add_index("employees-v2")
        queue = InMemoryWorkQueue()
        await queue.enqueue(_task())
        reindexer = Reindexer(index_manager, cache, ReindexConfig(page_size=10), now_func=clock)
        worker = ReindexQueueWorker(queue, ReindexWorkItemHandler(reindexer, locks))

        result = await worker.run_once()

        assert result.source_deleted
        assert index_manager.aliases_of("employees-v2") == {"employees"}
        assert await worker.run_once() is None

    @pytest.mark.asyncio
    async def test_run_continues_after_failure(self, locks) -> None:
        queue = InMemoryWorkQueue()
        await queue.enqueue(_task())
        await queue.enqueue(ReindexTask("logs-v1", "logs-v2", alias="logs"))
        stop_event = asyncio.Event()
        handled = []

        async def reindex(task, progress):
            handled.append(task.source_index)
            if len(handled) == 1:
                raise MigrationFatalError("boom")
            stop_event.set()

        reindexer = MagicMock()
        reindexer.reindex = AsyncMock(side_effect=reindex)
        worker = ReindexQueueWorker(queue, ReindexWorkItemHandler(reindexer, locks))

        await asyncio.wait_for(worker.run(stop_event, poll_timeout=0.01), timeout=5)

        assert handled == ["employees-v1", "logs-v1"]
