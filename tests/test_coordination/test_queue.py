"""任务队列单元测试."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from elasticshift.coordination import InMemoryWorkQueue, RedisWorkQueue
from elasticshift.reindex import ReindexTask


def _task() -> ReindexTask:
    return ReindexTask(
        "logs-v1-2024.01.01",
        "logs-v2-2024.01.01",
        alias="logs-2024.01.01",
        script="ctx._source.remove('old')",
        timestamp_field="created_at",
        parent_path_by_type={"comment": "post_id"},
        checkpoint_expires_at=datetime(2024, 4, 1, tzinfo=UTC),
    )


class TestInMemoryWorkQueue:
    @pytest.mark.asyncio
    async def test_fifo(self) -> None:
        queue = InMemoryWorkQueue()
        first = ReindexTask("a-v1", "a-v2", alias="a")
        second = ReindexTask("b-v1", "b-v2", alias="b")
        await queue.enqueue(first)
        await queue.enqueue(second)

        assert queue.qsize() == 2
        assert await queue.dequeue() == first
        assert await queue.dequeue(timeout=0.01) == second

    @pytest.mark.asyncio
    async def test_empty(self) -> None:
        queue = InMemoryWorkQueue()
        assert await queue.dequeue() is None
        assert await queue.dequeue(timeout=0.01) is None


class TestRedisWorkQueue:
    """RedisWorkQueue 测试（使用模拟的 redis 客户端）."""

    @pytest.mark.asyncio
    async def test_enqueue_serializes_task(self) -> None:
        client = AsyncMock()
        queue = RedisWorkQueue(client=client, queue_name="q")

        await queue.enqueue(_task())

        name, payload = client.rpush.call_args.args
        assert name == "q"
        assert ReindexTask.from_dict(json.loads(payload)) == _task()

    @pytest.mark.asyncio
    async def test_dequeue_blocking(self) -> None:
        client = AsyncMock()
        client.blpop.return_value = ("q", json.dumps(_task().to_dict()))
        queue = RedisWorkQueue(client=client, queue_name="q")

        task = await queue.dequeue(timeout=1.0)

        assert task == _task()
        assert task.task_hash() == _task().task_hash()
        client.blpop.assert_awaited_once_with(["q"], timeout=1.0)

    @pytest.mark.asyncio
    async def test_dequeue_timeout(self) -> None:
        client = AsyncMock()
        client.blpop.return_value = None
        assert await RedisWorkQueue(client=client).dequeue(timeout=1.0) is None

    @pytest.mark.asyncio
    async def test_dequeue_non_blocking(self) -> None:
        client = AsyncMock()
        client.lpop.return_value = None
        assert await RedisWorkQueue(client=client).dequeue() is None
        client.lpop.assert_awaited_once()
