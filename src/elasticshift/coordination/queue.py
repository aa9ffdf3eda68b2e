"""重建索引任务队列.

队列把"发现版本差异"与"执行迁移"解耦，请求处理路径不会被迁移阻塞。
"""

import asyncio
import json
import logging
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..reindex.models import ReindexTask
from .exceptions import CoordinationError

logger = logging.getLogger(__name__)


class WorkQueue(Protocol):
    """任务队列协议."""

    async def enqueue(self, task: ReindexTask) -> None: ...

    async def dequeue(self, timeout: float | None = None) -> ReindexTask | None: ...


class InMemoryWorkQueue:
    """基于 asyncio.Queue 的进程内队列."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ReindexTask] = asyncio.Queue()

    def qsize(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, task: ReindexTask) -> None:
        await self._queue.put(task)
        logger.info(f"重建索引任务入队: {task.source_index} -> {task.dest_index}")

    async def dequeue(self, timeout: float | None = None) -> ReindexTask | None:
        """取出一个任务，超时返回 None；timeout 为 None 时立即返回."""
        if timeout is None:
            try:
                return self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return None
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


class RedisWorkQueue:
    """基于 Redis 列表的任务队列（RPUSH 入队，BLPOP 出队）.

    Args:
        client: redis.asyncio 客户端，未提供时根据 redis_url 创建
        redis_url: Redis 连接地址
        queue_name: 列表键名
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        redis_url: str = "redis://localhost:6379",
        queue_name: str = "elasticshift:reindex-queue",
    ):
        self._client = client or redis.from_url(redis_url, decode_responses=True)
        self._queue_name = queue_name

    async def enqueue(self, task: ReindexTask) -> None:
        try:
            await self._client.rpush(self._queue_name, json.dumps(task.to_dict()))
        except RedisError as e:
            raise CoordinationError(f"重建索引任务入队失败: {str(e)}") from e
        logger.info(f"重建索引任务入队: {task.source_index} -> {task.dest_index}")

    async def dequeue(self, timeout: float | None = None) -> ReindexTask | None:
        try:
            if timeout is None:
                raw = await self._client.lpop(self._queue_name)
            else:
                item = await self._client.blpop([self._queue_name], timeout=timeout)
                raw = item[1] if item else None
        except RedisError as e:
            raise CoordinationError(f"重建索引任务出队失败: {str(e)}") from e

        if raw is None:
            return None
        return ReindexTask.from_dict(json.loads(raw))
