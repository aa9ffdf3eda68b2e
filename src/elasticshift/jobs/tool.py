"""后台任务：索引巡检与迁移任务执行."""

import asyncio
import logging
import time
from datetime import timedelta

from ..configuration import ElasticConfiguration
from ..coordination.lock import LockProvider
from ..coordination.queue import WorkQueue
from ..core.constants import Defaults, LockKeys
from ..exceptions import ElasticShiftError
from ..reindex import ReindexResult, Reindexer, ReindexTask, report_progress
from ..typing import ProgressCallback

logger = logging.getLogger(__name__)


class MaintainIndexesJob:
    """
    周期性索引巡检任务.

    通过 ``es-maintain-indexes`` 锁保证同一时刻只有一个实例在巡检。

    Args:
        configuration: 受管索引集合
        lock_provider: 分布式锁，默认使用 configuration 的锁
        lock_ttl: 锁的持有时间，默认 30 分钟
        include_optional: 是否执行可选的过期分区清理
    """

    def __init__(
        self,
        configuration: ElasticConfiguration,
        lock_provider: LockProvider | None = None,
        lock_ttl: timedelta = Defaults.MAINTAIN_LOCK_TTL,
        include_optional: bool = True,
    ):
        self._configuration = configuration
        self._locks = lock_provider or configuration.lock_provider
        self._lock_ttl = lock_ttl
        self._include_optional = include_optional

    async def run(self) -> bool:
        """
        执行一次巡检.

        Returns:
            是否执行了巡检，锁被其他实例持有时返回 False
        """
        if not await self._locks.try_acquire(LockKeys.MAINTAIN_INDEXES, self._lock_ttl):
            logger.info("索引巡检正在其他实例上执行，跳过")
            return False

        logger.info("开始索引巡检")
        started = time.perf_counter()
        try:
            await self._configuration.maintain_indexes(self._include_optional)
        finally:
            await self._locks.release(LockKeys.MAINTAIN_INDEXES)

        logger.info(f"索引巡检完成，耗时 {time.perf_counter() - started:.2f}s")
        return True


class ReindexWorkItemHandler:
    """
    迁移任务处理器.

    执行期间持有 ``reindex:{alias}:{source}:{dest}`` 锁，配置流程据此判断任务
    正在执行而不重复入队。每次进度回调时续期该锁，长时间运行的任务不会因锁
    过期而被重复入队。任务本身的进度保存在检查点中。

    Args:
        reindexer: 重建索引引擎
        lock_provider: 分布式锁
        lock_ttl: 锁的持有时间，默认 20 分钟
    """

    def __init__(
        self,
        reindexer: Reindexer,
        lock_provider: LockProvider,
        lock_ttl: timedelta = Defaults.REINDEX_LOCK_TTL,
    ):
        self._reindexer = reindexer
        self._locks = lock_provider
        self._lock_ttl = lock_ttl

    async def handle(
        self, task: ReindexTask, progress: ProgressCallback | None = None
    ) -> ReindexResult | None:
        """执行任务，同一任务正在其他实例上执行时返回 None."""
        if not await self._locks.try_acquire(task.lock_key, self._lock_ttl):
            logger.warning(f"迁移任务 '{task.lock_suffix}' 正在其他实例上执行，跳过")
            return None

        async def renewing_progress(percent: int, message: str | None) -> None:
            await self._renew(task)
            await report_progress(progress, percent, message)

        try:
            return await self._reindexer.reindex(task, renewing_progress)
        finally:
            await self._locks.release(task.lock_key)

    async def _renew(self, task: ReindexTask) -> None:
        if await self._locks.renew(task.lock_key, self._lock_ttl):
            return
        # 锁已过期，尝试重新获取
        if await self._locks.try_acquire(task.lock_key, self._lock_ttl):
            logger.warning(f"迁移任务 '{task.lock_suffix}' 的锁已过期，已重新获取")
        else:
            logger.warning(f"迁移任务 '{task.lock_suffix}' 的锁已被其他实例持有")


class ReindexQueueWorker:
    """从任务队列取出迁移任务并交给处理器执行.

    Args:
        queue: 迁移任务队列
        handler: 迁移任务处理器
    """

    def __init__(self, queue: WorkQueue, handler: ReindexWorkItemHandler):
        self._queue = queue
        self._handler = handler

    async def run_once(self, timeout: float | None = None) -> ReindexResult | None:
        """取出并执行一个任务，队列为空时返回 None."""
        task = await self._queue.dequeue(timeout)
        if task is None:
            return None
        logger.info(f"开始执行迁移任务: {task.source_index} -> {task.dest_index}")
        return await self._handler.handle(task)

    async def run(self, stop_event: asyncio.Event, poll_timeout: float = 1.0) -> None:
        """持续处理任务直到 stop_event 被设置.

        单个任务失败只记录日志，进度保留在检查点中，重新入队后可以继续。
        """
        while not stop_event.is_set():
            try:
                await self.run_once(poll_timeout)
            except ElasticShiftError as e:
                logger.error(f"迁移任务执行失败: {str(e)}", exc_info=True)
