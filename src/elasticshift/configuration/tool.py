"""受管索引集合."""

import asyncio
import logging
from collections.abc import Iterable

from ..coordination.cache import CacheClient, InMemoryCacheClient
from ..coordination.lock import InMemoryLockProvider, LockProvider
from ..coordination.queue import WorkQueue
from ..core.constants import Defaults
from ..descriptors import IndexConfig, ManagedIndex
from ..index_manager import IndexManager
from ..reindex import ReindexConfig, ReindexResult, Reindexer, ReindexTask
from ..typing import NowFunc, ProgressCallback
from .exceptions import ConfigurationError, IndexNotConfiguredError

logger = logging.getLogger(__name__)


class ElasticConfiguration:
    """
    受管索引集合.

    持有一组逻辑索引，提供批量的配置、巡检、删除与重建操作。配置时发现
    版本落后的索引会把迁移任务放入队列，由后台工作者执行：
    - 任务正在执行（持有 ``reindex:{alias}:{source}:{dest}`` 锁）时不入队
    - 同一任务 15 分钟内最多入队一次（``enqueue-reindex:...`` 锁限流）

    Args:
        index_manager: 索引管理器
        indexes: 逻辑索引配置
        cache: 外部缓存，默认为进程内缓存
        lock_provider: 分布式锁，默认为进程内锁
        work_queue: 迁移任务队列，未提供时只记录落后的索引
        reindex_config: 重建索引配置
        now_func: 获取当前时间的函数

    Example:
        >>> configuration = ElasticConfiguration(
        ...     IndexManager(es_client),
        ...     [employees_config, logs_config],
        ...     cache=RedisCacheClient(),
        ...     lock_provider=RedisLockProvider(),
        ...     work_queue=RedisWorkQueue(),
        ... )
        >>> await configuration.configure_indexes()
    """

    def __init__(
        self,
        index_manager: IndexManager,
        indexes: Iterable[IndexConfig],
        cache: CacheClient | None = None,
        lock_provider: LockProvider | None = None,
        work_queue: WorkQueue | None = None,
        reindex_config: ReindexConfig | None = None,
        now_func: NowFunc | None = None,
    ):
        self.index_manager = index_manager
        self.cache = cache or InMemoryCacheClient(now_func)
        self.lock_provider = lock_provider or InMemoryLockProvider(now_func)
        self.work_queue = work_queue
        self.reindexer = Reindexer(index_manager, self.cache, reindex_config, now_func)

        configs = tuple(indexes)
        names = [config.name for config in configs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"索引名称重复: {duplicates}")

        self._indexes: dict[str, ManagedIndex] = {
            config.name: ManagedIndex(
                config,
                index_manager,
                cache=self.cache,
                reindexer=self.reindexer,
                now_func=now_func,
            )
            for config in configs
        }

    @property
    def indexes(self) -> tuple[ManagedIndex, ...]:
        return tuple(self._indexes.values())

    def get_index(self, name: str) -> ManagedIndex:
        """按逻辑名称获取受管索引.

        Raises:
            IndexNotConfiguredError: 索引未注册时抛出
        """
        try:
            return self._indexes[name]
        except KeyError as e:
            raise IndexNotConfiguredError(f"索引 '{name}' 未注册") from e

    async def configure_indexes(self, begin_reindexing_outdated: bool = True) -> None:
        """配置所有索引，并为版本落后的索引入队迁移任务."""
        await asyncio.gather(
            *(
                self._configure_index(index, begin_reindexing_outdated)
                for index in self.indexes
            )
        )

    async def _configure_index(
        self, index: ManagedIndex, begin_reindexing_outdated: bool
    ) -> None:
        await index.configure()
        if not begin_reindexing_outdated or not await index.is_outdated():
            return

        tasks = await index.create_reindex_tasks()
        if self.work_queue is None:
            logger.warning(
                f"索引 '{index.name}' 版本落后，{len(tasks)} 个迁移任务未入队（未配置任务队列）"
            )
            return
        for task in tasks:
            await self.enqueue_reindex(task)

    async def enqueue_reindex(self, task: ReindexTask) -> bool:
        """
        限流地入队一个迁移任务.

        Returns:
            是否入队
        """
        if self.work_queue is None:
            raise ConfigurationError("未配置任务队列")

        if await self.lock_provider.is_locked(task.lock_key):
            logger.debug(f"迁移任务 '{task.lock_suffix}' 正在执行，跳过入队")
            return False

        if not await self.lock_provider.try_acquire(
            task.enqueue_lock_key, Defaults.ENQUEUE_THROTTLE
        ):
            logger.debug(f"迁移任务 '{task.lock_suffix}' 最近已入队，跳过")
            return False

        await self.work_queue.enqueue(task)
        return True

    async def maintain_indexes(self, include_optional: bool = True) -> None:
        await asyncio.gather(
            *(index.maintain(include_optional) for index in self.indexes)
        )

    async def delete_indexes(self) -> None:
        await asyncio.gather(*(index.delete() for index in self.indexes))

    async def reindex(
        self, progress: ProgressCallback | None = None
    ) -> list[ReindexResult]:
        """依次重建所有版本落后的索引."""
        results: list[ReindexResult] = []
        for index in self.indexes:
            results.extend(await index.reindex(progress))
        return results
