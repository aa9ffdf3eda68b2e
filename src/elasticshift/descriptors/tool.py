"""受管索引门面类."""

import logging
from datetime import datetime
from typing import Any

from ..coordination.cache import CacheClient, InMemoryCacheClient
from ..index_manager import IndexAlreadyExistsError, IndexManager
from ..reindex import ReindexConfig, ReindexResult, Reindexer, ReindexTask
from ..typing import NowFunc, ProgressCallback
from .exceptions import IndexConfigError
from .models import IndexConfig
from .partitioned import PartitionedLifecycle
from .versioned import VersionedLifecycle

logger = logging.getLogger(__name__)


class PlainLifecycle:
    """未版本化索引：物理索引名即逻辑名称，没有迁移."""

    def __init__(self, config: IndexConfig, index_manager: IndexManager):
        self.config = config
        self._index_manager = index_manager

    @property
    def name(self) -> str:
        return self.config.name

    async def configure(self) -> None:
        if await self._index_manager.index_exists(self.name):
            return
        try:
            await self._index_manager.create_index(
                self.name, mappings=self.config.mappings, settings=self.config.settings
            )
        except IndexAlreadyExistsError:
            logger.debug(f"索引 '{self.name}' 已被并发创建")

    async def get_current_version(self) -> int:
        return 0

    async def create_reindex_tasks(self) -> list[ReindexTask]:
        return []

    async def maintain(self, include_optional: bool = True) -> None:
        return None

    async def reindex(
        self, progress: ProgressCallback | None = None
    ) -> list[ReindexResult]:
        return []

    async def delete(self) -> None:
        await self._index_manager.delete_index(self.name)


Lifecycle = PlainLifecycle | VersionedLifecycle | PartitionedLifecycle


class ManagedIndex:
    """
    受管逻辑索引.

    根据 IndexConfig 具备的能力选择生命周期策略：
    - 具备分区能力: PartitionedLifecycle
    - 仅具备版本化能力: VersionedLifecycle
    - 都不具备: PlainLifecycle

    分区相关操作（ensure_index 等）只对分区索引可用，其余索引调用时抛出
    IndexConfigError。

    Args:
        config: 索引配置
        index_manager: 索引管理器
        cache: 外部缓存，默认为进程内缓存
        reindexer: 重建索引引擎，默认基于 index_manager 与 cache 创建
        reindex_config: 默认重建索引引擎使用的配置
        now_func: 获取当前时间的函数

    Example:
        >>> config = IndexConfigBuilder("logs").daily(timedelta(days=30)).build()
        >>> index = ManagedIndex(config, IndexManager(es_client), RedisCacheClient())
        >>> alias = await index.ensure_index(datetime.now(UTC))
    """

    def __init__(
        self,
        config: IndexConfig,
        index_manager: IndexManager,
        cache: CacheClient | None = None,
        reindexer: Reindexer | None = None,
        reindex_config: ReindexConfig | None = None,
        now_func: NowFunc | None = None,
    ):
        self.config = config
        cache = cache or InMemoryCacheClient(now_func)
        reindexer = reindexer or Reindexer(index_manager, cache, reindex_config, now_func)

        self._lifecycle: Lifecycle
        if config.is_partitioned:
            self._lifecycle = PartitionedLifecycle(
                config, index_manager, reindexer, cache, now_func
            )
        elif config.is_versioned:
            self._lifecycle = VersionedLifecycle(config, index_manager, reindexer)
        else:
            self._lifecycle = PlainLifecycle(config, index_manager)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def version(self) -> int:
        return self.config.version

    @property
    def lifecycle(self) -> Lifecycle:
        return self._lifecycle

    async def configure(self) -> None:
        await self._lifecycle.configure()

    async def get_current_version(self) -> int:
        return await self._lifecycle.get_current_version()

    async def is_outdated(self) -> bool:
        """当前版本是否低于声明版本."""
        return await self.get_current_version() < self.version

    async def create_reindex_tasks(self) -> list[ReindexTask]:
        return await self._lifecycle.create_reindex_tasks()

    async def maintain(self, include_optional: bool = True) -> None:
        await self._lifecycle.maintain(include_optional)

    async def reindex(
        self, progress: ProgressCallback | None = None
    ) -> list[ReindexResult]:
        return await self._lifecycle.reindex(progress)

    async def delete(self) -> None:
        await self._lifecycle.delete()
        logger.info(f"索引 '{self.name}' 已删除")

    # ==================== 分区操作 ====================

    def _partitioned(self) -> PartitionedLifecycle:
        if not isinstance(self._lifecycle, PartitionedLifecycle):
            raise IndexConfigError(f"索引 '{self.name}' 未启用时间分区")
        return self._lifecycle

    async def ensure_index(self, date: datetime) -> str:
        return await self._partitioned().ensure_index(date)

    async def ensure_index_for_document(self, document: dict[str, Any]) -> str:
        return await self._partitioned().ensure_index_for_document(document)

    def get_index_by_date(self, date: datetime) -> str:
        return self._partitioned().get_index_by_date(date)

    def get_partitions_for_range(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[str]:
        return self._partitioned().get_partitions_for_range(start, end)
