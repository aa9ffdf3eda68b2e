"""版本化索引生命周期."""

import logging

from ..core.utils import error_index_name, parse_index_version, versioned_name
from ..index_manager import IndexAlreadyExistsError, IndexManager, IndexManagerError
from ..reindex import ReindexResult, Reindexer, ReindexTask
from ..typing import ProgressCallback
from .enumerator import PartitionEnumerator
from .models import IndexConfig
from .scripts import combine_migration_scripts

logger = logging.getLogger(__name__)


class VersionedLifecycle:
    """
    未分区的版本化索引生命周期.

    物理索引为 ``{name}-v{version}``，主别名 ``{name}`` 指向当前版本。
    声明版本高于当前版本时，通过 Reindexer 把当前版本迁移到声明版本，
    迁移完成后主别名随别名切换移动到新索引。

    Args:
        config: 索引配置（必须具备版本化能力）
        index_manager: 索引管理器
        reindexer: 重建索引引擎
    """

    def __init__(
        self,
        config: IndexConfig,
        index_manager: IndexManager,
        reindexer: Reindexer,
    ):
        if config.versioning is None:
            raise ValueError(f"索引 '{config.name}' 未启用版本化")
        self.config = config
        self._versioning = config.versioning
        self._index_manager = index_manager
        self._reindexer = reindexer
        self._enumerator = PartitionEnumerator(index_manager, config.name)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def versioned_name(self) -> str:
        return versioned_name(self.name, self._versioning.version)

    async def configure(self) -> None:
        """
        幂等地创建声明版本的物理索引.

        主别名不存在时随索引一起创建；主别名已存在（旧版本仍在使用）时，
        新索引不带别名创建，别名在迁移切换时移动。
        """
        index_name = self.versioned_name
        if await self._index_manager.index_exists(index_name):
            logger.debug(f"索引 '{index_name}' 已存在")
            return

        alias_exists = await self._index_manager.alias_exists(self.name)
        aliases = [] if alias_exists else [self.name]
        try:
            await self._index_manager.create_index(
                index_name,
                mappings=self.config.mappings,
                settings=self.config.settings,
                aliases=aliases,
            )
        except IndexAlreadyExistsError:
            logger.debug(f"索引 '{index_name}' 已被并发创建")

    async def get_current_version(self) -> int:
        """
        解析当前权威版本.

        依次取：主别名指向的索引版本（多个时取最小），``{name}-v*`` 中的最小版本，
        声明版本。
        """
        indices = await self._index_manager.get_indices_by_alias(self.name)
        versions = [parse_index_version(self.name, index) for index in indices]
        versions = [version for version in versions if version >= 0]
        if versions:
            return min(versions)

        partitions = await self._enumerator.list_partitions()
        if partitions:
            return min(partition.version for partition in partitions)

        return self._versioning.version

    def create_reindex_task(self, current_version: int) -> ReindexTask:
        """构建从 ``{name}-v{current_version}`` 到声明版本的迁移任务."""
        source = versioned_name(self.name, current_version)
        dest = self.versioned_name
        document = self.config.document
        return ReindexTask(
            source_index=source,
            dest_index=dest,
            alias=self.name,
            script=combine_migration_scripts(
                self._versioning.migration_scripts,
                current_version,
                self._versioning.version,
                document.type_field,
            ),
            timestamp_field=document.timestamp_field,
            type_field=document.type_field,
            parent_path_by_type=dict(document.parent_path_by_type),
            delete_source_on_success=(
                self._versioning.discard_old_on_reindex and source != dest
            ),
        )

    async def create_reindex_tasks(self) -> list[ReindexTask]:
        current_version = await self.get_current_version()
        if current_version >= self._versioning.version:
            return []
        return [self.create_reindex_task(current_version)]

    async def maintain(self, include_optional: bool = True) -> None:
        """主别名丢失时重新挂载到当前版本的物理索引上."""
        if await self._index_manager.alias_exists(self.name):
            return

        current_version = await self.get_current_version()
        index_name = versioned_name(self.name, current_version)
        if not await self._index_manager.index_exists(index_name):
            logger.warning(f"索引 '{index_name}' 不存在，无法恢复别名 '{self.name}'")
            return

        try:
            await self._index_manager.add_alias(index_name, self.name)
            logger.info(f"已恢复别名 '{self.name}' -> '{index_name}'")
        except IndexManagerError:
            if await self._index_manager.alias_exists(self.name):
                logger.info(f"别名 '{self.name}' 已被并发恢复")
                return
            raise

    async def reindex(
        self, progress: ProgressCallback | None = None
    ) -> list[ReindexResult]:
        tasks = await self.create_reindex_tasks()
        if not tasks:
            logger.debug(f"索引 '{self.name}' 已是最新版本，无需重建")
            return []

        await self.configure()
        return [await self._reindexer.reindex(task, progress) for task in tasks]

    async def delete(self) -> None:
        """删除当前版本与声明版本的物理索引及其错误影子索引."""
        current_version = await self.get_current_version()
        names = {versioned_name(self.name, current_version), self.versioned_name}
        for index_name in sorted(names):
            await self._index_manager.delete_index(index_name)
            await self._index_manager.delete_index(error_index_name(index_name))
