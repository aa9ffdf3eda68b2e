"""时间分区索引生命周期."""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any

from ..coordination.cache import CacheClient, ScopedCacheClient
from ..core.constants import MAX_DATE
from ..core.periods import PartitionPeriod
from ..core.utils import (
    add_months,
    date_alias_name,
    ensure_utc,
    error_index_name,
    get_value_by_path,
    partitioned_name,
    utc_now,
)
from ..index_manager import IndexAlreadyExistsError, IndexManager
from ..reindex import ReindexResult, Reindexer, ReindexTask, scaled_progress
from ..typing import AliasActions, NowFunc, ProgressCallback
from .enumerator import PartitionEnumerator
from .exceptions import IndexConfigError, IndexExpiredError
from .models import IndexConfig, PartitionInfo, TieredAlias
from .scripts import combine_migration_scripts

logger = logging.getLogger(__name__)

CACHE_SCOPE = "partition"


class PartitionedLifecycle:
    """
    按日/按月分区的版本化索引生命周期.

    物理分区为 ``{name}-v{version}-{date}``，每个分区挂载：
    - 日期别名 ``{name}-{date}``，指向该日期的当前版本分区
    - 主别名 ``{name}`` 与分级别名，仅挂载在未过期的当前版本分区上

    分区按需创建（ensure_index），巡检时协调别名并删除过期分区，
    声明版本升级时逐个分区迁移。

    Args:
        config: 索引配置（必须具备分区能力）
        index_manager: 索引管理器
        reindexer: 重建索引引擎
        cache: 外部缓存，用于记忆分区别名是否已存在
        now_func: 获取当前时间的函数
    """

    def __init__(
        self,
        config: IndexConfig,
        index_manager: IndexManager,
        reindexer: Reindexer,
        cache: CacheClient,
        now_func: NowFunc | None = None,
    ):
        if config.partitioning is None or config.versioning is None:
            raise ValueError(f"索引 '{config.name}' 未启用时间分区")
        self.config = config
        self._partitioning = config.partitioning
        self._versioning = config.versioning
        self._index_manager = index_manager
        self._reindexer = reindexer
        self._cache = ScopedCacheClient(cache, CACHE_SCOPE)
        self._now_func = now_func or utc_now
        self._enumerator = PartitionEnumerator(
            index_manager, config.name, config.partitioning.period
        )
        # TODO: evict ensured dates once their partition expires
        self._ensured_dates: set[str] = set()

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def period(self) -> PartitionPeriod:
        return self._partitioning.period

    @property
    def aliases(self) -> tuple[TieredAlias, ...]:
        """主别名（不限窗口）加上配置的分级别名."""
        return (TieredAlias(self.name), *self._partitioning.tiered_aliases)

    def get_index_by_date(self, date: datetime) -> str:
        """返回日期所在分区的日期别名."""
        return date_alias_name(self.name, ensure_utc(date), self.period)

    def get_expiration(self, date: datetime) -> datetime:
        return self._partitioning.expiration(date)

    async def configure(self) -> None:
        # 分区在写入时按需创建
        return None

    # ==================== 分区创建 ====================

    async def ensure_index(self, date: datetime) -> str:
        """
        幂等地创建 date 所在周期的分区.

        Args:
            date: 分区内的任意时间

        Returns:
            分区的日期别名

        Raises:
            IndexExpiredError: 分区已过期时抛出，不会创建索引
        """
        date = ensure_utc(date)
        now = self._now_func()
        expires_at = self.get_expiration(date)
        if now > expires_at:
            raise IndexExpiredError(
                f"索引 '{self.name}' 日期 {self.period.format(date)} 的分区已于 "
                f"{expires_at.isoformat()} 过期"
            )

        alias = self.get_index_by_date(date)
        if alias in self._ensured_dates:
            return alias

        if await self._cache.exists(alias):
            self._ensured_dates.add(alias)
            return alias

        if not await self._index_manager.alias_exists(alias):
            await self._create_partition(date, alias, now)

        await self._cache.set(
            alias, True, expires_at=None if expires_at == MAX_DATE else expires_at
        )
        self._ensured_dates.add(alias)
        return alias

    async def _create_partition(self, date: datetime, alias: str, now: datetime) -> None:
        index_name = partitioned_name(
            self.name, self._versioning.version, date, self.period
        )
        period_end = self.period.period_end(date)
        aliases = [alias] + [
            tier.name for tier in self.aliases if tier.should_attach(period_end, now)
        ]
        try:
            await self._index_manager.create_index(
                index_name,
                mappings=self.config.mappings,
                settings=self.config.settings,
                aliases=aliases,
            )
        except IndexAlreadyExistsError:
            logger.debug(f"分区 '{index_name}' 已被并发创建")

    async def ensure_index_for_document(self, document: dict[str, Any]) -> str:
        """按文档时间戳字段确保分区存在，返回日期别名."""
        field = self.config.document.timestamp_field
        if not field:
            raise IndexConfigError(f"索引 '{self.name}' 未配置时间戳字段")

        value = get_value_by_path(document, field)
        if isinstance(value, str):
            try:
                value = datetime.fromisoformat(value)
            except ValueError as e:
                raise IndexConfigError(
                    f"文档时间戳字段 '{field}' 无法解析: {value}"
                ) from e
        if not isinstance(value, datetime):
            raise IndexConfigError(f"文档缺少时间戳字段 '{field}'")
        return await self.ensure_index(value)

    def get_partitions_for_range(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> list[str]:
        """
        返回时间窗口涉及的分区日期别名.

        缺省的起止时间取当前时间，end 早于 start 时 end 取当前时间。
        窗口超过 max_index_age，或按日分区跨度达到三个月、按月分区跨度超过一年时
        返回空列表。
        """
        now = self._now_func()
        start = ensure_utc(start) if start else now
        end = ensure_utc(end) if end else now
        if end < start:
            end = now

        first = self.period.period_start(start)
        last_end = self.period.period_end(end)
        max_age = self._partitioning.max_index_age
        if max_age is not None and last_end - first > max_age:
            logger.warning(f"查询窗口超过索引 '{self.name}' 的最大保留时间，拒绝查询")
            return []

        limit_months = 3 if self.period is PartitionPeriod.DAILY else 12
        if add_months(first, limit_months) <= last_end:
            logger.warning(f"查询窗口跨度过大，拒绝查询索引 '{self.name}'")
            return []

        names = []
        current = first
        while current <= end:
            names.append(self.get_index_by_date(current))
            current = self.period.next_period(current)
        return names

    # ==================== 版本 ====================

    async def get_current_version(self) -> int:
        """
        解析当前权威版本.

        未过期分区中持有日期别名的最小版本；没有时取未过期分区的最小版本，
        再退回所有分区的最小版本，最后为声明版本。
        """
        now = self._now_func()
        partitions = await self._enumerator.list_partitions()
        live = [p for p in partitions if now <= self.get_expiration(p.date)]

        holders = [p.current_version for p in live if p.current_version >= 0]
        if holders:
            return min(holders)
        if live:
            return min(p.version for p in live)
        if partitions:
            return min(p.version for p in partitions)
        return self._versioning.version

    def _group_by_date(
        self, partitions: list[PartitionInfo]
    ) -> dict[datetime, list[PartitionInfo]]:
        groups: dict[datetime, list[PartitionInfo]] = defaultdict(list)
        for partition in partitions:
            groups[partition.date].append(partition)
        return dict(sorted(groups.items()))

    def _resolve_current(self, group: list[PartitionInfo]) -> PartitionInfo:
        """同一日期的分区中持有日期别名的最小版本，没有时取最小版本."""
        holders = [p for p in group if p.current_version >= 0]
        return min(holders or group, key=lambda p: p.version)

    def create_reindex_task(self, partition: PartitionInfo) -> ReindexTask:
        source = partition.index_name
        dest = partitioned_name(
            self.name, self._versioning.version, partition.date, self.period
        )
        expires_at = self.get_expiration(partition.date)
        document = self.config.document
        return ReindexTask(
            source_index=source,
            dest_index=dest,
            alias=self.get_index_by_date(partition.date),
            script=combine_migration_scripts(
                self._versioning.migration_scripts,
                partition.version,
                self._versioning.version,
                document.type_field,
            ),
            timestamp_field=document.timestamp_field,
            type_field=document.type_field,
            parent_path_by_type=dict(document.parent_path_by_type),
            delete_source_on_success=(
                self._versioning.discard_old_on_reindex and source != dest
            ),
            checkpoint_expires_at=None if expires_at == MAX_DATE else expires_at,
        )

    async def create_reindex_tasks(self) -> list[ReindexTask]:
        """为每个当前版本低于声明版本的未过期日期生成一个迁移任务."""
        current_version = await self.get_current_version()
        if current_version >= self._versioning.version:
            return []

        now = self._now_func()
        tasks = []
        partitions = await self._enumerator.list_partitions()
        for date, group in self._group_by_date(partitions).items():
            if now > self.get_expiration(date):
                continue
            current = self._resolve_current(group)
            if current.version >= self._versioning.version:
                continue
            tasks.append(self.create_reindex_task(current))
        return tasks

    async def reindex(
        self, progress: ProgressCallback | None = None
    ) -> list[ReindexResult]:
        tasks = await self.create_reindex_tasks()
        if not tasks:
            logger.debug(f"索引 '{self.name}' 的所有分区已是最新版本")
            return []

        logger.info(f"索引 '{self.name}' 共 {len(tasks)} 个分区需要重建")
        results = []
        for position, task in enumerate(tasks):
            await self._ensure_destination(task.dest_index)
            results.append(
                await self._reindexer.reindex(
                    task, scaled_progress(progress, position, len(tasks))
                )
            )
        return results

    async def _ensure_destination(self, index_name: str) -> None:
        if await self._index_manager.index_exists(index_name):
            return
        try:
            await self._index_manager.create_index(
                index_name,
                mappings=self.config.mappings,
                settings=self.config.settings,
            )
        except IndexAlreadyExistsError:
            logger.debug(f"目标分区 '{index_name}' 已被并发创建")

    # ==================== 巡检 ====================

    async def maintain(self, include_optional: bool = True) -> None:
        """
        分区巡检.

        1. 别名协调：所有分区的别名增删合并为一次原子的别名更新请求
        2. 过期清理（可选）：删除已过期的分区
        """
        now = self._now_func()
        partitions = await self._enumerator.list_partitions()

        actions = self._alias_actions(partitions, now)
        if actions:
            await self._index_manager.update_aliases(actions)
            logger.info(f"索引 '{self.name}' 别名协调完成，共 {len(actions)} 个动作")

        if (
            include_optional
            and self._partitioning.discard_expired
            and self._partitioning.max_index_age is not None
        ):
            await self._delete_expired(partitions, now)

    def _alias_actions(
        self, partitions: list[PartitionInfo], now: datetime
    ) -> AliasActions:
        actions: AliasActions = []

        def add(index_name: str, alias: str) -> None:
            actions.append({"add": {"index": index_name, "alias": alias}})

        def remove(index_name: str, alias: str) -> None:
            actions.append({"remove": {"index": index_name, "alias": alias}})

        for date, group in self._group_by_date(partitions).items():
            dated_alias = self.get_index_by_date(date)
            expired = now > self.get_expiration(date)
            current = None if expired else self._resolve_current(group)
            period_end = self.period.period_end(date)

            for partition in group:
                present = set(partition.aliases)
                if partition is current:
                    if dated_alias not in present:
                        add(partition.index_name, dated_alias)
                    for tier in self.aliases:
                        attach = tier.should_attach(period_end, now)
                        if attach and tier.name not in present:
                            add(partition.index_name, tier.name)
                        elif not attach and tier.name in present:
                            remove(partition.index_name, tier.name)
                    continue

                if not expired and dated_alias in present:
                    remove(partition.index_name, dated_alias)
                for tier in self.aliases:
                    if tier.name in present:
                        remove(partition.index_name, tier.name)

        return actions

    async def _delete_expired(self, partitions: list[PartitionInfo], now: datetime) -> None:
        for partition in partitions:
            if now <= self.get_expiration(partition.date):
                continue
            logger.info(f"删除过期分区 '{partition.index_name}'")
            await self._index_manager.delete_index(partition.index_name)
            await self._index_manager.delete_index(error_index_name(partition.index_name))
            await self._forget(partition.date)

    async def _forget(self, date: datetime) -> None:
        alias = self.get_index_by_date(date)
        self._ensured_dates.discard(alias)
        await self._cache.remove(alias)

    async def delete(self) -> None:
        """删除所有版本的所有分区及其错误影子索引，并清理记忆与缓存."""
        partitions = await self._enumerator.list_partitions()
        for partition in partitions:
            await self._index_manager.delete_index(partition.index_name)
            await self._index_manager.delete_index(error_index_name(partition.index_name))
            await self._forget(partition.date)
        self._ensured_dates.clear()
        logger.info(f"索引 '{self.name}' 的 {len(partitions)} 个分区已删除")
