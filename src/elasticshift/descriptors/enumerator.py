"""物理索引枚举."""

import logging

from ..core.constants import MAX_DATE, IndexNaming
from ..core.periods import PartitionPeriod
from ..core.utils import (
    date_alias_name,
    parse_index_version,
    parse_partition_date,
    versioned_name,
)
from ..index_manager import IndexManager
from .models import PartitionInfo

logger = logging.getLogger(__name__)


class PartitionEnumerator:
    """
    列出逻辑索引对应的物理索引并解析版本与分区日期.

    未分区时只接受名称恰好为 ``{name}-v{version}`` 的索引；分区时只接受日期后缀
    可解析的索引。错误影子索引 ``*-error`` 两种情况下都会被排除。

    Args:
        index_manager: 索引管理器
        name: 逻辑索引名称
        period: 分区周期，未分区时为 None
    """

    def __init__(
        self,
        index_manager: IndexManager,
        name: str,
        period: PartitionPeriod | None = None,
    ):
        self._index_manager = index_manager
        self._name = name
        self._period = period

    @property
    def pattern(self) -> str:
        return f"{self._name}{IndexNaming.VERSION_SEPARATOR}*"

    async def list_partitions(self, version: int | None = None) -> list[PartitionInfo]:
        """
        列出物理索引.

        Args:
            version: 只返回该版本的索引（可选）

        Returns:
            按 (日期, 版本) 排序的 PartitionInfo 列表
        """
        partitions: list[PartitionInfo] = []
        for info in await self._index_manager.list_indices(self.pattern):
            partition = self._parse(info.name, info.aliases)
            if partition is None:
                continue
            if version is not None and partition.version != version:
                continue
            partitions.append(partition)

        partitions.sort(key=lambda p: (p.date, p.version))
        logger.debug(f"索引 '{self._name}' 共发现 {len(partitions)} 个物理索引")
        return partitions

    def _parse(self, index_name: str, aliases: list[str]) -> PartitionInfo | None:
        version = parse_index_version(self._name, index_name)
        if version < 0:
            return None

        if self._period is None:
            if index_name != versioned_name(self._name, version):
                return None
            authoritative_alias = self._name
            partition = PartitionInfo(index_name, version, aliases=list(aliases))
        else:
            date = parse_partition_date(self._name, index_name, self._period)
            if date == MAX_DATE:
                return None
            authoritative_alias = date_alias_name(self._name, date, self._period)
            partition = PartitionInfo(index_name, version, date, aliases=list(aliases))

        if authoritative_alias in aliases:
            partition.current_version = version
        return partition
