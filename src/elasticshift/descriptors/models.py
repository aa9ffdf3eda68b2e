"""索引描述数据模型定义模块.

一个逻辑索引由不可变的 IndexConfig 描述，能力按需组合：
- versioning: 版本化（物理索引名带 -v{version} 后缀，支持迁移脚本）
- partitioning: 按日/按月分区（依赖版本化）
- document: 文档能力描述（时间戳字段、类型字段、父文档路径）
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from ..core.constants import MAX_DATE
from ..core.periods import PartitionPeriod
from ..core.utils import safe_add, safe_subtract


@dataclass(frozen=True)
class TieredAlias:
    """分级别名，仅在分区年龄处于保留窗口内时挂载.

    Attributes:
        name: 别名名称，例如 ``employees-last7days``
        max_age: 保留窗口，None 表示不限
    """

    name: str
    max_age: timedelta | None = None

    def should_attach(self, period_end: datetime, now: datetime) -> bool:
        """判断别名是否应挂载到结束于 period_end 的分区上."""
        if self.max_age is None:
            return True
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return safe_subtract(today, self.max_age) <= period_end


@dataclass(frozen=True)
class MigrationScript:
    """迁移脚本.

    Attributes:
        version: 目标版本，从 version - 1 迁移到 version 时执行
        script: Painless 脚本文本
        doc_type: 仅对该类型文档生效（可选）
    """

    version: int
    script: str
    doc_type: str | None = None


@dataclass(frozen=True)
class VersioningConfig:
    """版本化能力."""

    version: int = 1
    migration_scripts: tuple[MigrationScript, ...] = ()
    discard_old_on_reindex: bool = True


@dataclass(frozen=True)
class PartitioningConfig:
    """时间分区能力.

    Attributes:
        period: 分区周期
        max_index_age: 分区最大保留时间，None 表示永不过期
        tiered_aliases: 分级别名
        discard_expired: 巡检时是否删除过期分区
    """

    period: PartitionPeriod
    max_index_age: timedelta | None = None
    tiered_aliases: tuple[TieredAlias, ...] = ()
    discard_expired: bool = True

    @property
    def date_format(self) -> str:
        return self.period.date_format

    def expiration(self, date: datetime) -> datetime:
        """分区过期时间 = 周期结束 + max_index_age，未设置时为 MAX_DATE."""
        if self.max_index_age is None or date == MAX_DATE:
            return MAX_DATE
        return safe_add(self.period.period_end(date), self.max_index_age)


@dataclass(frozen=True)
class DocumentCapabilities:
    """文档能力描述.

    Attributes:
        timestamp_field: 文档时间戳字段，用于迁移窗口和按文档定位分区
        type_field: 文档类型字段，用于迁移脚本类型守卫和父文档路径查找
        parent_path_by_type: 文档类型到父文档 ID 点号路径的映射
    """

    timestamp_field: str | None = None
    type_field: str | None = None
    parent_path_by_type: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexConfig:
    """逻辑索引配置，由 IndexConfigBuilder 构建."""

    name: str
    mappings: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    versioning: VersioningConfig | None = None
    partitioning: PartitioningConfig | None = None
    document: DocumentCapabilities = field(default_factory=DocumentCapabilities)

    @property
    def is_versioned(self) -> bool:
        return self.versioning is not None

    @property
    def is_partitioned(self) -> bool:
        return self.partitioning is not None

    @property
    def version(self) -> int:
        """声明的版本号，未版本化的索引为 0."""
        return self.versioning.version if self.versioning else 0


@dataclass
class PartitionInfo:
    """在存储中发现的一个物理索引.

    Attributes:
        index_name: 物理索引名称
        version: 物理索引的版本
        date: 分区日期，未分区时为 MAX_DATE
        current_version: 该索引持有权威别名时为其版本，否则为 -1
        aliases: 索引上当前挂载的别名
    """

    index_name: str
    version: int
    date: datetime = MAX_DATE
    current_version: int = -1
    aliases: list[str] = field(default_factory=list)

    @property
    def is_partitioned(self) -> bool:
        return self.date != MAX_DATE
