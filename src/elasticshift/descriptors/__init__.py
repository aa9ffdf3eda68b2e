"""索引描述模块 - 版本化与时间分区的逻辑索引.

主要组件:
    - IndexConfigBuilder: 构建不可变的 IndexConfig
    - ManagedIndex: 按配置能力选择生命周期策略的门面
    - VersionedLifecycle / PartitionedLifecycle: 版本化、时间分区生命周期
    - PartitionEnumerator: 列出物理索引并解析版本与日期

使用示例:
    from elasticshift.descriptors import IndexConfigBuilder, ManagedIndex

    config = (
        IndexConfigBuilder("employees")
        .version(2)
        .rename_field(2, "name", "full_name")
        .build()
    )
    index = ManagedIndex(config, index_manager, cache)
    await index.configure()
    await index.reindex()
"""

from .builder import IndexConfigBuilder
from .enumerator import PartitionEnumerator
from .exceptions import IndexConfigError, IndexExpiredError
from .models import (
    DocumentCapabilities,
    IndexConfig,
    MigrationScript,
    PartitionInfo,
    PartitioningConfig,
    TieredAlias,
    VersioningConfig,
)
from .partitioned import PartitionedLifecycle
from .scripts import (
    combine_migration_scripts,
    remove_field_script,
    rename_field_script,
    select_migration_scripts,
)
from .tool import ManagedIndex, PlainLifecycle
from .versioned import VersionedLifecycle

__all__ = [
    # 核心类
    "ManagedIndex",
    "IndexConfigBuilder",
    "PartitionEnumerator",
    "PlainLifecycle",
    "VersionedLifecycle",
    "PartitionedLifecycle",
    # 数据模型
    "IndexConfig",
    "VersioningConfig",
    "PartitioningConfig",
    "DocumentCapabilities",
    "TieredAlias",
    "MigrationScript",
    "PartitionInfo",
    # 迁移脚本
    "combine_migration_scripts",
    "select_migration_scripts",
    "rename_field_script",
    "remove_field_script",
    # 异常
    "IndexConfigError",
    "IndexExpiredError",
]
