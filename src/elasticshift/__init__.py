"""ElasticShift - 版本化与时间分区的 Elasticsearch 索引生命周期管理.

这是一个用于在不停机的情况下演进 Elasticsearch 索引映射的 Python 库。

主要功能:
    - IndexConfigBuilder / ManagedIndex: 版本化、按日/按月分区的逻辑索引
    - Reindexer: 可恢复的两遍迁移引擎（复制、别名切换、补偿、对账删除）
    - ElasticConfiguration: 受管索引集合，配置时自动入队落后索引的迁移任务
    - MaintainIndexesJob / ReindexQueueWorker: 后台巡检与迁移任务执行

使用示例:
    from elasticshift import IndexConfigBuilder, IndexManager, ManagedIndex

    config = IndexConfigBuilder("employees").version(2).build()
    index = ManagedIndex(config, IndexManager(es_client))
    await index.configure()
    await index.reindex()
"""

__version__ = "0.1.0"

# 导出配置与后台任务
from elasticshift.configuration import ElasticConfiguration

# 导出客户端工厂
from elasticshift.connection import ClientFactory, ElasticsearchConfig, RedisConfig

# 导出协调组件
from elasticshift.coordination import (
    InMemoryCacheClient,
    InMemoryLockProvider,
    InMemoryWorkQueue,
    RedisCacheClient,
    RedisLockProvider,
    RedisWorkQueue,
)

# 导出核心组件
from elasticshift.core import MAX_DATE, PartitionPeriod

# 导出索引描述
from elasticshift.descriptors import (
    IndexConfig,
    IndexConfigBuilder,
    IndexConfigError,
    IndexExpiredError,
    ManagedIndex,
)

# 导出异常
from elasticshift.exceptions import ElasticShiftError
from elasticshift.index_manager import IndexManager
from elasticshift.jobs import (
    MaintainIndexesJob,
    ReindexQueueWorker,
    ReindexWorkItemHandler,
)

# 导出重建索引引擎
from elasticshift.reindex import (
    MigrationFatalError,
    ReindexConfig,
    Reindexer,
    ReindexError,
    ReindexTask,
)

__all__ = [
    # 版本
    "__version__",
    # 索引描述
    "IndexConfig",
    "IndexConfigBuilder",
    "ManagedIndex",
    "PartitionPeriod",
    "MAX_DATE",
    # 存储
    "IndexManager",
    "ClientFactory",
    "ElasticsearchConfig",
    "RedisConfig",
    # 重建索引
    "Reindexer",
    "ReindexTask",
    "ReindexConfig",
    # 配置与后台任务
    "ElasticConfiguration",
    "MaintainIndexesJob",
    "ReindexWorkItemHandler",
    "ReindexQueueWorker",
    # 协调组件
    "InMemoryCacheClient",
    "InMemoryLockProvider",
    "InMemoryWorkQueue",
    "RedisCacheClient",
    "RedisLockProvider",
    "RedisWorkQueue",
    # 异常
    "ElasticShiftError",
    "IndexConfigError",
    "IndexExpiredError",
    "ReindexError",
    "MigrationFatalError",
]
