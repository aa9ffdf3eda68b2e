"""客户端工厂模块 - 创建 ES 与 Redis 客户端并装配受管索引集合.

主要组件:
    - ClientFactory: 客户端工厂，装配 IndexManager、协调组件与 ElasticConfiguration
    - ElasticsearchConfig: ES 集群连接配置
    - RedisConfig: Redis 连接配置

使用示例:
    from elasticshift.connection import ClientFactory, ElasticsearchConfig

    factory = ClientFactory(ElasticsearchConfig(hosts=["http://localhost:9200"]))
    manager = factory.create_index_manager()
"""

from .exceptions import (
    ClientFactoryError,
    ConnectionConfigError,
    UnsupportedClusterError,
)
from .models import ElasticsearchConfig, RedisConfig
from .tool import ClientFactory, parse_cluster_version

__all__ = [
    # 工厂
    "ClientFactory",
    "parse_cluster_version",
    # 模型
    "ElasticsearchConfig",
    "RedisConfig",
    # 异常
    "ClientFactoryError",
    "ConnectionConfigError",
    "UnsupportedClusterError",
]
