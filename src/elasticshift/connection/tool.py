"""客户端工厂工具模块.

提供 ClientFactory 类，负责创建 AsyncElasticsearch 与 redis.asyncio 客户端，
并据此装配索引管理器、协调组件以及 ElasticConfiguration。

使用示例:
    from elasticshift.connection import ClientFactory, ElasticsearchConfig, RedisConfig

    async with ClientFactory(
        ElasticsearchConfig(hosts=["http://localhost:9200"]),
        RedisConfig(url="redis://localhost:6379"),
    ) as factory:
        await factory.check_cluster()
        configuration = factory.create_configuration([employees, access_logs])
        await configuration.configure_indexes()
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import redis.asyncio as redis
from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import ApiError, TransportError
from redis.exceptions import RedisError

from ..configuration import ElasticConfiguration
from ..coordination import (
    CacheClient,
    InMemoryCacheClient,
    InMemoryLockProvider,
    InMemoryWorkQueue,
    LockProvider,
    RedisCacheClient,
    RedisLockProvider,
    RedisWorkQueue,
    WorkQueue,
)
from ..descriptors import IndexConfig
from ..index_manager import IndexManager
from ..reindex import ReindexConfig
from ..typing import NowFunc
from .exceptions import ClientFactoryError, ConnectionConfigError, UnsupportedClusterError
from .models import ElasticsearchConfig, RedisConfig

logger = logging.getLogger(__name__)

# 游标分页按 _shard_doc 排序，该字段自 7.12 起可用
MIN_CLUSTER_VERSION = (7, 12)


def parse_cluster_version(number: str) -> tuple[int, int]:
    """解析 ``8.12.0`` / ``8.13.0-SNAPSHOT`` 形式的版本号为 (major, minor)."""
    parts = number.split("-", 1)[0].split(".")
    try:
        return int(parts[0]), int(parts[1]) if len(parts) > 1 else 0
    except ValueError as e:
        raise UnsupportedClusterError(f"无法解析集群版本号: {number}") from e


class ClientFactory:
    """
    客户端工厂.

    客户端惰性创建并缓存。未提供 RedisConfig 时，协调组件回退为进程内实现，
    只适用于单进程部署。

    Args:
        es_config: ES 集群连接配置
        redis_config: Redis 连接配置，可选
        now_func: 获取当前时间的函数，传给进程内协调组件与 ElasticConfiguration

    Examples:
        >>> factory = ClientFactory(ElasticsearchConfig(hosts=["http://localhost:9200"]))
        >>> manager = factory.create_index_manager()
    """

    def __init__(
        self,
        es_config: ElasticsearchConfig,
        redis_config: RedisConfig | None = None,
        now_func: NowFunc | None = None,
    ) -> None:
        self._es_config = es_config
        self._redis_config = redis_config
        self._now_func = now_func
        self._es_client: AsyncElasticsearch | None = None
        self._redis_client: redis.Redis | None = None

    @property
    def has_redis(self) -> bool:
        return self._redis_config is not None

    def get_es_client(self) -> AsyncElasticsearch:
        if self._es_client is None:
            logger.info(f"创建 ES 客户端: hosts={self._es_config.hosts}")
            self._es_client = AsyncElasticsearch(**self._es_config.client_kwargs())
        return self._es_client

    def get_redis_client(self) -> redis.Redis:
        """获取 Redis 客户端.

        Raises:
            ConnectionConfigError: 未提供 RedisConfig 时抛出
        """
        if self._redis_config is None:
            raise ConnectionConfigError("未配置 Redis，无法创建 Redis 客户端")
        if self._redis_client is None:
            kwargs: dict = {"decode_responses": True}
            if self._redis_config.socket_timeout is not None:
                kwargs["socket_timeout"] = self._redis_config.socket_timeout
            if self._redis_config.max_connections is not None:
                kwargs["max_connections"] = self._redis_config.max_connections
            logger.info(f"创建 Redis 客户端: url={self._redis_config.url}")
            self._redis_client = redis.from_url(self._redis_config.url, **kwargs)
        return self._redis_client

    # ============================================================
    # 组件装配
    # ============================================================

    def create_index_manager(self) -> IndexManager:
        return IndexManager(self.get_es_client())

    def create_cache(self) -> CacheClient:
        if self._redis_config is None:
            return InMemoryCacheClient(self._now_func)
        return RedisCacheClient(
            self.get_redis_client(),
            key_prefix=f"{self._redis_config.key_prefix}:cache",
            now_func=self._now_func,
        )

    def create_lock_provider(self) -> LockProvider:
        if self._redis_config is None:
            return InMemoryLockProvider(self._now_func)
        return RedisLockProvider(
            self.get_redis_client(), key_prefix=f"{self._redis_config.key_prefix}:lock"
        )

    def create_work_queue(self) -> WorkQueue:
        if self._redis_config is None:
            return InMemoryWorkQueue()
        return RedisWorkQueue(
            self.get_redis_client(), queue_name=self._redis_config.queue_name
        )

    def create_configuration(
        self,
        indexes: Iterable[IndexConfig],
        reindex_config: ReindexConfig | None = None,
    ) -> ElasticConfiguration:
        """装配一个使用本工厂客户端的 ElasticConfiguration."""
        return ElasticConfiguration(
            self.create_index_manager(),
            indexes,
            cache=self.create_cache(),
            lock_provider=self.create_lock_provider(),
            work_queue=self.create_work_queue(),
            reindex_config=reindex_config,
            now_func=self._now_func,
        )

    # ============================================================
    # 健康检查
    # ============================================================

    async def check_cluster(self) -> dict:
        """
        检查 ES 集群（以及已配置的 Redis）是否可用于迁移.

        Returns:
            包含 cluster_name、version、status，配置了 Redis 时还包含 redis 字段

        Raises:
            UnsupportedClusterError: 集群版本低于 7.12
            ClientFactoryError: 集群或 Redis 不可达
        """
        client = self.get_es_client()
        try:
            info = await client.info()
            health = await client.cluster.health()
        except (ApiError, TransportError) as e:
            raise ClientFactoryError(f"ES 集群不可达: {str(e)}") from e

        number = info["version"]["number"]
        if parse_cluster_version(number) < MIN_CLUSTER_VERSION:
            raise UnsupportedClusterError(
                f"集群版本 {number} 不支持按 _shard_doc 排序的 point-in-time 分页，最低要求 "
                f"{'.'.join(map(str, MIN_CLUSTER_VERSION))}"
            )

        result = {
            "cluster_name": info.get("cluster_name", "unknown"),
            "version": number,
            "status": health.get("status", "unknown"),
        }
        if health.get("status") == "red":
            logger.warning(f"ES 集群 {result['cluster_name']} 状态为 red")

        if self._redis_config is not None:
            try:
                await self.get_redis_client().ping()
            except RedisError as e:
                raise ClientFactoryError(f"Redis 不可达: {str(e)}") from e
            result["redis"] = "ok"
        return result

    # ============================================================
    # 生命周期管理
    # ============================================================

    async def __aenter__(self) -> ClientFactory:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """关闭已创建的客户端，关闭后可重新获取."""
        if self._es_client is not None:
            try:
                await self._es_client.close()
            except TransportError as e:
                logger.warning(f"关闭 ES 客户端失败: {str(e)}")
            self._es_client = None
        if self._redis_client is not None:
            try:
                await self._redis_client.aclose()
            except RedisError as e:
                logger.warning(f"关闭 Redis 客户端失败: {str(e)}")
            self._redis_client = None
