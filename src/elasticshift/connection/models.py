"""客户端连接配置模型.

- ElasticsearchConfig: ES 集群地址、认证与传输参数
- RedisConfig: 协调组件（缓存、锁、队列）使用的 Redis 连接参数
"""

from dataclasses import dataclass, field

from .exceptions import ConnectionConfigError

REDIS_URL_SCHEMES = ("redis://", "rediss://", "unix://")


@dataclass
class ElasticsearchConfig:
    """ES 集群连接配置.

    迁移会长时间占用连接，request_timeout 需要覆盖单批 _reindex 的耗时，
    因此默认值比客户端自身的 10 秒大得多。

    Attributes:
        hosts: ES 节点地址列表（必需，不可为空）
        username: Basic Auth 用户名
        password: Basic Auth 密码
        api_key: API Key 认证（字符串或 (id, key) 元组）
        bearer_token: Bearer Token 认证
        ca_certs: CA 证书文件路径
        verify_certs: 是否验证 SSL 证书
        request_timeout: 请求超时时间（秒）
        max_retries: 传输层最大重试次数
        retry_on_timeout: 超时是否重试
        connections_per_node: 每个节点的最大连接数
        http_compress: 是否启用 HTTP 压缩

    Examples:
        >>> config = ElasticsearchConfig(
        ...     hosts=["http://localhost:9200"],
        ...     username="elastic",
        ...     password="changeme",
        ... )
    """

    hosts: list[str] = field(default_factory=list)
    username: str | None = None
    password: str | None = None
    api_key: str | tuple[str, str] | None = None
    bearer_token: str | None = None
    ca_certs: str | None = None
    verify_certs: bool = True
    request_timeout: int = 120
    max_retries: int = 3
    retry_on_timeout: bool = True
    connections_per_node: int = 10
    http_compress: bool = True

    def __post_init__(self) -> None:
        if not self.hosts:
            raise ConnectionConfigError("hosts 不能为空，请提供至少一个 ES 节点地址")
        if (self.username is None) != (self.password is None):
            raise ConnectionConfigError("username 和 password 必须同时提供")
        auth_methods = [
            self.username is not None,
            self.api_key is not None,
            self.bearer_token is not None,
        ]
        if sum(auth_methods) > 1:
            raise ConnectionConfigError("只能选择一种认证方式")
        if self.request_timeout <= 0:
            raise ConnectionConfigError(
                f"request_timeout 必须 > 0，当前值: {self.request_timeout}"
            )
        if self.max_retries < 0:
            raise ConnectionConfigError(f"max_retries 必须 >= 0，当前值: {self.max_retries}")
        if self.connections_per_node < 1:
            raise ConnectionConfigError(
                f"connections_per_node 必须 >= 1，当前值: {self.connections_per_node}"
            )

    def client_kwargs(self) -> dict:
        """转换为 AsyncElasticsearch 构造参数."""
        kwargs: dict = {
            "hosts": self.hosts,
            "request_timeout": self.request_timeout,
            "max_retries": self.max_retries,
            "retry_on_timeout": self.retry_on_timeout,
            "connections_per_node": self.connections_per_node,
            "http_compress": self.http_compress,
            "verify_certs": self.verify_certs,
        }
        if self.username is not None:
            kwargs["basic_auth"] = (self.username, self.password)
        if self.api_key is not None:
            kwargs["api_key"] = self.api_key
        if self.bearer_token is not None:
            kwargs["bearer_auth"] = self.bearer_token
        if self.ca_certs:
            kwargs["ca_certs"] = self.ca_certs
        return kwargs


@dataclass
class RedisConfig:
    """Redis 连接配置.

    Attributes:
        url: Redis 连接地址
        key_prefix: 缓存与锁键的公共前缀，多个部署共用一个 Redis 时用于隔离
        queue_name: 重建索引任务队列的列表键名，默认 ``{key_prefix}:reindex-queue``
        socket_timeout: 套接字超时（秒），None 表示不限制
        max_connections: 连接池最大连接数，None 表示使用 redis-py 默认值
    """

    url: str = "redis://localhost:6379"
    key_prefix: str = "elasticshift"
    queue_name: str | None = None
    socket_timeout: float | None = None
    max_connections: int | None = None

    def __post_init__(self) -> None:
        if not self.url.startswith(REDIS_URL_SCHEMES):
            raise ConnectionConfigError(
                f"Redis 地址必须以 {', '.join(REDIS_URL_SCHEMES)} 开头: {self.url}"
            )
        if not self.key_prefix:
            raise ConnectionConfigError("key_prefix 不能为空")
        if self.max_connections is not None and self.max_connections < 1:
            raise ConnectionConfigError(
                f"max_connections 必须 >= 1，当前值: {self.max_connections}"
            )
        if self.queue_name is None:
            self.queue_name = f"{self.key_prefix}:reindex-queue"
