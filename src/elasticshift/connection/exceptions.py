"""客户端工厂异常定义模块."""

from ..exceptions import ElasticShiftError


class ClientFactoryError(ElasticShiftError):
    """客户端工厂基础异常类."""

    pass


class ConnectionConfigError(ClientFactoryError):
    """连接配置校验异常.

    例如 hosts 为空、同时配置了多种认证方式、Redis 地址协议不受支持等。
    """

    pass


class UnsupportedClusterError(ClientFactoryError):
    """集群版本过低，不支持 point-in-time 分页."""

    pass
