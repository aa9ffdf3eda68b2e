"""协调组件（缓存、锁、队列）异常定义模块."""

from ..exceptions import ElasticShiftError


class CoordinationError(ElasticShiftError):
    """协调组件基础异常类.

    后端存储（例如 Redis）不可用或返回异常数据时抛出。
    """

    pass
