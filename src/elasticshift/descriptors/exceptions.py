"""索引描述异常定义模块."""

from ..exceptions import ElasticShiftError


class IndexConfigError(ElasticShiftError):
    """索引配置异常.

    构建索引配置时参数不合法，或对不具备相应能力的索引调用了分区操作时抛出。
    """

    pass


class IndexExpiredError(IndexConfigError, ValueError):
    """分区已过期异常.

    请求创建的分区已经超过最大保留时间时抛出，分区不会被创建。
    """

    pass
