"""索引集合配置异常定义模块."""

from ..exceptions import ElasticShiftError


class ConfigurationError(ElasticShiftError):
    """索引集合配置异常."""

    pass


class IndexNotConfiguredError(ConfigurationError, KeyError):
    """请求的逻辑索引未注册."""

    pass
