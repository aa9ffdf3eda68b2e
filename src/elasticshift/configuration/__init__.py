"""索引集合配置模块.

使用示例:
    from elasticshift.configuration import ElasticConfiguration

    configuration = ElasticConfiguration(index_manager, [employees_config])
    await configuration.configure_indexes()
    await configuration.maintain_indexes()
"""

from .exceptions import ConfigurationError, IndexNotConfiguredError
from .tool import ElasticConfiguration

__all__ = [
    "ElasticConfiguration",
    "ConfigurationError",
    "IndexNotConfiguredError",
]
