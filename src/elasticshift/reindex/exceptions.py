"""重建索引异常定义模块."""

from ..exceptions import ElasticShiftError


class ReindexError(ElasticShiftError):
    """重建索引基础异常类."""

    pass


class ReindexConfigError(ReindexError):
    """重建索引配置校验异常."""

    pass


class MigrationFatalError(ReindexError):
    """迁移致命异常.

    单个文档重试失败后写入错误影子索引也失败时抛出，任务中止。
    已完成的进度保留在检查点中，重新执行同一任务即可继续。
    """

    pass
