"""索引管理器异常定义模块."""

from ..exceptions import ElasticShiftError


class IndexManagerError(ElasticShiftError):
    """索引管理器基础异常类."""

    pass


class IndexNotFoundError(IndexManagerError):
    """索引不存在异常."""

    pass


class IndexAlreadyExistsError(IndexManagerError):
    """索引已存在异常."""

    pass


class AliasNotFoundError(IndexManagerError):
    """别名不存在异常."""

    pass


class CursorExpiredError(IndexManagerError):
    """游标（point-in-time）已失效异常."""

    pass
