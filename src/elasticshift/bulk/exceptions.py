"""批量操作工具异常定义模块."""

from ..exceptions import ElasticShiftError


class BulkOperationError(ElasticShiftError):
    """批量操作基础异常类."""

    pass


class BulkRetryExhaustedError(BulkOperationError):
    """批量操作重试次数耗尽异常."""

    pass
