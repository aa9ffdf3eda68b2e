"""批量操作工具模块.

该模块提供了基于 async_bulk 的 Elasticsearch 批量写入功能，包括：
- 自动分批处理
- 传输异常重试
- 外部版本写入与版本冲突统计
- 逐条错误收集（供重建索引逐条重试）

示例用法:
    >>> from elasticshift.bulk import BulkOperationTool, BulkOperation
    >>> bulk_tool = BulkOperationTool(es_client)
    >>> ops = [BulkOperation(index_name="users-v2", doc_id="1", source={"name": "Alice"})]
    >>> result = await bulk_tool.bulk_execute(ops)
    >>> print(f"成功: {result.success}, 失败: {result.failed}")
"""

from .exceptions import (
    BulkOperationError,
    BulkRetryExhaustedError,
)
from .models import (
    BulkAction,
    BulkErrorItem,
    BulkOperation,
    BulkResult,
)
from .tool import BulkOperationTool

__all__ = [
    "BulkAction",
    "BulkErrorItem",
    "BulkOperation",
    "BulkResult",
    "BulkOperationTool",
    "BulkOperationError",
    "BulkRetryExhaustedError",
]
