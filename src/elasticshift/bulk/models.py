"""批量操作工具数据模型定义模块."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BulkAction(Enum):
    """批量操作类型枚举."""

    INDEX = "index"
    CREATE = "create"


@dataclass
class BulkOperation:
    """批量操作项数据类.

    Attributes:
        index_name: 索引名称
        doc_id: 文档ID
        source: 文档源数据
        action: 操作类型，默认 INDEX
        routing: 路由信息（父文档 ID）
        version: 外部版本号（可选）
        version_type: 版本类型，设置 version 时通常为 "external"
    """

    index_name: str
    doc_id: str | None
    source: dict[str, Any]
    action: BulkAction = BulkAction.INDEX
    routing: str | None = None
    version: int | None = None
    version_type: str | None = None


@dataclass
class BulkErrorItem:
    """批量操作错误项数据类.

    Attributes:
        index_name: 索引名称
        doc_id: 文档ID
        error_type: 错误类型
        error_reason: 错误原因
        status: HTTP状态码
        caused_by: 根本原因
    """

    index_name: str
    doc_id: str | None
    error_type: str
    error_reason: str
    status: int
    caused_by: str | None = None


@dataclass
class BulkResult:
    """批量操作结果数据类.

    外部版本冲突（409）表示目标文档已是相同或更新的版本，计入 conflicts 而非 failed。

    Attributes:
        total: 总操作数
        success: 成功数
        failed: 失败数
        conflicts: 版本冲突数
        errors: 错误详情列表
        took: 总耗时（秒）
        batch_count: 批次数
    """

    total: int = 0
    success: int = 0
    failed: int = 0
    conflicts: int = 0
    errors: list[BulkErrorItem] = field(default_factory=list)
    took: float = 0.0
    batch_count: int = 0

    def is_success(self) -> bool:
        """判断操作是否全部成功."""
        return self.failed == 0

    @property
    def failed_ids(self) -> list[str]:
        """失败文档的 ID 列表."""
        return [error.doc_id for error in self.errors if error.doc_id is not None]

    def get_error_summary(self) -> str:
        """获取错误摘要."""
        if not self.errors:
            return "No errors"
        summary = f"Total errors: {len(self.errors)}\n"
        for i, error in enumerate(self.errors[:10], 1):  # 只显示前10个错误
            summary += (
                f"{i}. Index: {error.index_name}, DocID: {error.doc_id}, "
                f"Status: {error.status}, Reason: {error.error_reason}\n"
            )
        if len(self.errors) > 10:
            summary += f"... and {len(self.errors) - 10} more errors\n"
        return summary
