"""索引管理器模块.

该模块封装了版本化索引生命周期所需的 Elasticsearch 存储操作，包括：
- 索引创建、删除与存在性检查
- 别名查询与原子批量更新
- 按模式列出物理索引
- 基于 point-in-time 的游标分页
- 文档计数、读取、写入与 _reindex

示例用法:
    >>> from elasticshift.index_manager import IndexManager
    >>> manager = IndexManager(es_client)
    >>> await manager.create_index(
    ...     "employees-v1",
    ...     mappings={"properties": {"name": {"type": "keyword"}}},
    ...     aliases=["employees"],
    ... )
    >>> await manager.get_indices_by_alias("employees")
    ['employees-v1']
"""

from .exceptions import (
    AliasNotFoundError,
    CursorExpiredError,
    IndexAlreadyExistsError,
    IndexManagerError,
    IndexNotFoundError,
)
from .models import (
    IndexInfo,
    IndexMappings,
    IndexSettings,
    ScrollCursor,
    ScrollPage,
    SourceHit,
)
from .tool import IndexManager, validate_index_name

__all__ = [
    # 核心类
    "IndexManager",
    "validate_index_name",
    # 数据模型
    "IndexInfo",
    "IndexMappings",
    "IndexSettings",
    "ScrollCursor",
    "ScrollPage",
    "SourceHit",
    # 异常
    "IndexManagerError",
    "IndexNotFoundError",
    "IndexAlreadyExistsError",
    "AliasNotFoundError",
    "CursorExpiredError",
]
