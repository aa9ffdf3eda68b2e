"""索引管理器数据模型定义模块."""

from dataclasses import dataclass, field, replace
from typing import Any, TypedDict


class IndexSettings(TypedDict, total=False):
    """索引设置类型定义.

    Attributes:
        number_of_shards: 主分片数量
        number_of_replicas: 副本分片数量
        refresh_interval: 刷新间隔
        analysis: 分析器配置
        mapping: 映射相关设置（如 total_fields.limit）
    """

    number_of_shards: int
    number_of_replicas: int
    refresh_interval: str
    analysis: dict[str, Any]
    mapping: dict[str, Any]


class IndexMappings(TypedDict, total=False):
    """索引映射类型定义.

    Attributes:
        properties: 字段属性映射
        dynamic: 动态映射策略
    """

    properties: dict[str, Any]
    dynamic: str | bool


@dataclass
class IndexInfo:
    """索引信息数据类.

    Attributes:
        name: 索引名称
        aliases: 索引别名列表
    """

    name: str
    aliases: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScrollCursor:
    """基于 point-in-time + search_after 的分页游标.

    游标只记录最后一个已返回文档的排序值，因此从检查点恢复时不会跳过
    已取出但未写入的批次。

    Attributes:
        pit_id: point-in-time ID
        keep_alive: PIT 保活时间
        page_size: 每页文档数
        query: 过滤查询（None 表示全部文档）
        search_after: 上一页最后一个文档的排序值
    """

    pit_id: str
    keep_alive: str
    page_size: int
    query: dict[str, Any] | None = None
    search_after: list[Any] | None = None

    def advance(self, pit_id: str, search_after: list[Any] | None) -> "ScrollCursor":
        return replace(self, pit_id=pit_id, search_after=search_after)

    def to_token(self) -> dict[str, Any]:
        """转换为可 JSON 序列化的游标令牌."""
        return {
            "pit_id": self.pit_id,
            "keep_alive": self.keep_alive,
            "page_size": self.page_size,
            "query": self.query,
            "search_after": self.search_after,
        }

    @classmethod
    def from_token(cls, token: dict[str, Any]) -> "ScrollCursor":
        return cls(
            pit_id=token["pit_id"],
            keep_alive=token["keep_alive"],
            page_size=token["page_size"],
            query=token.get("query"),
            search_after=token.get("search_after"),
        )


@dataclass
class SourceHit:
    """一条从源索引读出的文档.

    Attributes:
        doc_id: 文档ID
        source: 文档源数据
        version: 文档版本号
        routing: 文档路由
    """

    doc_id: str
    source: dict[str, Any]
    version: int | None = None
    routing: str | None = None


@dataclass
class ScrollPage:
    """游标分页结果.

    Attributes:
        hits: 本页文档
        cursor: 指向本页之后的游标
        total: 匹配文档总数（仅在打开游标时统计）
    """

    hits: list[SourceHit]
    cursor: ScrollCursor
    total: int | None = None
