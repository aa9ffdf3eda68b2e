"""索引管理器核心工具类."""

import logging
from typing import Any

from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import (
    ApiError,
    BadRequestError,
    ConflictError,
    NotFoundError,
)

from ..bulk import BulkOperation, BulkOperationTool, BulkResult
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

logger = logging.getLogger(__name__)


def validate_index_name(index_name: str, allow_wildcards: bool = False) -> bool:
    """验证索引名称是否符合 Elasticsearch 规范.

    Args:
        index_name: 索引名称
        allow_wildcards: 是否允许通配符（用于查询场景）

    Returns:
        是否有效

    Note:
        Elasticsearch 索引名称限制：
        - 不能以 . 或 _ 开头
        - 不能包含 , # / \\ * ? " < > | 空格
        - 不能是 . 或 ..
        - 长度不能超过 255 字节
    """
    if not index_name or not isinstance(index_name, str):
        return False

    if len(index_name.encode("utf-8")) > 255:
        return False

    if index_name.startswith(".") or index_name.startswith("_"):
        return False

    if index_name in (".", ".."):
        return False

    invalid_chars = {",", "#", "/", "\\", '"', "<", ">", "|", " ", "\t", "\n", "\r"}

    if not allow_wildcards:
        invalid_chars.update({"*", "?"})

    if any(char in invalid_chars for char in index_name):
        return False

    return True


def _error_type(error: ApiError) -> str:
    """从 ApiError 中提取 ES 错误类型，例如 resource_already_exists_exception."""
    body = error.body
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("type", "")
    return str(error.message)


class IndexManager:
    """索引管理器核心类.

    对 AsyncElasticsearch 的薄封装，提供版本化索引生命周期所需的存储操作：
    - 索引创建、删除与存在性检查
    - 别名查询与批量原子更新
    - 按模式列出物理索引
    - 基于 point-in-time 的游标分页
    - 文档计数、读取与单条写入
    - 批量写入与 _reindex

    "已存在"/"不存在"之外的存储错误统一包装为 IndexManagerError 抛出。

    Args:
        es_client: AsyncElasticsearch 客户端实例
        bulk_tool: 批量写入工具，默认基于 es_client 创建
    """

    def __init__(
        self,
        es_client: AsyncElasticsearch,
        bulk_tool: BulkOperationTool | None = None,
    ):
        if es_client is None:
            raise ValueError("es_client 不能为 None")
        self.es_client = es_client
        self.bulk_tool = bulk_tool or BulkOperationTool(es_client)
        logger.info("初始化索引管理器")

    # ==================== 索引 ====================

    async def index_exists(self, index_name: str) -> bool:
        """检查索引是否存在.

        Example:
            >>> manager = IndexManager(es_client)
            >>> exists = await manager.index_exists("employees-v1")
        """
        try:
            return bool(await self.es_client.indices.exists(index=index_name))
        except ApiError as e:
            raise IndexManagerError(
                f"检查索引 '{index_name}' 是否存在失败: {str(e)}"
            ) from e

    async def create_index(
        self,
        index_name: str,
        mappings: IndexMappings | dict[str, Any] | None = None,
        settings: IndexSettings | dict[str, Any] | None = None,
        aliases: list[str] | None = None,
    ) -> bool:
        """创建索引.

        Args:
            index_name: 索引名称
            mappings: 索引映射配置
            settings: 索引设置配置
            aliases: 创建时一并挂载的别名

        Returns:
            是否成功创建索引

        Raises:
            IndexAlreadyExistsError: 索引已存在时抛出
            IndexManagerError: 其他创建失败
            ValueError: 索引名称不符合 Elasticsearch 规范时抛出

        Example:
            >>> manager = IndexManager(es_client)
            >>> await manager.create_index(
            ...     "employees-v1",
            ...     mappings={"properties": {"name": {"type": "keyword"}}},
            ...     aliases=["employees"],
            ... )
        """
        if not validate_index_name(index_name):
            raise ValueError(f"索引名称 '{index_name}' 不符合 Elasticsearch 规范")

        kwargs: dict[str, Any] = {}
        if mappings:
            kwargs["mappings"] = mappings
        if settings:
            kwargs["settings"] = settings
        if aliases:
            kwargs["aliases"] = {alias: {} for alias in aliases}

        try:
            response = await self.es_client.indices.create(index=index_name, **kwargs)
            acknowledged = response.get("acknowledged", False)
            if acknowledged:
                logger.info(f"索引 '{index_name}' 创建成功，别名: {aliases or []}")
                return True
            return False

        except BadRequestError as e:
            if _error_type(e) == "resource_already_exists_exception":
                raise IndexAlreadyExistsError(f"索引 '{index_name}' 已存在") from e
            raise IndexManagerError(f"创建索引 '{index_name}' 失败: {str(e)}") from e
        except ApiError as e:
            raise IndexManagerError(f"创建索引 '{index_name}' 失败: {str(e)}") from e

    async def delete_index(self, index_name: str) -> bool:
        """删除索引.

        Returns:
            是否删除了索引，索引不存在时返回 False

        Example:
            >>> manager = IndexManager(es_client)
            >>> await manager.delete_index("employees-v1")
        """
        if not validate_index_name(index_name):
            raise ValueError(f"索引名称 '{index_name}' 不符合 Elasticsearch 规范")

        try:
            response = await self.es_client.indices.delete(index=index_name)
            acknowledged = response.get("acknowledged", False)
            if acknowledged:
                logger.info(f"索引 '{index_name}' 删除成功")
                return True
            return False

        except NotFoundError:
            logger.debug(f"索引 '{index_name}' 不存在，跳过删除")
            return False
        except ApiError as e:
            raise IndexManagerError(f"删除索引 '{index_name}' 失败: {str(e)}") from e

    async def list_indices(self, pattern: str) -> list[IndexInfo]:
        """按模式列出物理索引及其别名.

        Args:
            pattern: 索引名称模式（支持通配符），例如 ``employees-v*``

        Returns:
            按名称排序的索引信息列表，没有匹配时返回空列表

        Example:
            >>> manager = IndexManager(es_client)
            >>> for info in await manager.list_indices("logs-v*"):
            ...     print(info.name, info.aliases)
        """
        if not validate_index_name(pattern, allow_wildcards=True):
            raise ValueError(f"索引模式 '{pattern}' 不符合 Elasticsearch 规范")

        try:
            response = await self.es_client.indices.get_alias(index=pattern)
        except NotFoundError:
            return []
        except ApiError as e:
            raise IndexManagerError(f"列出索引 '{pattern}' 失败: {str(e)}") from e

        indices = [
            IndexInfo(name=name, aliases=sorted(data.get("aliases", {}).keys()))
            for name, data in response.items()
        ]
        return sorted(indices, key=lambda info: info.name)

    async def refresh(self, index_name: str) -> None:
        try:
            await self.es_client.indices.refresh(index=index_name)
        except NotFoundError as e:
            raise IndexNotFoundError(f"索引 '{index_name}' 不存在") from e
        except ApiError as e:
            raise IndexManagerError(f"刷新索引 '{index_name}' 失败: {str(e)}") from e

    async def count(self, index_name: str) -> int:
        """统计索引中的文档数量.

        Raises:
            IndexNotFoundError: 索引不存在时抛出
        """
        try:
            response = await self.es_client.count(index=index_name)
            return int(response.get("count", 0))
        except NotFoundError as e:
            raise IndexNotFoundError(f"索引 '{index_name}' 不存在") from e
        except ApiError as e:
            raise IndexManagerError(f"统计索引 '{index_name}' 失败: {str(e)}") from e

    # ==================== 别名 ====================

    async def alias_exists(self, alias_name: str) -> bool:
        try:
            return bool(await self.es_client.indices.exists_alias(name=alias_name))
        except ApiError as e:
            raise IndexManagerError(
                f"检查别名 '{alias_name}' 是否存在失败: {str(e)}"
            ) from e

    async def get_indices_by_alias(self, alias_name: str) -> list[str]:
        """获取别名指向的所有索引.

        Returns:
            按名称排序的索引名称列表，别名不存在时返回空列表
        """
        try:
            response = await self.es_client.indices.get_alias(name=alias_name)
            return sorted(response.keys())
        except NotFoundError:
            return []
        except ApiError as e:
            raise IndexManagerError(
                f"获取别名 '{alias_name}' 指向的索引失败: {str(e)}"
            ) from e

    async def get_aliases(self, index_name: str) -> list[str]:
        """获取索引上挂载的所有别名.

        Returns:
            按名称排序的别名列表，索引不存在时返回空列表
        """
        try:
            response = await self.es_client.indices.get_alias(index=index_name)
        except NotFoundError:
            logger.warning(f"索引 '{index_name}' 不存在")
            return []
        except ApiError as e:
            raise IndexManagerError(
                f"获取索引 '{index_name}' 别名失败: {str(e)}"
            ) from e

        aliases: set[str] = set()
        for alias_data in response.values():
            aliases.update(alias_data.get("aliases", {}).keys())
        return sorted(aliases)

    async def update_aliases(self, actions: list[dict[str, dict[str, str]]]) -> bool:
        """原子地批量更新别名.

        Args:
            actions: 别名动作列表，例如
                ``[{"remove": {"index": "a-v1", "alias": "a"}}, {"add": {"index": "a-v2", "alias": "a"}}]``

        Returns:
            是否被确认，动作为空时直接返回 True

        Raises:
            AliasNotFoundError: 待移除的别名或索引不存在时抛出
            IndexManagerError: 其他更新失败
        """
        if not actions:
            return True

        try:
            response = await self.es_client.indices.update_aliases(actions=actions)
        except NotFoundError as e:
            raise AliasNotFoundError(f"更新别名失败，别名或索引不存在: {str(e)}") from e
        except ApiError as e:
            raise IndexManagerError(f"更新别名失败: {str(e)}") from e

        acknowledged = response.get("acknowledged", False)
        if acknowledged:
            logger.info(f"别名更新成功，共 {len(actions)} 个动作")
        return bool(acknowledged)

    async def add_alias(self, index_name: str, alias_name: str) -> bool:
        """为索引添加别名.

        Example:
            >>> manager = IndexManager(es_client)
            >>> await manager.add_alias("employees-v1", "employees")
        """
        return await self.update_aliases(
            [{"add": {"index": index_name, "alias": alias_name}}]
        )

    # ==================== 游标分页 ====================

    async def open_cursor(
        self,
        index_name: str,
        query: dict[str, Any] | None = None,
        page_size: int = 500,
        keep_alive: str = "5m",
    ) -> ScrollPage:
        """打开 point-in-time 游标并返回第一页.

        Args:
            index_name: 索引名称
            query: 过滤查询（可选）
            page_size: 每页文档数
            keep_alive: PIT 保活时间

        Returns:
            第一页结果，total 为匹配文档总数

        Raises:
            IndexNotFoundError: 索引不存在时抛出
        """
        try:
            response = await self.es_client.open_point_in_time(
                index=index_name, keep_alive=keep_alive
            )
        except NotFoundError as e:
            raise IndexNotFoundError(f"索引 '{index_name}' 不存在") from e
        except ApiError as e:
            raise IndexManagerError(
                f"打开索引 '{index_name}' 的游标失败: {str(e)}"
            ) from e

        cursor = ScrollCursor(
            pit_id=response["id"],
            keep_alive=keep_alive,
            page_size=page_size,
            query=query,
        )
        return await self._search_page(cursor, track_total_hits=True)

    async def next_page(self, cursor: ScrollCursor) -> ScrollPage:
        """获取游标的下一页，没有更多文档时 hits 为空.

        Raises:
            CursorExpiredError: PIT 已过期或失效时抛出
        """
        return await self._search_page(cursor, track_total_hits=False)

    async def _search_page(
        self, cursor: ScrollCursor, track_total_hits: bool
    ) -> ScrollPage:
        kwargs: dict[str, Any] = {
            "pit": {"id": cursor.pit_id, "keep_alive": cursor.keep_alive},
            "query": cursor.query or {"match_all": {}},
            "sort": ["_shard_doc"],
            "size": cursor.page_size,
            "version": True,
            "track_total_hits": track_total_hits,
        }
        if cursor.search_after is not None:
            kwargs["search_after"] = cursor.search_after

        try:
            response = await self.es_client.search(**kwargs)
        except NotFoundError as e:
            raise CursorExpiredError(f"游标已失效: {str(e)}") from e
        except ApiError as e:
            if "search_context_missing_exception" in str(e):
                raise CursorExpiredError(f"游标已失效: {str(e)}") from e
            raise IndexManagerError(f"游标查询失败: {str(e)}") from e

        raw_hits = response["hits"]["hits"]
        hits = [
            SourceHit(
                doc_id=hit["_id"],
                source=hit.get("_source", {}),
                version=hit.get("_version"),
                routing=hit.get("_routing"),
            )
            for hit in raw_hits
        ]
        search_after = raw_hits[-1]["sort"] if raw_hits else cursor.search_after
        next_cursor = cursor.advance(
            pit_id=response.get("pit_id", cursor.pit_id),
            search_after=search_after,
        )

        total = None
        if track_total_hits:
            total = int(response["hits"]["total"]["value"])
        return ScrollPage(hits=hits, cursor=next_cursor, total=total)

    async def close_cursor(self, cursor: ScrollCursor) -> None:
        """关闭游标对应的 point-in-time，已过期的 PIT 直接忽略."""
        try:
            await self.es_client.close_point_in_time(id=cursor.pit_id)
        except NotFoundError:
            logger.debug("游标已过期，无需关闭")
        except ApiError as e:
            logger.warning(f"关闭游标失败: {str(e)}")

    # ==================== 文档 ====================

    async def get_document(
        self, index_name: str, doc_id: str
    ) -> dict[str, Any] | None:
        """读取单个文档的源数据，文档不存在时返回 None."""
        try:
            response = await self.es_client.get(index=index_name, id=doc_id)
            return response.get("_source")
        except NotFoundError:
            return None
        except ApiError as e:
            raise IndexManagerError(
                f"读取文档 '{index_name}/{doc_id}' 失败: {str(e)}"
            ) from e

    async def index_document(
        self,
        index_name: str,
        doc_id: str,
        document: dict[str, Any],
        version: int | None = None,
        routing: str | None = None,
    ) -> bool:
        """写入单个文档.

        指定 version 时使用外部版本写入，目标已是相同或更新版本不视为错误。

        Returns:
            是否写入，外部版本冲突时返回 False

        Raises:
            IndexManagerError: 写入失败时抛出
        """
        kwargs: dict[str, Any] = {}
        if version is not None:
            kwargs["version"] = version
            kwargs["version_type"] = "external"
        if routing is not None:
            kwargs["routing"] = routing

        try:
            await self.es_client.index(
                index=index_name, id=doc_id, document=document, **kwargs
            )
            return True
        except ConflictError:
            logger.debug(f"文档 '{index_name}/{doc_id}' 已是相同或更新的版本")
            return False
        except ApiError as e:
            raise IndexManagerError(
                f"写入文档 '{index_name}/{doc_id}' 失败: {str(e)}"
            ) from e

    async def bulk_index(self, operations: list[BulkOperation]) -> BulkResult:
        """批量写入文档，逐条错误记录在结果中."""
        return await self.bulk_tool.bulk_execute(operations)

    async def reindex(
        self,
        source_index: str,
        dest_index: str,
        query: dict[str, Any] | None = None,
        script: dict[str, Any] | None = None,
        version_type: str | None = None,
        conflicts: str = "proceed",
        routing: str | None = None,
    ) -> dict[str, Any]:
        """使用 _reindex API 复制文档（同步等待完成）.

        Args:
            source_index: 源索引名称
            dest_index: 目标索引名称
            query: 过滤查询条件，只复制匹配的文档（可选）
            script: 转换脚本，用于修改文档内容（可选）
            version_type: 目标写入的版本类型，例如 "external"
            conflicts: 版本冲突处理方式，默认 "proceed"
            routing: 目标文档路由，支持 "keep"、"discard" 或 "=<值>"（可选）

        Returns:
            重建索引结果信息，包含 total、created、updated、failures 等字段

        Raises:
            IndexNotFoundError: 源索引不存在时抛出
            IndexManagerError: 操作失败时抛出

        Example:
            >>> manager = IndexManager(es_client)
            >>> result = await manager.reindex(
            ...     "users-v1", "users-v2", query={"ids": {"values": ["1", "2"]}}
            ... )
            >>> print(result["failures"])
        """
        source: dict[str, Any] = {"index": source_index}
        if query:
            source["query"] = query

        dest: dict[str, Any] = {"index": dest_index}
        if version_type:
            dest["version_type"] = version_type
        if routing:
            dest["routing"] = routing

        kwargs: dict[str, Any] = {}
        if script:
            kwargs["script"] = script

        try:
            response = await self.es_client.reindex(
                source=source,
                dest=dest,
                conflicts=conflicts,
                wait_for_completion=True,
                **kwargs,
            )
        except NotFoundError as e:
            raise IndexNotFoundError(f"源索引 '{source_index}' 不存在") from e
        except ApiError as e:
            raise IndexManagerError(
                f"重建索引 '{source_index}' 到 '{dest_index}' 失败: {str(e)}"
            ) from e

        logger.debug(
            f"索引 '{source_index}' 重建到 '{dest_index}' 完成: "
            f"total={response.get('total', 0)}, "
            f"created={response.get('created', 0)}, "
            f"updated={response.get('updated', 0)}"
        )
        return dict(response)
