"""测试用的内存版 IndexManager 与辅助函数."""

import asyncio
import fnmatch
import itertools
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig

from elasticshift.bulk import BulkErrorItem, BulkOperation, BulkResult
from elasticshift.index_manager import (
    AliasNotFoundError,
    CursorExpiredError,
    IndexAlreadyExistsError,
    IndexInfo,
    IndexManagerError,
    IndexNotFoundError,
    ScrollCursor,
    ScrollPage,
    SourceHit,
)


def make_api_error(error_cls, status: int, error_type: str, reason: str = "error"):
    """构造 elasticsearch 8 的 ApiError 实例."""
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    body = {
        "error": {
            "type": error_type,
            "reason": reason,
            "root_cause": [{"type": error_type, "reason": reason}],
        },
        "status": status,
    }
    return error_cls(message=error_type, meta=meta, body=body)


@dataclass
class StoredDocument:
    source: dict[str, Any]
    version: int
    routing: str | None = None


@dataclass
class FakeIndex:
    mappings: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    aliases: set[str] = field(default_factory=set)
    documents: dict[str, StoredDocument] = field(default_factory=dict)


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return None


def _dest_routing(routing: str | None, source_routing: str | None) -> str | None:
    # 与 _reindex 的 dest.routing 语义一致
    if routing is None or routing == "keep":
        return source_routing
    if routing == "discard":
        return None
    return routing[1:]


class FakeIndexManager:
    """内存中的 IndexManager 实现.

    外部版本语义与 Elasticsearch 一致：新版本必须大于已有版本，否则视为冲突。
    迁移脚本无法在内存中执行，由 script_handler 模拟转换。

    失败注入:
        fail_bulk_ids: 这些文档在批量写入（或多 ID 的 _reindex）中失败
        fail_single_ids: 这些文档在逐条写入中也失败
        fail_error_index: 写入 ``*-error`` 索引失败
        fail_create: 创建索引时抛出的异常
    """

    def __init__(
        self,
        script_handler: Callable[[dict[str, Any], str], dict[str, Any]] | None = None,
    ):
        self.indices: dict[str, FakeIndex] = {}
        self.script_handler = script_handler or (lambda source, script: dict(source))
        self.fail_bulk_ids: set[str] = set()
        self.fail_single_ids: set[str] = set()
        self.fail_error_index = False
        self.fail_create: Exception | None = None
        self.alias_updates: list[list[dict[str, dict[str, str]]]] = []
        self.reindex_calls: list[dict[str, Any]] = []
        self.create_calls: list[str] = []
        self._pits: dict[str, list[str]] = {}
        self._pit_ids = itertools.count(1)

    # ==================== 测试辅助 ====================

    def add_index(
        self,
        name: str,
        aliases: list[str] | None = None,
        documents: dict[str, dict[str, Any]] | None = None,
    ) -> FakeIndex:
        index = FakeIndex(aliases=set(aliases or []))
        for doc_id, source in (documents or {}).items():
            index.documents[doc_id] = StoredDocument(dict(source), 1)
        self.indices[name] = index
        return index

    def put(self, index_name: str, doc_id: str, source: dict[str, Any]) -> None:
        """直接写入文档（内部版本递增）."""
        documents = self.indices[index_name].documents
        previous = documents.get(doc_id)
        version = previous.version + 1 if previous else 1
        documents[doc_id] = StoredDocument(dict(source), version)

    def expire_cursors(self) -> None:
        self._pits.clear()

    def aliases_of(self, index_name: str) -> set[str]:
        return set(self.indices[index_name].aliases)

    def _require(self, index_name: str) -> FakeIndex:
        if index_name not in self.indices:
            raise IndexNotFoundError(f"索引 '{index_name}' 不存在")
        return self.indices[index_name]

    def _write(
        self,
        index_name: str,
        doc_id: str,
        source: dict[str, Any],
        version: int | None,
        routing: str | None,
    ) -> bool:
        index = self._require(index_name)
        existing = index.documents.get(doc_id)
        if version is None:
            version = existing.version + 1 if existing else 1
        elif existing is not None and existing.version >= version:
            return False
        index.documents[doc_id] = StoredDocument(dict(source), version, routing)
        return True

    # ==================== 索引 ====================

    async def index_exists(self, index_name: str) -> bool:
        await asyncio.sleep(0)
        return index_name in self.indices

    async def create_index(
        self,
        index_name: str,
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
        aliases: list[str] | None = None,
    ) -> bool:
        await asyncio.sleep(0)
        if self.fail_create is not None:
            raise self.fail_create
        if index_name in self.indices:
            raise IndexAlreadyExistsError(f"索引 '{index_name}' 已存在")
        self.create_calls.append(index_name)
        self.indices[index_name] = FakeIndex(
            mappings=dict(mappings or {}),
            settings=dict(settings or {}),
            aliases=set(aliases or []),
        )
        return True

    async def delete_index(self, index_name: str) -> bool:
        await asyncio.sleep(0)
        return self.indices.pop(index_name, None) is not None

    async def list_indices(self, pattern: str) -> list[IndexInfo]:
        await asyncio.sleep(0)
        return [
            IndexInfo(name=name, aliases=sorted(index.aliases))
            for name, index in sorted(self.indices.items())
            if fnmatch.fnmatchcase(name, pattern)
        ]

    async def refresh(self, index_name: str) -> None:
        self._require(index_name)

    async def count(self, index_name: str) -> int:
        return len(self._require(index_name).documents)

    # ==================== 别名 ====================

    async def alias_exists(self, alias_name: str) -> bool:
        await asyncio.sleep(0)
        return any(alias_name in index.aliases for index in self.indices.values())

    async def get_indices_by_alias(self, alias_name: str) -> list[str]:
        return sorted(
            name for name, index in self.indices.items() if alias_name in index.aliases
        )

    async def get_aliases(self, index_name: str) -> list[str]:
        index = self.indices.get(index_name)
        return sorted(index.aliases) if index else []

    async def update_aliases(self, actions: list[dict[str, dict[str, str]]]) -> bool:
        await asyncio.sleep(0)
        if not actions:
            return True
        # 先校验，保证原子性
        for action in actions:
            (kind, target), = action.items()
            index = self.indices.get(target["index"])
            if index is None:
                raise AliasNotFoundError(f"索引 '{target['index']}' 不存在")
            if kind == "remove" and target["alias"] not in index.aliases:
                raise AliasNotFoundError(f"别名 '{target['alias']}' 不存在")
        for action in actions:
            (kind, target), = action.items()
            aliases = self.indices[target["index"]].aliases
            if kind == "add":
                aliases.add(target["alias"])
            else:
                aliases.discard(target["alias"])
        self.alias_updates.append(actions)
        return True

    async def add_alias(self, index_name: str, alias_name: str) -> bool:
        return await self.update_aliases(
            [{"add": {"index": index_name, "alias": alias_name}}]
        )

    # ==================== 游标 ====================

    def _matches(self, document: StoredDocument, query: dict[str, Any] | None) -> bool:
        if not query:
            return True
        if "ids" in query:
            return False
        (field_name, condition), = query["range"].items()
        value = _to_datetime(document.source.get(field_name))
        return value is not None and value >= _to_datetime(condition["gte"])

    async def open_cursor(
        self,
        index_name: str,
        query: dict[str, Any] | None = None,
        page_size: int = 500,
        keep_alive: str = "5m",
    ) -> ScrollPage:
        index = self._require(index_name)
        pit_id = f"pit-{next(self._pit_ids)}"
        self._pits[pit_id] = [index_name] + sorted(
            doc_id
            for doc_id, document in index.documents.items()
            if self._matches(document, query)
        )
        cursor = ScrollCursor(pit_id, keep_alive, page_size, query, None)
        page = await self.next_page(cursor)
        page.total = len(self._pits[pit_id]) - 1
        return page

    async def next_page(self, cursor: ScrollCursor) -> ScrollPage:
        await asyncio.sleep(0)
        snapshot = self._pits.get(cursor.pit_id)
        if snapshot is None:
            raise CursorExpiredError(f"游标 '{cursor.pit_id}' 已失效")

        index_name, doc_ids = snapshot[0], snapshot[1:]
        start = cursor.search_after[0] if cursor.search_after else 0
        documents = self.indices.get(index_name, FakeIndex()).documents
        hits = []
        for doc_id in doc_ids[start : start + cursor.page_size]:
            document = documents.get(doc_id)
            if document is None:
                continue
            hits.append(
                SourceHit(doc_id, dict(document.source), document.version, document.routing)
            )
        end = min(start + cursor.page_size, len(doc_ids))
        search_after = [end] if hits else cursor.search_after
        return ScrollPage(hits=hits, cursor=cursor.advance(cursor.pit_id, search_after))

    async def close_cursor(self, cursor: ScrollCursor) -> None:
        self._pits.pop(cursor.pit_id, None)

    # ==================== 文档 ====================

    async def get_document(self, index_name: str, doc_id: str) -> dict[str, Any] | None:
        document = self._require(index_name).documents.get(doc_id)
        return dict(document.source) if document else None

    async def index_document(
        self,
        index_name: str,
        doc_id: str,
        document: dict[str, Any],
        version: int | None = None,
        routing: str | None = None,
    ) -> bool:
        await asyncio.sleep(0)
        if index_name.endswith("-error") and self.fail_error_index:
            raise IndexManagerError(f"写入 '{index_name}' 失败")
        if doc_id in self.fail_single_ids and not index_name.endswith("-error"):
            raise IndexManagerError(f"写入文档 '{doc_id}' 失败")
        return self._write(index_name, doc_id, document, version, routing)

    async def bulk_index(self, operations: list[BulkOperation]) -> BulkResult:
        await asyncio.sleep(0)
        result = BulkResult(total=len(operations), batch_count=1)
        for operation in operations:
            if operation.doc_id in self.fail_bulk_ids | self.fail_single_ids:
                result.failed += 1
                result.errors.append(
                    BulkErrorItem(
                        operation.index_name,
                        operation.doc_id,
                        "mapper_parsing_exception",
                        "failed to parse",
                        400,
                    )
                )
                continue
            written = self._write(
                operation.index_name,
                operation.doc_id,
                operation.source,
                operation.version,
                operation.routing,
            )
            if written:
                result.success += 1
            else:
                result.conflicts += 1
        return result

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
        await asyncio.sleep(0)
        source = self._require(source_index)
        self._require(dest_index)
        ids = list(query["ids"]["values"]) if query else sorted(source.documents)
        self.reindex_calls.append({"ids": ids, "script": script, "routing": routing})

        failing = set(self.fail_single_ids)
        if len(ids) > 1:
            failing |= self.fail_bulk_ids

        response: dict[str, Any] = {"total": 0, "created": 0, "version_conflicts": 0, "failures": []}
        for doc_id in ids:
            document = source.documents.get(doc_id)
            if document is None:
                continue
            response["total"] += 1
            if doc_id in failing:
                response["failures"].append(
                    {"id": doc_id, "cause": {"type": "script_exception", "reason": "boom"}}
                )
                continue
            transformed = document.source
            if script:
                transformed = self.script_handler(dict(document.source), script["source"])
            version = document.version if version_type == "external" else None
            dest_routing = _dest_routing(routing, document.routing)
            if self._write(dest_index, doc_id, transformed, version, dest_routing):
                response["created"] += 1
            else:
                response["version_conflicts"] += 1
        return response


class FakeClock:
    """可手动推进的 UTC 时钟."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta) -> None:
        self.now = self.now + delta
