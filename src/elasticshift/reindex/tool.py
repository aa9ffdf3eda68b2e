"""可恢复的两遍重建索引引擎."""

import json
import logging
from datetime import datetime
from typing import Any

from ..bulk import BulkOperation, BulkOperationError
from ..coordination.cache import CacheClient, ScopedCacheClient
from ..core.utils import error_index_name, get_value_by_path, utc_now
from ..index_manager import (
    IndexAlreadyExistsError,
    IndexManager,
    IndexManagerError,
    ScrollCursor,
    SourceHit,
)
from ..index_manager.exceptions import CursorExpiredError
from ..typing import NowFunc, ProgressCallback
from .exceptions import MigrationFatalError, ReindexError
from .models import (
    PassResult,
    ReindexCheckpoint,
    ReindexConfig,
    ReindexResult,
    ReindexStage,
    ReindexTask,
)
from .progress import calculate_progress, report_progress

logger = logging.getLogger(__name__)

CHECKPOINT_SCOPE = "reindex"


class Reindexer:
    """可恢复的两遍重建索引引擎.

    执行流程:
        1. 第一遍：游标遍历源索引，批量写入目标索引（进度 0-90）
        2. 别名切换：源索引上的所有别名原子地移动到目标索引
        3. 第二遍：只扫描第一遍开始之后写入源索引的文档（进度 92-96）
        4. 对账删除：目标文档数不少于源文档数时删除源索引及其错误影子索引

    每批处理完成后把检查点写入外部缓存，进程崩溃后重新执行同一任务即可从
    最后完成的批次之后继续。文档以外部版本写入，重复写入不会回退数据。

    Args:
        index_manager: 索引管理器
        cache: 外部缓存，用于保存检查点
        config: 重建索引配置
        now_func: 获取当前时间的函数，默认为 UTC 当前时间

    Example:
        >>> reindexer = Reindexer(IndexManager(es_client), RedisCacheClient())
        >>> task = ReindexTask("employees-v1", "employees-v2", alias="employees")
        >>> await reindexer.reindex(task, lambda p, m: print(p, m))
    """

    def __init__(
        self,
        index_manager: IndexManager,
        cache: CacheClient,
        config: ReindexConfig | None = None,
        now_func: NowFunc | None = None,
    ):
        self._index_manager = index_manager
        self._checkpoints = ScopedCacheClient(cache, CHECKPOINT_SCOPE)
        self._config = config or ReindexConfig()
        self._now_func = now_func or utc_now

    @property
    def config(self) -> ReindexConfig:
        return self._config

    async def reindex(
        self,
        task: ReindexTask,
        progress: ProgressCallback | None = None,
    ) -> ReindexResult:
        """执行（或恢复）一个重建索引任务.

        Args:
            task: 重建索引任务
            progress: 进度回调 ``(percent, message)``，结束时以 ``(100, None)`` 调用

        Returns:
            重建索引结果

        Raises:
            MigrationFatalError: 文档写入错误影子索引失败时抛出
            ReindexError: 游标反复失效等无法继续的情况
            IndexManagerError: 存储操作失败
        """
        if not task.source_index or not task.dest_index:
            raise ReindexError("source_index 和 dest_index 不能为空")

        key = task.task_hash()
        result = ReindexResult(task=task)
        checkpoint = await self._load_checkpoint(key)

        if checkpoint is None:
            checkpoint = ReindexCheckpoint(started_at=self._now_func())
            logger.info(
                f"开始重建索引: '{task.source_index}' -> '{task.dest_index}'"
            )
            await report_progress(progress, 0, "开始重建索引...")
        else:
            logger.info(
                f"从检查点恢复重建索引: '{task.source_index}' -> '{task.dest_index}', "
                f"阶段: {checkpoint.stage.value}, 已完成: {checkpoint.completed}"
            )
            if checkpoint.started_at is None:
                checkpoint.started_at = self._now_func()
            await report_progress(
                progress, 0, f"从检查点恢复重建索引，阶段: {checkpoint.stage.value}"
            )

        if checkpoint.stage is ReindexStage.FIRST_PASS:
            result.first_pass = await self._run_pass(
                task,
                key,
                checkpoint,
                self._first_pass_query(task),
                0,
                90,
                progress,
            )
            logger.info(
                f"第一遍完成: '{task.source_index}' 共 {result.first_pass.completed} 个文档，"
                f"失败 {result.first_pass.failures} 个"
            )
            checkpoint.advance(ReindexStage.ALIAS_CUTOVER)
            await self._save_checkpoint(key, task, checkpoint)

        if checkpoint.stage is ReindexStage.ALIAS_CUTOVER:
            await report_progress(progress, 91, "正在切换别名...")
            await self._cutover(task)
            checkpoint.advance(ReindexStage.SECOND_PASS)
            await self._save_checkpoint(key, task, checkpoint)
            await report_progress(progress, 92, "别名切换完成")

        if checkpoint.stage is ReindexStage.SECOND_PASS:
            await self._index_manager.refresh(task.source_index)
            result.second_pass = await self._run_pass(
                task,
                key,
                checkpoint,
                self._second_pass_query(task, checkpoint.started_at),
                92,
                96,
                progress,
            )
            logger.info(
                f"第二遍完成: '{task.source_index}' 共 {result.second_pass.completed} 个文档"
            )
            checkpoint.advance(ReindexStage.RECONCILE_DELETE)
            await self._save_checkpoint(key, task, checkpoint)

        if checkpoint.stage is ReindexStage.RECONCILE_DELETE:
            await report_progress(progress, 97, "正在对账...")
            await self._reconcile(task, result, progress)

        await self._checkpoints.remove(key)
        logger.info(f"重建索引完成: '{task.source_index}' -> '{task.dest_index}'")
        await report_progress(progress, 100, None)
        return result

    # ==================== 检查点 ====================

    async def _load_checkpoint(self, key: str) -> ReindexCheckpoint | None:
        data = await self._checkpoints.get(key)
        if data is None:
            return None
        try:
            return ReindexCheckpoint.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"检查点 '{key}' 无法解析，丢弃后重新开始: {str(e)}")
            await self._checkpoints.remove(key)
            return None

    async def _save_checkpoint(
        self, key: str, task: ReindexTask, checkpoint: ReindexCheckpoint
    ) -> None:
        await self._checkpoints.set(
            key, checkpoint.to_dict(), expires_at=task.checkpoint_expires_at
        )

    async def get_checkpoint(self, task: ReindexTask) -> ReindexCheckpoint | None:
        """读取任务当前的检查点，不存在时返回 None."""
        return await self._load_checkpoint(task.task_hash())

    # ==================== 遍历 ====================

    def _first_pass_query(self, task: ReindexTask) -> dict[str, Any] | None:
        if task.timestamp_field and task.window_start_utc:
            return _range_query(task.timestamp_field, task.window_start_utc)
        return None

    def _second_pass_query(
        self, task: ReindexTask, started_at: datetime | None
    ) -> dict[str, Any] | None:
        if not task.timestamp_field or started_at is None:
            logger.info(f"索引 '{task.source_index}' 未配置时间戳字段，第二遍将重新扫描全部文档")
            return None
        return _range_query(
            task.timestamp_field, started_at - self._config.second_pass_skew
        )

    async def _run_pass(
        self,
        task: ReindexTask,
        key: str,
        checkpoint: ReindexCheckpoint,
        query: dict[str, Any] | None,
        start_pct: int,
        end_pct: int,
        progress: ProgressCallback | None,
    ) -> PassResult:
        """执行一遍扫描，游标失效时丢弃检查点并从头重新开始本遍."""
        result = PassResult()
        while True:
            try:
                await self._scan(
                    task, key, checkpoint, query, start_pct, end_pct, progress, result
                )
                return result
            except CursorExpiredError as e:
                result.restarts += 1
                if result.restarts > self._config.max_cursor_restarts:
                    raise ReindexError(
                        f"索引 '{task.source_index}' 的游标连续失效 {result.restarts} 次，放弃重建"
                    ) from e
                logger.warning(
                    f"索引 '{task.source_index}' 的游标已失效，丢弃检查点并重新开始本遍扫描"
                )
                checkpoint.reset_pass()
                result.failures = 0
                await self._save_checkpoint(key, task, checkpoint)

    async def _scan(
        self,
        task: ReindexTask,
        key: str,
        checkpoint: ReindexCheckpoint,
        query: dict[str, Any] | None,
        start_pct: int,
        end_pct: int,
        progress: ProgressCallback | None,
        result: PassResult,
    ) -> None:
        if checkpoint.cursor is not None:
            page = await self._index_manager.next_page(
                ScrollCursor.from_token(checkpoint.cursor)
            )
        else:
            page = await self._index_manager.open_cursor(
                task.source_index,
                query=query,
                page_size=self._config.page_size,
                keep_alive=self._config.keep_alive,
            )
            checkpoint.total = page.total or 0
            checkpoint.completed = 0

        result.total = checkpoint.total

        while page.hits:
            result.failures += await self._write_batch(task, page.hits)
            checkpoint.cursor = page.cursor.to_token()
            checkpoint.completed += len(page.hits)
            await self._save_checkpoint(key, task, checkpoint)

            await report_progress(
                progress,
                calculate_progress(
                    checkpoint.total, checkpoint.completed, start_pct, end_pct
                ),
                f"总数: {checkpoint.total} 已完成: {checkpoint.completed}",
            )
            page = await self._index_manager.next_page(page.cursor)

        await self._index_manager.close_cursor(page.cursor)
        result.completed = checkpoint.completed

    # ==================== 写入 ====================

    def _document_type(self, task: ReindexTask, hit: SourceHit) -> str | None:
        if not task.type_field:
            return None
        value = get_value_by_path(hit.source, task.type_field)
        return str(value) if value is not None else None

    def _resolve_parent_id(self, task: ReindexTask, hit: SourceHit) -> str | None:
        """按文档类型查找父文档 ID，没有配置父文档路径时返回 None."""
        doc_type = self._document_type(task, hit)
        if doc_type is None:
            return None
        path = task.parent_path_by_type.get(doc_type)
        if not path:
            return None
        value = get_value_by_path(hit.source, path)
        return str(value) if value is not None else None

    async def _write_batch(self, task: ReindexTask, hits: list[SourceHit]) -> int:
        """写入一批文档，返回最终写入错误影子索引的文档数."""
        if task.script:
            failed = await self._reindex_batch(task, hits)
        else:
            failed = await self._bulk_batch(task, hits)

        if not failed:
            return 0

        logger.warning(
            f"写入 '{task.dest_index}' 时 {len(failed)} 个文档失败，开始逐条重试"
        )
        failures = 0
        for hit in failed:
            try:
                await self._write_single(task, hit)
            except IndexManagerError as e:
                failures += 1
                logger.error(
                    f"文档 '{hit.doc_id}' 重试后仍写入失败，转存到错误索引: {str(e)}"
                )
                await self._write_error_document(task, hit, e)
        return failures

    async def _bulk_batch(
        self, task: ReindexTask, hits: list[SourceHit]
    ) -> list[SourceHit]:
        operations = [
            BulkOperation(
                index_name=task.dest_index,
                doc_id=hit.doc_id,
                source=hit.source,
                routing=self._resolve_parent_id(task, hit) or hit.routing,
                version=hit.version,
                version_type="external" if hit.version is not None else None,
            )
            for hit in hits
        ]
        try:
            bulk_result = await self._index_manager.bulk_index(operations)
        except BulkOperationError as e:
            logger.warning(f"批量写入 '{task.dest_index}' 失败: {str(e)}")
            return list(hits)

        if not bulk_result.is_success():
            logger.warning(
                f"批量写入 '{task.dest_index}' 部分失败，稍后逐条重试:\n"
                f"{bulk_result.get_error_summary()}"
            )
        failed_ids = set(bulk_result.failed_ids)
        return [hit for hit in hits if hit.doc_id in failed_ids]

    async def _reindex_batch(
        self, task: ReindexTask, hits: list[SourceHit]
    ) -> list[SourceHit]:
        # _reindex 只能为整个请求指定一个路由，按父文档分组提交
        groups: dict[str | None, list[SourceHit]] = {}
        for hit in hits:
            groups.setdefault(self._resolve_parent_id(task, hit), []).append(hit)

        failed: list[SourceHit] = []
        for parent_id, group in groups.items():
            try:
                response = await self._reindex_ids(
                    task, [hit.doc_id for hit in group], parent_id
                )
            except IndexManagerError as e:
                logger.warning(f"脚本迁移批次 '{task.dest_index}' 失败: {str(e)}")
                failed.extend(group)
                continue
            failed_ids = {failure.get("id") for failure in response.get("failures", [])}
            failed.extend(hit for hit in group if hit.doc_id in failed_ids)
        return failed

    async def _reindex_ids(
        self, task: ReindexTask, ids: list[str], parent_id: str | None = None
    ) -> dict[str, Any]:
        return await self._index_manager.reindex(
            task.source_index,
            task.dest_index,
            query={"ids": {"values": ids}},
            script={"source": task.script, "lang": "painless"},
            version_type="external",
            conflicts="proceed",
            # 未配置父文档时沿用源文档的路由
            routing=f"={parent_id}" if parent_id else None,
        )

    async def _write_single(self, task: ReindexTask, hit: SourceHit) -> None:
        parent_id = self._resolve_parent_id(task, hit)
        if task.script:
            response = await self._reindex_ids(task, [hit.doc_id], parent_id)
            failures = response.get("failures", [])
            if failures:
                cause = failures[0].get("cause", {})
                raise IndexManagerError(
                    f"脚本迁移文档 '{hit.doc_id}' 失败: {cause.get('reason', cause)}"
                )
            return

        await self._index_manager.index_document(
            task.dest_index,
            hit.doc_id,
            hit.source,
            version=hit.version,
            routing=parent_id or hit.routing,
        )

    async def _ensure_error_index(self, index_name: str) -> None:
        # 错误索引可能在两次任务之间被人工删除，每次都重新检查
        if await self._index_manager.index_exists(index_name):
            return
        try:
            await self._index_manager.create_index(
                index_name, mappings=self._config.error_index_mappings
            )
        except IndexAlreadyExistsError:
            pass

    async def _write_error_document(
        self, task: ReindexTask, hit: SourceHit, error: Exception
    ) -> None:
        """把写入失败的文档转存到 ``{dest}-error``，失败时中止任务."""
        error_index = error_index_name(task.dest_index)
        document: dict[str, Any] = {
            "type": self._document_type(task, hit),
            "content": json.dumps(hit.source, indent=2, ensure_ascii=False, default=str),
            "source_index": task.source_index,
            "failed_at": self._now_func().isoformat(),
            "error": str(error),
        }
        parent_id = self._resolve_parent_id(task, hit)
        if parent_id:
            document["parent_id"] = parent_id

        try:
            await self._ensure_error_index(error_index)
            await self._index_manager.index_document(error_index, hit.doc_id, document)
        except IndexManagerError as e:
            logger.error(f"文档 '{hit.doc_id}' 写入错误索引 '{error_index}' 失败")
            raise MigrationFatalError(
                f"文档 '{hit.doc_id}' 写入错误索引 '{error_index}' 失败: {str(e)}"
            ) from e

    # ==================== 别名切换与对账 ====================

    async def _cutover(self, task: ReindexTask) -> None:
        """把源索引上的所有别名原子地移动到目标索引."""
        if task.source_index == task.dest_index:
            return

        aliases = await self._index_manager.get_aliases(task.source_index)
        targets = list(aliases)
        if task.alias and task.alias not in targets:
            targets.append(task.alias)

        actions: list[dict[str, dict[str, str]]] = [
            {"remove": {"index": task.source_index, "alias": alias}} for alias in aliases
        ]
        actions.extend(
            {"add": {"index": task.dest_index, "alias": alias}} for alias in targets
        )
        await self._index_manager.update_aliases(actions)
        logger.info(
            f"别名 {targets} 已从 '{task.source_index}' 切换到 '{task.dest_index}'"
        )

    async def _reconcile(
        self,
        task: ReindexTask,
        result: ReindexResult,
        progress: ProgressCallback | None,
    ) -> None:
        if not task.delete_source_on_success or task.source_index == task.dest_index:
            return

        if not await self._index_manager.index_exists(task.source_index):
            # 上一次执行已经删除了源索引，错误影子索引可能仍然残留
            await self._index_manager.delete_index(error_index_name(task.source_index))
            result.source_deleted = True
            return

        await self._index_manager.refresh(task.source_index)
        await self._index_manager.refresh(task.dest_index)
        source_count = await self._index_manager.count(task.source_index)
        dest_count = await self._index_manager.count(task.dest_index)
        result.source_count = source_count
        result.dest_count = dest_count
        await report_progress(
            progress,
            98,
            f"源索引文档数: {source_count} 目标索引文档数: {dest_count}",
        )

        if dest_count < source_count:
            logger.warning(
                f"目标索引 '{task.dest_index}' 文档数 {dest_count} 少于源索引 "
                f"'{task.source_index}' 文档数 {source_count}，保留源索引"
            )
            return

        await self._index_manager.delete_index(task.source_index)
        await self._index_manager.delete_index(error_index_name(task.source_index))
        result.source_deleted = True
        await report_progress(progress, 99, f"已删除源索引 '{task.source_index}'")


def _range_query(field: str, gte: datetime) -> dict[str, Any]:
    return {"range": {field: {"gte": gte.isoformat()}}}
