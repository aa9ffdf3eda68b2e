"""批量操作核心工具类."""

import asyncio
import logging
import time
from typing import Any

from elasticsearch import AsyncElasticsearch
from elasticsearch.exceptions import TransportError
from elasticsearch.helpers import async_bulk

from .exceptions import BulkOperationError, BulkRetryExhaustedError
from .models import BulkErrorItem, BulkOperation, BulkResult

logger = logging.getLogger(__name__)

# 外部版本冲突：目标文档已是相同或更新的版本
VERSION_CONFLICT_STATUS = 409


class BulkOperationTool:
    """批量操作核心工具类.

    基于 elasticsearch.helpers.async_bulk 提供批量写入功能，支持：
    - 自动分批处理
    - 传输异常时整批重试（外部版本写入是幂等的）
    - 逐条错误收集，外部版本冲突单独计数

    Args:
        es_client: AsyncElasticsearch 客户端实例
        batch_size: 每批次操作数量，默认为 500
        max_retries: 传输异常最大重试次数，默认为 3
        retry_delay: 重试延迟时间（秒），默认为 1.0
    """

    def __init__(
        self,
        es_client: AsyncElasticsearch,
        batch_size: int = 500,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size 必须 >= 1，当前值: {batch_size}")
        self.es_client = es_client
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        logger.info(
            f"初始化批量操作工具: batch_size={batch_size}, "
            f"max_retries={max_retries}, retry_delay={retry_delay}"
        )

    def _prepare_bulk_action(self, operation: BulkOperation) -> dict[str, Any]:
        """准备 async_bulk 所需的动作字典.

        Args:
            operation: 批量操作项

        Returns:
            可用于 elasticsearch.helpers.async_bulk 的操作字典
        """
        if operation.source is None:
            raise BulkOperationError(
                f"操作类型 {operation.action.value} 需要提供 source 数据"
            )

        action: dict[str, Any] = {
            "_op_type": operation.action.value,
            "_index": operation.index_name,
            "_source": operation.source,
        }

        if operation.doc_id is not None:
            action["_id"] = operation.doc_id
        if operation.routing is not None:
            action["routing"] = operation.routing
        if operation.version is not None:
            action["version"] = operation.version
            action["version_type"] = operation.version_type or "external"

        return action

    async def _execute_bulk_with_retry(
        self,
        actions: list[dict[str, Any]],
    ) -> tuple[int, list[dict[str, Any]]]:
        """执行批量操作，传输异常时重试整批.

        Returns:
            元组：(成功数, 错误详情列表)
        """
        for attempt in range(self.max_retries + 1):
            try:
                success_count, errors = await async_bulk(
                    self.es_client,
                    actions,
                    chunk_size=len(actions),
                    raise_on_exception=False,
                    raise_on_error=False,
                    stats_only=False,
                )
                return success_count, list(errors)
            except TransportError as e:
                if attempt >= self.max_retries:
                    raise BulkRetryExhaustedError(
                        f"批量操作重试次数耗尽: {str(e)}"
                    ) from e
                logger.warning(f"批量操作遇到异常，第 {attempt + 1} 次重试: {str(e)}")
                await asyncio.sleep(self.retry_delay)

        return 0, []

    def _process_errors(
        self,
        errors: list[dict[str, Any]],
        result: BulkResult,
    ) -> None:
        """将 async_bulk 返回的错误项归类到结果对象中.

        Args:
            errors: async_bulk 返回的错误列表，每项形如 ``{op_type: item}``
            result: 待填充的批量操作结果
        """
        for error in errors:
            _, item = next(iter(error.items()))
            status = item.get("status", 500)

            if status == VERSION_CONFLICT_STATUS:
                result.conflicts += 1
                continue

            error_info = item.get("error", {})
            if isinstance(error_info, dict):
                error_type = error_info.get("type", "unknown")
                error_reason = error_info.get("reason", "unknown error")
                caused_by = None
                if "caused_by" in error_info:
                    caused_by_info = error_info["caused_by"]
                    caused_by = (
                        f"{caused_by_info.get('type', '')}: "
                        f"{caused_by_info.get('reason', '')}"
                    )
            else:
                # 整个分块请求失败时 error 为字符串
                error_type = "BulkChunkError"
                error_reason = str(error_info)
                caused_by = None

            result.failed += 1
            result.errors.append(
                BulkErrorItem(
                    index_name=item.get("_index", ""),
                    doc_id=item.get("_id"),
                    error_type=error_type,
                    error_reason=error_reason,
                    status=status,
                    caused_by=caused_by,
                )
            )

    async def bulk_execute(self, operations: list[BulkOperation]) -> BulkResult:
        """执行批量操作.

        Args:
            operations: 批量操作项列表

        Returns:
            批量操作结果，失败的文档记录在 errors 中

        Raises:
            BulkRetryExhaustedError: 传输异常重试耗尽时抛出

        Example:
            >>> tool = BulkOperationTool(es_client)
            >>> result = await tool.bulk_execute(
            ...     [BulkOperation(index_name="users-v2", doc_id="1", source={"a": 1})]
            ... )
            >>> print(result.failed_ids)
        """
        if not operations:
            return BulkResult()

        result = BulkResult(total=len(operations))
        start_time = time.time()

        for i in range(0, len(operations), self.batch_size):
            batch = operations[i : i + self.batch_size]
            result.batch_count += 1

            actions = [self._prepare_bulk_action(op) for op in batch]
            success_count, errors = await self._execute_bulk_with_retry(actions)
            result.success += success_count

            failed_before = result.failed
            self._process_errors(errors, result)
            batch_failed = result.failed - failed_before

            if batch_failed > 0:
                logger.warning(
                    f"批次 {result.batch_count}: 成功 {success_count}, "
                    f"失败 {batch_failed}"
                )
            else:
                logger.debug(f"批次 {result.batch_count}: 全部成功 ({success_count})")

        result.took = time.time() - start_time
        return result
