"""BulkOperationTool 单元测试."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from elastic_transport import ConnectionError as TransportConnectionError

from elasticshift.bulk import (
    BulkAction,
    BulkOperation,
    BulkOperationError,
    BulkOperationTool,
    BulkResult,
    BulkRetryExhaustedError,
)

BULK_PATCH_PATH = "elasticshift.bulk.tool.async_bulk"


@pytest.fixture
def tool() -> BulkOperationTool:
    return BulkOperationTool(MagicMock(), batch_size=2, max_retries=2, retry_delay=0)


def _operation(doc_id: str, version: int | None = None) -> BulkOperation:
    return BulkOperation(
        index_name="users-v2", doc_id=doc_id, source={"id": doc_id}, version=version
    )


class TestPrepareBulkAction:
    """_prepare_bulk_action 方法测试."""

    def test_index_action(self, tool) -> None:
        action = tool._prepare_bulk_action(_operation("1"))
        assert action == {
            "_op_type": "index",
            "_index": "users-v2",
            "_source": {"id": "1"},
            "_id": "1",
        }

    def test_external_version_and_routing(self, tool) -> None:
        """测试外部版本与路由参数."""
        operation = BulkOperation(
            index_name="users-v2",
            doc_id="1",
            source={"id": "1"},
            action=BulkAction.CREATE,
            routing="parent-1",
            version=7,
        )
        action = tool._prepare_bulk_action(operation)
        assert action["_op_type"] == "create"
        assert action["routing"] == "parent-1"
        assert action["version"] == 7
        assert action["version_type"] == "external"

    def test_missing_source_raises_error(self, tool) -> None:
        operation = BulkOperation(index_name="users-v2", doc_id="1", source=None)
        with pytest.raises(BulkOperationError, match="需要提供 source"):
            tool._prepare_bulk_action(operation)


class TestBulkExecute:
    """bulk_execute 方法测试."""

    def test_invalid_batch_size(self) -> None:
        with pytest.raises(ValueError, match="batch_size"):
            BulkOperationTool(MagicMock(), batch_size=0)

    @pytest.mark.asyncio
    async def test_empty_operations(self, tool) -> None:
        result = await tool.bulk_execute([])
        assert isinstance(result, BulkResult)
        assert result.total == 0

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_batches(self, mock_bulk, tool) -> None:
        """测试按 batch_size 分批执行."""
        mock_bulk.side_effect = [(2, []), (1, [])]
        result = await tool.bulk_execute([_operation(str(i)) for i in range(3)])

        assert mock_bulk.await_count == 2
        assert result.batch_count == 2
        assert result.success == 3
        assert result.is_success()

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_conflicts_are_not_failures(self, mock_bulk, tool) -> None:
        """测试外部版本冲突计入 conflicts 而不是 failed."""
        mock_bulk.return_value = (
            1,
            [
                {
                    "index": {
                        "_index": "users-v2",
                        "_id": "2",
                        "status": 409,
                        "error": {"type": "version_conflict_engine_exception"},
                    }
                }
            ],
        )
        result = await tool.bulk_execute([_operation("1", 1), _operation("2", 1)])

        assert result.conflicts == 1
        assert result.failed == 0
        assert result.failed_ids == []

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_document_errors_collected(self, mock_bulk, tool) -> None:
        """测试逐条错误收集."""
        mock_bulk.return_value = (
            1,
            [
                {
                    "index": {
                        "_index": "users-v2",
                        "_id": "2",
                        "status": 400,
                        "error": {
                            "type": "mapper_parsing_exception",
                            "reason": "failed to parse",
                            "caused_by": {"type": "illegal_argument", "reason": "bad"},
                        },
                    }
                }
            ],
        )
        result = await tool.bulk_execute([_operation("1"), _operation("2")])

        assert result.failed == 1
        assert result.failed_ids == ["2"]
        assert result.errors[0].error_type == "mapper_parsing_exception"
        assert result.errors[0].caused_by == "illegal_argument: bad"
        assert "DocID: 2" in result.get_error_summary()

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_chunk_error_string(self, mock_bulk, tool) -> None:
        """测试整块请求失败时 error 为字符串."""
        mock_bulk.return_value = (
            0,
            [{"index": {"_index": "users-v2", "_id": "1", "status": 500, "error": "boom"}}],
        )
        result = await tool.bulk_execute([_operation("1")])

        assert result.failed_ids == ["1"]
        assert result.errors[0].error_type == "BulkChunkError"
        assert result.errors[0].error_reason == "boom"

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_retry_on_transport_error(self, mock_bulk, tool) -> None:
        """测试传输异常时整批重试."""
        mock_bulk.side_effect = [TransportConnectionError("timeout"), (1, [])]
        result = await tool.bulk_execute([_operation("1")])

        assert mock_bulk.await_count == 2
        assert result.success == 1

    @pytest.mark.asyncio
    @patch(BULK_PATCH_PATH, new_callable=AsyncMock)
    async def test_retry_exhausted(self, mock_bulk, tool) -> None:
        """测试重试次数耗尽抛出 BulkRetryExhaustedError."""
        mock_bulk.side_effect = TransportConnectionError("down")
        with pytest.raises(BulkRetryExhaustedError):
            await tool.bulk_execute([_operation("1")])
        assert mock_bulk.await_count == 3
