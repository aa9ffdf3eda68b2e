"""重建索引进度回调工具."""

import inspect
import logging

from ..typing import ProgressCallback

logger = logging.getLogger(__name__)


def calculate_progress(total: int, completed: int, start: int, end: int) -> int:
    """按已完成比例把进度映射到 [start, end] 区间.

    示例:
        >>> calculate_progress(200, 50, 0, 90)
        22
    """
    if total <= 0:
        return start
    percent = start + (end - start) * completed / total
    return int(min(max(percent, start), end))


async def report_progress(
    callback: ProgressCallback | None, percent: int, message: str | None
) -> None:
    """调用进度回调，回调为 None 时只记录日志.

    回调既可以是普通函数，也可以是协程函数。
    """
    if callback is None:
        logger.info(f"重建索引进度 {percent}%: {message or '完成'}")
        return
    outcome = callback(percent, message)
    if inspect.isawaitable(outcome):
        await outcome


def scaled_progress(
    callback: ProgressCallback | None, position: int, count: int
) -> ProgressCallback:
    """把第 position 个（从 0 开始）子任务的 0..100 进度缩放到整体进度.

    最后一个子任务的 (100, None) 原样传递，其余子任务的完成信号不会提前报告 100%。
    """

    async def _scaled(percent: int, message: str | None) -> None:
        overall = int((position * 100 + percent) / max(count, 1))
        if message is None and position < count - 1:
            message = f"已完成 {position + 1}/{count} 个分区"
        await report_progress(callback, overall, message)

    return _scaled
