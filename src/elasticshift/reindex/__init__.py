"""重建索引模块 - 可恢复的两遍迁移引擎.

主要组件:
    - Reindexer: 第一遍复制、别名切换、第二遍补偿、对账删除
    - ReindexTask: 迁移任务，可序列化后放入队列
    - ReindexCheckpoint: 保存在外部缓存中的可恢复进度
    - ReindexConfig: 批大小、游标保活时间、第二遍时钟偏差容忍等参数

使用示例:
    from elasticshift.reindex import Reindexer, ReindexTask

    reindexer = Reindexer(index_manager, cache)
    await reindexer.reindex(ReindexTask("logs-v1", "logs-v2", alias="logs"))
"""

from .exceptions import MigrationFatalError, ReindexConfigError, ReindexError
from .models import (
    PassResult,
    ReindexCheckpoint,
    ReindexConfig,
    ReindexResult,
    ReindexStage,
    ReindexTask,
)
from .progress import calculate_progress, report_progress, scaled_progress
from .tool import Reindexer

__all__ = [
    # 引擎
    "Reindexer",
    # 模型
    "ReindexTask",
    "ReindexCheckpoint",
    "ReindexConfig",
    "ReindexResult",
    "ReindexStage",
    "PassResult",
    # 进度
    "calculate_progress",
    "report_progress",
    "scaled_progress",
    # 异常
    "ReindexError",
    "ReindexConfigError",
    "MigrationFatalError",
]
