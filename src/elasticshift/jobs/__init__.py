"""后台任务模块.

主要组件:
    - MaintainIndexesJob: 加锁的周期性索引巡检
    - ReindexWorkItemHandler: 持有任务锁执行迁移任务
    - ReindexQueueWorker: 从队列消费迁移任务

使用示例:
    from elasticshift.jobs import ReindexQueueWorker, ReindexWorkItemHandler

    handler = ReindexWorkItemHandler(configuration.reindexer, configuration.lock_provider)
    worker = ReindexQueueWorker(configuration.work_queue, handler)
    await worker.run(stop_event)
"""

from .tool import MaintainIndexesJob, ReindexQueueWorker, ReindexWorkItemHandler

__all__ = [
    "MaintainIndexesJob",
    "ReindexWorkItemHandler",
    "ReindexQueueWorker",
]
