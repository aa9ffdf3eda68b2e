"""版本化索引与时间分区索引使用示例.

本文件展示了如何使用 elasticshift 管理索引版本、按日分区以及执行在线迁移。
运行前需要本地启动 Elasticsearch（http://localhost:9200）与 Redis（redis://localhost:6379）。
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from elasticshift import (
    ElasticConfiguration,
    IndexConfigBuilder,
    MaintainIndexesJob,
    ReindexQueueWorker,
    ReindexWorkItemHandler,
)
from elasticshift.connection import ClientFactory, ElasticsearchConfig, RedisConfig

logging.basicConfig(level=logging.INFO)

# 员工索引：版本 2 把 name 字段重命名为 full_name
employees = (
    IndexConfigBuilder("employees")
    .mappings(
        {
            "properties": {
                "full_name": {"type": "keyword"},
                "created_at": {"type": "date"},
            }
        }
    )
    .version(2)
    .rename_field(2, "name", "full_name")
    .timestamp_field("created_at")
    .build()
)

# 访问日志：按日分区，保留 90 天，并维护最近 7 天 / 30 天的分级别名
access_logs = (
    IndexConfigBuilder("access-logs")
    .mappings({"properties": {"path": {"type": "keyword"}, "created_at": {"type": "date"}}})
    .daily(max_index_age=timedelta(days=90))
    .add_tiered_alias("access-logs-today", timedelta(0))
    .add_tiered_alias("access-logs-last7days", timedelta(days=7))
    .add_tiered_alias("access-logs-last30days", timedelta(days=30))
    .timestamp_field("created_at")
    .build()
)


def print_progress(percent: int, message: str | None) -> None:
    print(f"  [{percent:3d}%] {message or '完成'}")


# ==================== 示例1：配置索引 ====================
async def example_configure(configuration: ElasticConfiguration):
    """创建索引，版本落后的索引会把迁移任务放入队列."""
    await configuration.configure_indexes()

    for index in configuration.indexes:
        current = await index.get_current_version()
        print(f"索引 {index.name}: 当前版本 {current}，声明版本 {index.version}")


# ==================== 示例2：按日分区写入 ====================
async def example_partitions(configuration: ElasticConfiguration):
    """按文档时间戳确保分区存在，并计算查询需要覆盖的分区."""
    logs = configuration.get_index("access-logs")

    document = {"path": "/api/users", "created_at": datetime.now(UTC).isoformat()}
    alias = await logs.ensure_index_for_document(document)
    print(f"文档写入别名: {alias}")

    now = datetime.now(UTC)
    print(f"最近三天的分区: {logs.get_partitions_for_range(now - timedelta(days=2), now)}")


# ==================== 示例3：执行迁移任务 ====================
async def example_worker(configuration: ElasticConfiguration):
    """消费队列中的迁移任务，直到队列为空."""
    handler = ReindexWorkItemHandler(configuration.reindexer, configuration.lock_provider)
    worker = ReindexQueueWorker(configuration.work_queue, handler)

    while True:
        result = await worker.run_once(timeout=1.0)
        if result is None:
            break
        failures = result.first_pass.failures + result.second_pass.failures
        print(
            f"迁移完成: {result.task.source_index} -> {result.task.dest_index}, "
            f"失败文档 {failures} 个，源索引已删除: {result.source_deleted}"
        )


# ==================== 示例4：巡检 ====================
async def example_maintain(configuration: ElasticConfiguration):
    """协调分区别名并删除过期分区."""
    executed = await MaintainIndexesJob(configuration).run()
    print(f"巡检执行: {executed}")


async def main():
    """运行所有示例."""
    print("=" * 50)
    print("索引生命周期示例")
    print("=" * 50)

    async with ClientFactory(
        ElasticsearchConfig(hosts=["http://localhost:9200"]),
        RedisConfig(url="redis://localhost:6379"),
    ) as factory:
        print(f"集群状态: {await factory.check_cluster()}")
        configuration = factory.create_configuration([employees, access_logs])

        await example_configure(configuration)
        await example_partitions(configuration)
        await example_worker(configuration)
        await example_maintain(configuration)

        # 也可以不经过队列，直接在当前进程内迁移
        await configuration.reindex(print_progress)


if __name__ == "__main__":
    asyncio.run(main())
