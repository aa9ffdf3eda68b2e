"""PartitionEnumerator 与 ManagedIndex 单元测试."""

from datetime import UTC, datetime

import pytest

from elasticshift.core import PartitionPeriod
from elasticshift.descriptors import (
    IndexConfigBuilder,
    IndexConfigError,
    ManagedIndex,
    PartitionedLifecycle,
    PartitionEnumerator,
    PlainLifecycle,
    VersionedLifecycle,
)


class TestPartitionEnumerator:
    """PartitionEnumerator 测试."""

    @pytest.mark.asyncio
    async def test_unpartitioned(self, index_manager) -> None:
        index_manager.add_index("employees-v2")
        index_manager.add_index("employees-v1", aliases=["employees"])
        index_manager.add_index("employees-v1-error")
        index_manager.add_index("employees-vx")
        index_manager.add_index("employees-v1-2024.01.01")

        partitions = await PartitionEnumerator(index_manager, "employees").list_partitions()

        assert [p.index_name for p in partitions] == ["employees-v1", "employees-v2"]
        assert [p.current_version for p in partitions] == [1, -1]
        assert not partitions[0].is_partitioned

    @pytest.mark.asyncio
    async def test_partitioned(self, index_manager) -> None:
        index_manager.add_index("logs-v2-2024.01.01")
        index_manager.add_index("logs-v1-2024.01.02", aliases=["logs-2024.01.02"])
        index_manager.add_index("logs-v1-2024.01.01", aliases=["logs-2024.01.01"])
        index_manager.add_index("logs-v1-2024.01.01-error")
        index_manager.add_index("logs-v1")

        enumerator = PartitionEnumerator(index_manager, "logs", PartitionPeriod.DAILY)
        partitions = await enumerator.list_partitions()

        assert [p.index_name for p in partitions] == [
            "logs-v1-2024.01.01",
            "logs-v2-2024.01.01",
            "logs-v1-2024.01.02",
        ]
        assert partitions[0].date == datetime(2024, 1, 1, tzinfo=UTC)
        assert [p.current_version for p in partitions] == [1, -1, 1]
        assert [p.index_name for p in await enumerator.list_partitions(version=2)] == [
            "logs-v2-2024.01.01"
        ]

    @pytest.mark.asyncio
    async def test_no_indices(self, index_manager) -> None:
        assert await PartitionEnumerator(index_manager, "logs").list_partitions() == []


class TestManagedIndex:
    """ManagedIndex 生命周期选择与门面方法测试."""

    def test_lifecycle_selection(self, index_manager, cache) -> None:
        plain = ManagedIndex(IndexConfigBuilder("tags").build(), index_manager, cache)
        versioned = ManagedIndex(
            IndexConfigBuilder("employees").version(2).build(), index_manager, cache
        )
        partitioned = ManagedIndex(IndexConfigBuilder("logs").daily().build(), index_manager, cache)

        assert isinstance(plain.lifecycle, PlainLifecycle)
        assert isinstance(versioned.lifecycle, VersionedLifecycle)
        assert isinstance(partitioned.lifecycle, PartitionedLifecycle)
        assert (plain.version, versioned.version, partitioned.version) == (0, 2, 1)

    @pytest.mark.asyncio
    async def test_plain_index(self, index_manager, cache) -> None:
        index = ManagedIndex(
            IndexConfigBuilder("tags").mappings({"properties": {}}).build(),
            index_manager,
            cache,
        )

        await index.configure()
        await index.configure()

        assert index_manager.create_calls == ["tags"]
        assert index_manager.aliases_of("tags") == set()
        assert not await index.is_outdated()
        assert await index.create_reindex_tasks() == []
        assert await index.reindex() == []
        await index.maintain()

        await index.delete()
        assert index_manager.indices == {}

    @pytest.mark.asyncio
    async def test_partition_operations_require_partitioning(
        self, index_manager, cache
    ) -> None:
        index = ManagedIndex(IndexConfigBuilder("employees").version(1).build(), index_manager)

        with pytest.raises(IndexConfigError):
            await index.ensure_index(datetime(2024, 1, 1, tzinfo=UTC))
        with pytest.raises(IndexConfigError):
            index.get_partitions_for_range()

    @pytest.mark.asyncio
    async def test_partitioned_configure_is_noop(self, index_manager, cache) -> None:
        index = ManagedIndex(IndexConfigBuilder("logs").daily().build(), index_manager, cache)
        await index.configure()
        assert index_manager.indices == {}
