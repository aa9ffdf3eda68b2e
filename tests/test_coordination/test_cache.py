"""缓存客户端单元测试."""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from elasticshift.coordination import (
    CoordinationError,
    RedisCacheClient,
    ScopedCacheClient,
)
from elasticshift.core import MAX_DATE


class TestInMemoryCacheClient:
    """InMemoryCacheClient 测试."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache) -> None:
        await cache.set("key", {"completed": 10})
        assert await cache.get("key") == {"completed": 10}
        assert await cache.exists("key")

    @pytest.mark.asyncio
    async def test_values_are_copied(self, cache) -> None:
        value = {"items": [1]}
        await cache.set("key", value)
        value["items"].append(2)
        assert await cache.get("key") == {"items": [1]}

    @pytest.mark.asyncio
    async def test_expiry(self, cache, clock) -> None:
        await cache.set("key", True, expires_at=clock() + timedelta(hours=1))
        clock.advance(timedelta(minutes=59))
        assert await cache.get("key") is True

        clock.advance(timedelta(minutes=1))
        assert await cache.get("key") is None
        assert not await cache.exists("key")

    @pytest.mark.asyncio
    async def test_already_expired_not_stored(self, cache, clock) -> None:
        await cache.set("key", True, expires_at=clock() - timedelta(seconds=1))
        assert await cache.get("key") is None

    @pytest.mark.asyncio
    async def test_max_date_never_expires(self, cache, clock) -> None:
        await cache.set("key", True, expires_at=MAX_DATE)
        clock.advance(timedelta(days=10000))
        assert await cache.get("key") is True

    @pytest.mark.asyncio
    async def test_remove_and_remove_by_prefix(self, cache) -> None:
        await cache.set("reindex:a", 1)
        await cache.set("reindex:b", 2)
        await cache.set("partition:a", 3)

        assert await cache.remove("reindex:a") is True
        assert await cache.remove("reindex:a") is False
        assert await cache.remove_by_prefix("reindex:") == 1
        assert await cache.get("partition:a") == 3


class TestScopedCacheClient:
    """ScopedCacheClient 测试."""

    def test_empty_scope_rejected(self, cache) -> None:
        with pytest.raises(ValueError, match="scope"):
            ScopedCacheClient(cache, "")

    @pytest.mark.asyncio
    async def test_keys_are_prefixed(self, cache) -> None:
        scoped = ScopedCacheClient(cache, "partition")
        await scoped.set("logs-2024.01.01", True)

        assert await cache.get("partition:logs-2024.01.01") is True
        assert await scoped.exists("logs-2024.01.01")
        assert await scoped.remove_by_prefix("logs-") == 1
        assert not await cache.exists("partition:logs-2024.01.01")


def _redis_client() -> AsyncMock:
    return AsyncMock()


class TestRedisCacheClient:
    """RedisCacheClient 测试（使用模拟的 redis 客户端）."""

    @pytest.mark.asyncio
    async def test_set_json_with_px(self, clock) -> None:
        client = _redis_client()
        cache = RedisCacheClient(client=client, key_prefix="test", now_func=clock)

        await cache.set("key", {"a": 1}, expires_at=clock() + timedelta(seconds=2))

        client.set.assert_awaited_once_with("test:key", json.dumps({"a": 1}), px=2000)

    @pytest.mark.asyncio
    async def test_set_without_expiry(self, clock) -> None:
        client = _redis_client()
        cache = RedisCacheClient(client=client, key_prefix="test", now_func=clock)

        await cache.set("key", True, expires_at=MAX_DATE)

        client.set.assert_awaited_once_with("test:key", "true", px=None)

    @pytest.mark.asyncio
    async def test_set_expired_removes(self, clock) -> None:
        client = _redis_client()
        client.delete.return_value = 1
        cache = RedisCacheClient(client=client, key_prefix="test", now_func=clock)

        await cache.set("key", True, expires_at=clock() - timedelta(seconds=1))

        client.set.assert_not_awaited()
        client.delete.assert_awaited_once_with("test:key")

    @pytest.mark.asyncio
    async def test_get_decodes_json(self) -> None:
        client = _redis_client()
        client.get.return_value = '{"stage": "second_pass"}'
        cache = RedisCacheClient(client=client)

        assert await cache.get("key") == {"stage": "second_pass"}
        client.get.assert_awaited_once_with("elasticshift:key")

    @pytest.mark.asyncio
    async def test_get_missing(self) -> None:
        client = _redis_client()
        client.get.return_value = None
        assert await RedisCacheClient(client=client).get("key") is None

    @pytest.mark.asyncio
    async def test_redis_error_wrapped(self) -> None:
        client = _redis_client()
        client.get.side_effect = RedisConnectionError("refused")
        with pytest.raises(CoordinationError, match="读取缓存"):
            await RedisCacheClient(client=client).get("key")

    @pytest.mark.asyncio
    async def test_remove_by_prefix_scans(self) -> None:
        async def _scan_iter(match):
            assert match == "elasticshift:reindex:*"
            for key in ("elasticshift:reindex:a", "elasticshift:reindex:b"):
                yield key

        client = _redis_client()
        client.scan_iter = MagicMock(side_effect=_scan_iter)
        client.delete.return_value = 1

        assert await RedisCacheClient(client=client).remove_by_prefix("reindex:") == 2
        assert client.delete.await_count == 2
