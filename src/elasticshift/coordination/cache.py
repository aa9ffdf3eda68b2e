"""外部缓存客户端.

缓存用于两类数据：
- 分区别名存在性的记忆化（键为分区日期别名，过期时间为分区过期时间）
- 重建索引检查点（键为任务哈希，不过期，任务完成后显式删除）
"""

import copy
import json
import logging
from datetime import datetime
from typing import Any, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..core.constants import MAX_DATE
from ..core.utils import utc_now
from ..typing import NowFunc
from .exceptions import CoordinationError

logger = logging.getLogger(__name__)


class CacheClient(Protocol):
    """缓存客户端协议，值必须可 JSON 序列化."""

    async def get(self, key: str) -> Any | None: ...

    async def set(
        self, key: str, value: Any, expires_at: datetime | None = None
    ) -> None: ...

    async def exists(self, key: str) -> bool: ...

    async def remove(self, key: str) -> bool: ...

    async def remove_by_prefix(self, prefix: str) -> int: ...


class InMemoryCacheClient:
    """进程内缓存实现，适用于单进程部署和测试.

    Args:
        now_func: 获取当前时间的函数，默认为 UTC 当前时间
    """

    def __init__(self, now_func: NowFunc | None = None):
        self._now_func = now_func or utc_now
        self._entries: dict[str, tuple[Any, datetime | None]] = {}

    def _is_expired(self, expires_at: datetime | None) -> bool:
        return expires_at is not None and expires_at <= self._now_func()

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._is_expired(expires_at):
            del self._entries[key]
            return None
        return copy.deepcopy(value)

    async def set(
        self, key: str, value: Any, expires_at: datetime | None = None
    ) -> None:
        if expires_at == MAX_DATE:
            expires_at = None
        if self._is_expired(expires_at):
            self._entries.pop(key, None)
            return
        self._entries[key] = (copy.deepcopy(value), expires_at)

    async def exists(self, key: str) -> bool:
        return await self.get(key) is not None

    async def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def remove_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)


class RedisCacheClient:
    """基于 redis.asyncio 的缓存实现.

    值以 JSON 字符串保存，过期时间换算为 PX 毫秒。

    Args:
        client: redis.asyncio 客户端，未提供时根据 redis_url 创建
        redis_url: Redis 连接地址
        key_prefix: 所有键的公共前缀
        now_func: 获取当前时间的函数，默认为 UTC 当前时间
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "elasticshift",
        now_func: NowFunc | None = None,
    ):
        self._client = client or redis.from_url(redis_url, decode_responses=True)
        self._key_prefix = key_prefix
        self._now_func = now_func or utc_now

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(self._key(key))
        except RedisError as e:
            raise CoordinationError(f"读取缓存 '{key}' 失败: {str(e)}") from e
        if raw is None:
            return None
        return json.loads(raw)

    async def set(
        self, key: str, value: Any, expires_at: datetime | None = None
    ) -> None:
        px = None
        if expires_at is not None and expires_at != MAX_DATE:
            px = int((expires_at - self._now_func()).total_seconds() * 1000)
            if px <= 0:
                await self.remove(key)
                return

        try:
            await self._client.set(self._key(key), json.dumps(value), px=px)
        except RedisError as e:
            raise CoordinationError(f"写入缓存 '{key}' 失败: {str(e)}") from e

    async def exists(self, key: str) -> bool:
        try:
            return await self._client.exists(self._key(key)) > 0
        except RedisError as e:
            raise CoordinationError(f"检查缓存 '{key}' 失败: {str(e)}") from e

    async def remove(self, key: str) -> bool:
        try:
            return await self._client.delete(self._key(key)) > 0
        except RedisError as e:
            raise CoordinationError(f"删除缓存 '{key}' 失败: {str(e)}") from e

    async def remove_by_prefix(self, prefix: str) -> int:
        removed = 0
        try:
            async for redis_key in self._client.scan_iter(match=f"{self._key(prefix)}*"):
                removed += await self._client.delete(redis_key)
        except RedisError as e:
            raise CoordinationError(f"按前缀 '{prefix}' 删除缓存失败: {str(e)}") from e
        logger.debug(f"按前缀 '{prefix}' 删除缓存 {removed} 条")
        return removed


class ScopedCacheClient:
    """为所有键加上作用域前缀的缓存包装.

    Example:
        >>> checkpoints = ScopedCacheClient(cache, "reindex")
        >>> await checkpoints.set("abc", {"completed": 10})  # 实际键为 reindex:abc
    """

    def __init__(self, cache: CacheClient, scope: str):
        if not scope:
            raise ValueError("scope 不能为空")
        self._cache = cache
        self._scope = scope

    @property
    def scope(self) -> str:
        return self._scope

    def _key(self, key: str) -> str:
        return f"{self._scope}:{key}"

    async def get(self, key: str) -> Any | None:
        return await self._cache.get(self._key(key))

    async def set(
        self, key: str, value: Any, expires_at: datetime | None = None
    ) -> None:
        await self._cache.set(self._key(key), value, expires_at=expires_at)

    async def exists(self, key: str) -> bool:
        return await self._cache.exists(self._key(key))

    async def remove(self, key: str) -> bool:
        return await self._cache.remove(self._key(key))

    async def remove_by_prefix(self, prefix: str) -> int:
        return await self._cache.remove_by_prefix(self._key(prefix))
