"""分布式锁.

锁用于决策互斥（例如"是否把迁移任务放入队列"）。迁移执行期间持有的锁
由执行方在每次进度回调时续期。
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..core.utils import utc_now
from ..typing import NowFunc
from .exceptions import CoordinationError

logger = logging.getLogger(__name__)

# 仅当锁值与本实例持有的令牌一致时才删除
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# 仅当锁值与本实例持有的令牌一致时才延长过期时间
RENEW_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockProvider(Protocol):
    """分布式锁协议."""

    async def try_acquire(self, key: str, ttl: timedelta) -> bool: ...

    async def release(self, key: str) -> None: ...

    async def is_locked(self, key: str) -> bool: ...

    async def renew(self, key: str, ttl: timedelta) -> bool: ...


class InMemoryLockProvider:
    """进程内锁实现，适用于单进程部署和测试."""

    def __init__(self, now_func: NowFunc | None = None):
        self._now_func = now_func or utc_now
        self._locks: dict[str, datetime] = {}

    async def try_acquire(self, key: str, ttl: timedelta) -> bool:
        if await self.is_locked(key):
            return False
        self._locks[key] = self._now_func() + ttl
        return True

    async def release(self, key: str) -> None:
        self._locks.pop(key, None)

    async def is_locked(self, key: str) -> bool:
        expires_at = self._locks.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._now_func():
            del self._locks[key]
            return False
        return True

    async def renew(self, key: str, ttl: timedelta) -> bool:
        if not await self.is_locked(key):
            return False
        self._locks[key] = self._now_func() + ttl
        return True


class RedisLockProvider:
    """基于 redis.asyncio 的分布式锁实现.

    获取锁使用 ``SET key token NX PX ttl``，释放和续期都通过 Lua 脚本比较令牌，
    避免误删或误续其他实例在过期后重新获取的锁。

    Args:
        client: redis.asyncio 客户端，未提供时根据 redis_url 创建
        redis_url: Redis 连接地址
        key_prefix: 锁键的公共前缀
    """

    def __init__(
        self,
        client: redis.Redis | None = None,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "elasticshift:lock",
    ):
        self._client = client or redis.from_url(redis_url, decode_responses=True)
        self._key_prefix = key_prefix
        self._tokens: dict[str, str] = {}

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}"

    async def try_acquire(self, key: str, ttl: timedelta) -> bool:
        token = str(uuid.uuid4())
        px = max(1, int(ttl.total_seconds() * 1000))
        try:
            acquired = await self._client.set(self._key(key), token, nx=True, px=px)
        except RedisError as e:
            raise CoordinationError(f"获取锁 '{key}' 失败: {str(e)}") from e

        if acquired:
            self._tokens[key] = token
            logger.debug(f"获取锁 '{key}' 成功，ttl={ttl}")
            return True
        return False

    async def release(self, key: str) -> None:
        token = self._tokens.pop(key, None)
        if token is None:
            return
        try:
            released = await self._client.eval(RELEASE_SCRIPT, 1, self._key(key), token)
        except RedisError as e:
            raise CoordinationError(f"释放锁 '{key}' 失败: {str(e)}") from e
        if not released:
            logger.warning(f"锁 '{key}' 已过期或被其他实例持有，未释放")

    async def is_locked(self, key: str) -> bool:
        try:
            return await self._client.exists(self._key(key)) > 0
        except RedisError as e:
            raise CoordinationError(f"检查锁 '{key}' 失败: {str(e)}") from e

    async def renew(self, key: str, ttl: timedelta) -> bool:
        """延长本实例持有的锁，锁已过期或被其他实例持有时返回 False."""
        token = self._tokens.get(key)
        if token is None:
            return False
        px = max(1, int(ttl.total_seconds() * 1000))
        try:
            renewed = await self._client.eval(RENEW_SCRIPT, 1, self._key(key), token, px)
        except RedisError as e:
            raise CoordinationError(f"续期锁 '{key}' 失败: {str(e)}") from e
        if not renewed:
            self._tokens.pop(key, None)
            return False
        return True
