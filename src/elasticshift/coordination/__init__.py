"""协调组件模块 - 外部缓存、分布式锁与任务队列.

主要组件:
    - CacheClient / InMemoryCacheClient / RedisCacheClient / ScopedCacheClient
    - LockProvider / InMemoryLockProvider / RedisLockProvider
    - WorkQueue / InMemoryWorkQueue / RedisWorkQueue

使用示例:
    from elasticshift.coordination import RedisCacheClient, RedisLockProvider

    cache = RedisCacheClient(redis_url="redis://localhost:6379")
    locks = RedisLockProvider(redis_url="redis://localhost:6379")
"""

from .cache import (
    CacheClient,
    InMemoryCacheClient,
    RedisCacheClient,
    ScopedCacheClient,
)
from .exceptions import CoordinationError
from .lock import InMemoryLockProvider, LockProvider, RedisLockProvider
from .queue import InMemoryWorkQueue, RedisWorkQueue, WorkQueue

__all__ = [
    # 缓存
    "CacheClient",
    "InMemoryCacheClient",
    "RedisCacheClient",
    "ScopedCacheClient",
    # 锁
    "LockProvider",
    "InMemoryLockProvider",
    "RedisLockProvider",
    # 队列
    "WorkQueue",
    "InMemoryWorkQueue",
    "RedisWorkQueue",
    # 异常
    "CoordinationError",
]
