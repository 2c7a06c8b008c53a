"""
Distributed lock backends for leader election.

All backends implement the LockRegistry / DistributedLock protocols:

- InMemoryLockRegistry: process-local, for tests and single-instance use
- RedisLockRegistry: Redis keys with TTLs (requires ``leaderlabel-py[redis]``)
- PostgreSQLLockRegistry: session advisory locks (requires ``leaderlabel-py[postgresql]``)

Example:
    >>> from leaderlabel.locks import InMemoryLockRegistry
    >>>
    >>> registry = InMemoryLockRegistry(owner_id="web-0")
    >>> lock = registry.obtain("web-leader")
    >>> if await lock.try_acquire(5.0):
    ...     await registry.renew("web-leader", 120.0)
    ...     await lock.release()
"""

from leaderlabel.locks.interface import DistributedLock, LockRegistry
from leaderlabel.locks.memory import InMemoryLock, InMemoryLockRegistry, SharedLockState
from leaderlabel.locks.postgresql import (
    SQLALCHEMY_AVAILABLE,
    PostgreSQLLock,
    PostgreSQLLockRegistry,
    lock_name_to_id,
)
from leaderlabel.locks.redis import (
    REDIS_AVAILABLE,
    RedisLock,
    RedisLockRegistry,
    RedisLockRegistryConfig,
)

__all__ = [
    "DistributedLock",
    "LockRegistry",
    "InMemoryLock",
    "InMemoryLockRegistry",
    "SharedLockState",
    "REDIS_AVAILABLE",
    "RedisLock",
    "RedisLockRegistry",
    "RedisLockRegistryConfig",
    "SQLALCHEMY_AVAILABLE",
    "PostgreSQLLock",
    "PostgreSQLLockRegistry",
    "lock_name_to_id",
]
