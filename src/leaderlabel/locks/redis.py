"""
Redis lock registry.

Locks are plain Redis keys holding the owner token of the registry that
acquired them, with a millisecond TTL:

- acquire: set the key if absent (or refresh it if we already own it)
- release: delete the key only if it still holds our token
- renew: PEXPIRE the key only if it still holds our token

All three run as Lua scripts so the ownership check and the write are atomic.
Keys are named ``{registry_key}:{lock_name}``.

Example:
    >>> from leaderlabel.locks.redis import RedisLockRegistry, RedisLockRegistryConfig
    >>>
    >>> registry = RedisLockRegistry(
    ...     config=RedisLockRegistryConfig(
    ...         redis_url="redis://localhost:6379",
    ...         registry_key="web-leader-lock-registry",
    ...         expire_after=120.0,
    ...     )
    ... )
    >>> lock = registry.obtain("web-leader")
    >>> if await lock.try_acquire(5.0):
    ...     await registry.renew("web-leader", 120.0)
"""

from __future__ import annotations

import asyncio
import logging
import socket
import uuid
from dataclasses import dataclass
from typing import Any

from leaderlabel.exceptions import (
    BackendNotAvailableError,
    LockAcquisitionError,
    LockError,
    LockNotHeldError,
    LockRenewalError,
)
from leaderlabel.observability import Tracer, create_tracer
from leaderlabel.observability.attributes import (
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_BACKEND,
    ATTR_LOCK_NAME,
    ATTR_LOCK_TIMEOUT,
    ATTR_LOCK_TTL,
)

# Optional Redis import - fail gracefully if not installed
try:
    import redis.asyncio as aioredis
    from redis.asyncio import Redis
    from redis.exceptions import RedisError

    REDIS_AVAILABLE = True
except ImportError:
    REDIS_AVAILABLE = False
    aioredis = None  # type: ignore[assignment]
    Redis = None  # type: ignore[assignment, misc]
    RedisError = Exception  # type: ignore[assignment, misc]

logger = logging.getLogger(__name__)


OBTAIN_LOCK_SCRIPT = """
local owner = redis.call('GET', KEYS[1])
if not owner then
    redis.call('SET', KEYS[1], ARGV[1], 'PX', ARGV[2])
    return 1
elseif owner == ARGV[1] then
    redis.call('PEXPIRE', KEYS[1], ARGV[2])
    return 1
end
return 0
"""

RELEASE_LOCK_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""

RENEW_LOCK_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('PEXPIRE', KEYS[1], ARGV[2])
end
return 0
"""


@dataclass
class RedisLockRegistryConfig:
    """Configuration for the Redis lock registry.

    Attributes:
        redis_url: Redis connection URL (e.g., "redis://localhost:6379")
        registry_key: Prefix for lock keys (default: "leaderlabel-lock-registry")
        expire_after: TTL in seconds given to a lock on acquisition (default: 120.0)
        poll_interval: Seconds between attempts while waiting (default: 0.1)
        owner_id: Token identifying this registry (auto-generated if None)
        socket_timeout: Socket timeout in seconds (default: 5.0)
        socket_connect_timeout: Socket connection timeout in seconds (default: 5.0)
        enable_tracing: Enable OpenTelemetry tracing if available (default: True)
    """

    redis_url: str = "redis://localhost:6379"
    registry_key: str = "leaderlabel-lock-registry"
    expire_after: float = 120.0
    poll_interval: float = 0.1
    owner_id: str | None = None
    socket_timeout: float = 5.0
    socket_connect_timeout: float = 5.0
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Generate owner token if not provided."""
        if self.owner_id is None:
            hostname = socket.gethostname()
            unique_id = str(uuid.uuid4())
            self.owner_id = f"{hostname}:{unique_id}"

    def key_for(self, lock_name: str) -> str:
        """Get the Redis key for lock_name."""
        return f"{self.registry_key}:{lock_name}"


class RedisLock:
    """DistributedLock handle issued by RedisLockRegistry."""

    def __init__(self, registry: RedisLockRegistry, name: str) -> None:
        self._registry = registry
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def try_acquire(self, wait_time: float) -> bool:
        """
        Poll for the lock until acquired or wait_time elapses.

        Raises:
            LockAcquisitionError: If Redis fails
        """
        registry = self._registry
        config = registry.config

        with registry._tracer.span(
            "leaderlabel.lock.acquire",
            {
                ATTR_LOCK_NAME: self._name,
                ATTR_LOCK_BACKEND: "redis",
                ATTR_LOCK_TIMEOUT: wait_time,
            },
        ) as span:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + max(0.0, wait_time)

            while True:
                try:
                    acquired = await registry._run(
                        registry._obtain_script,
                        self._name,
                        int(config.expire_after * 1000),
                    )
                except RedisError as e:
                    raise LockAcquisitionError(self._name, f"Redis error: {e}") from e

                if acquired:
                    if span:
                        span.set_attribute(ATTR_LOCK_ACQUIRED, True)
                    logger.debug(
                        "Acquired Redis lock",
                        extra={"lock_name": self._name, "owner_id": config.owner_id},
                    )
                    return True

                remaining = deadline - loop.time()
                if remaining <= 0:
                    if span:
                        span.set_attribute(ATTR_LOCK_ACQUIRED, False)
                    return False

                await asyncio.sleep(min(config.poll_interval, remaining))

    async def release(self) -> None:
        """
        Release the lock if this registry still owns it.

        Raises:
            LockError: If Redis fails
        """
        registry = self._registry
        try:
            deleted = await registry._run(registry._release_script, self._name)
        except RedisError as e:
            raise LockError(self._name, f"Failed to release lock '{self._name}': {e}") from e

        if deleted:
            logger.debug("Released Redis lock", extra={"lock_name": self._name})

    def __repr__(self) -> str:
        return f"RedisLock(name={self._name!r}, key={self._registry.config.key_for(self._name)!r})"


class RedisLockRegistry:
    """
    LockRegistry backed by Redis keys with TTLs.

    Locks held by a crashed process expire after ``expire_after`` seconds
    (or the ttl of the last renewal).

    Thread Safety:
        Handles may be used concurrently from multiple asyncio tasks.
    """

    def __init__(
        self,
        config: RedisLockRegistryConfig | None = None,
        *,
        client: Redis | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the Redis lock registry.

        Args:
            config: Registry configuration. Defaults to RedisLockRegistryConfig().
            client: Existing Redis client to use instead of connecting to
                   config.redis_url. The registry does not close it.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on config.enable_tracing setting.

        Raises:
            BackendNotAvailableError: If redis package is not installed
        """
        if not REDIS_AVAILABLE and client is None:
            raise BackendNotAvailableError("redis", "redis")

        self._config = config or RedisLockRegistryConfig()
        self._owns_client = client is None
        if client is None:
            client = aioredis.from_url(
                self._config.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=self._config.socket_timeout,
                socket_connect_timeout=self._config.socket_connect_timeout,
            )
        self._client = client

        self._obtain_script = client.register_script(OBTAIN_LOCK_SCRIPT)
        self._release_script = client.register_script(RELEASE_LOCK_SCRIPT)
        self._renew_script = client.register_script(RENEW_LOCK_SCRIPT)
        self._locks: dict[str, RedisLock] = {}

        self._tracer = tracer or create_tracer(__name__, self._config.enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @property
    def config(self) -> RedisLockRegistryConfig:
        """Get the configuration."""
        return self._config

    def obtain(self, lock_name: str) -> RedisLock:
        """Get the (cached) lock handle for lock_name."""
        lock = self._locks.get(lock_name)
        if lock is None:
            lock = RedisLock(self, lock_name)
            self._locks[lock_name] = lock
        return lock

    async def renew(self, lock_name: str, ttl: float) -> None:
        """
        Extend a held lock to expire ttl seconds from now.

        Raises:
            LockNotHeldError: If the key is gone or owned by another registry
            LockRenewalError: If Redis fails
        """
        with self._tracer.span(
            "leaderlabel.lock.renew",
            {ATTR_LOCK_NAME: lock_name, ATTR_LOCK_BACKEND: "redis", ATTR_LOCK_TTL: ttl},
        ):
            try:
                renewed = await self._run(self._renew_script, lock_name, int(ttl * 1000))
            except RedisError as e:
                raise LockRenewalError(lock_name, f"Redis error: {e}") from e

            if not renewed:
                raise LockNotHeldError(lock_name)

    async def close(self) -> None:
        """Close the Redis connection if this registry created it."""
        if self._owns_client:
            await self._client.aclose()

    async def _run(self, script: Any, lock_name: str, *args: Any) -> bool:
        result = await script(
            keys=[self._config.key_for(lock_name)],
            args=[self._config.owner_id, *args],
        )
        return bool(result)


__all__ = [
    "REDIS_AVAILABLE",
    "OBTAIN_LOCK_SCRIPT",
    "RELEASE_LOCK_SCRIPT",
    "RENEW_LOCK_SCRIPT",
    "RedisLock",
    "RedisLockRegistry",
    "RedisLockRegistryConfig",
]
