"""
In-memory lock registry.

Useful for tests and single-process deployments. Several registries can
share one SharedLockState to simulate replicas competing for the same lock;
each registry acts as one replica.

Example:
    >>> state = SharedLockState()
    >>> replica_1 = InMemoryLockRegistry(shared_state=state, owner_id="web-0")
    >>> replica_2 = InMemoryLockRegistry(shared_state=state, owner_id="web-1")
    >>> await replica_1.obtain("leader").try_acquire(0.0)
    True
    >>> await replica_2.obtain("leader").try_acquire(0.0)
    False
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from leaderlabel.exceptions import LockNotHeldError

logger = logging.getLogger(__name__)


@dataclass
class _Holder:
    owner_id: str
    expires_at: float


@dataclass
class SharedLockState:
    """
    Lock table shared between InMemoryLockRegistry instances.

    Attributes:
        holders: Lock name -> current holder and expiry
    """

    holders: dict[str, _Holder] = field(default_factory=dict)

    def current_holder(self, lock_name: str, now: float) -> str | None:
        """Get the owner of lock_name, or None if free or expired."""
        holder = self.holders.get(lock_name)
        if holder is None or holder.expires_at <= now:
            return None
        return holder.owner_id


class InMemoryLock:
    """DistributedLock handle issued by InMemoryLockRegistry."""

    def __init__(self, registry: InMemoryLockRegistry, name: str) -> None:
        self._registry = registry
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def try_acquire(self, wait_time: float) -> bool:
        """Poll for the lock until acquired or wait_time elapses."""
        registry = self._registry
        deadline = registry._clock() + max(0.0, wait_time)

        while True:
            if registry._take(self._name):
                return True
            remaining = deadline - registry._clock()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(registry.poll_interval, remaining))

    async def release(self) -> None:
        """Release the lock if this registry holds it."""
        self._registry._give_back(self._name)

    def __repr__(self) -> str:
        return f"InMemoryLock(name={self._name!r}, owner={self._registry.owner_id!r})"


class InMemoryLockRegistry:
    """
    LockRegistry keeping locks in process memory with TTL expiry.

    Args:
        shared_state: Lock table to share with other registries; a private
            one is created when omitted
        owner_id: Identity recorded as the lock holder
        expire_after: TTL in seconds given to a lock when acquired
        poll_interval: Seconds between attempts while waiting for a lock
        clock: Monotonic clock, replaceable in tests
    """

    def __init__(
        self,
        *,
        shared_state: SharedLockState | None = None,
        owner_id: str | None = None,
        expire_after: float = 120.0,
        poll_interval: float = 0.01,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.state = shared_state if shared_state is not None else SharedLockState()
        self.owner_id = owner_id or str(uuid.uuid4())
        self.expire_after = expire_after
        self.poll_interval = poll_interval
        self._clock = clock
        self._locks: dict[str, InMemoryLock] = {}

    def obtain(self, lock_name: str) -> InMemoryLock:
        """Get the (cached) lock handle for lock_name."""
        lock = self._locks.get(lock_name)
        if lock is None:
            lock = InMemoryLock(self, lock_name)
            self._locks[lock_name] = lock
        return lock

    async def renew(self, lock_name: str, ttl: float) -> None:
        """Extend a held lock to expire ttl seconds from now."""
        now = self._clock()
        if self.state.current_holder(lock_name, now) != self.owner_id:
            raise LockNotHeldError(lock_name)
        self.state.holders[lock_name].expires_at = now + ttl

    def holder_of(self, lock_name: str) -> str | None:
        """Get the current owner of lock_name, or None if free or expired."""
        return self.state.current_holder(lock_name, self._clock())

    def is_held(self, lock_name: str) -> bool:
        """Check if this registry currently holds lock_name."""
        return self.state.current_holder(lock_name, self._clock()) == self.owner_id

    def expire(self, lock_name: str) -> None:
        """
        Drop lock_name regardless of holder (for testing).

        Simulates the lease lapsing in the backend, e.g. after a partition.
        """
        self.state.holders.pop(lock_name, None)

    def _take(self, lock_name: str) -> bool:
        now = self._clock()
        holder = self.state.current_holder(lock_name, now)
        if holder is not None and holder != self.owner_id:
            return False
        self.state.holders[lock_name] = _Holder(self.owner_id, now + self.expire_after)
        logger.debug(
            "In-memory lock acquired",
            extra={"lock_name": lock_name, "owner_id": self.owner_id},
        )
        return True

    def _give_back(self, lock_name: str) -> None:
        holder = self.state.holders.get(lock_name)
        if holder is not None and holder.owner_id == self.owner_id:
            del self.state.holders[lock_name]
            logger.debug(
                "In-memory lock released",
                extra={"lock_name": lock_name, "owner_id": self.owner_id},
            )


__all__ = [
    "InMemoryLock",
    "InMemoryLockRegistry",
    "SharedLockState",
]
