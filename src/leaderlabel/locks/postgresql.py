"""
PostgreSQL advisory lock registry.

Advisory locks are application-level locks that:
- Are independent of table/row locks
- Persist for session duration (until released or disconnected)
- Support non-blocking acquisition attempts
- Are automatically released on connection close

Each held lock keeps a dedicated database session open. Advisory locks have
no TTL of their own: a crashed replica loses its lock when its connection
is closed by the server, and ``renew`` checks that the session still holds
the lock rather than extending anything.

Usage:
    >>> registry = PostgreSQLLockRegistry(session_factory)
    >>> lock = registry.obtain("web-leader")
    >>> if await lock.try_acquire(5.0):
    ...     await registry.renew("web-leader", 120.0)  # verifies the lock is still held
    ...     await lock.release()
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from typing import TYPE_CHECKING

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
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

try:
    from sqlalchemy import text

    SQLALCHEMY_AVAILABLE = True
except ImportError:
    SQLALCHEMY_AVAILABLE = False
    text = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_HELD_BY_SESSION_SQL = """
SELECT count(*) FROM pg_locks
WHERE locktype = 'advisory'
  AND pid = pg_backend_pid()
  AND granted
  AND classid::bigint = :classid
  AND objid::bigint = :objid
  AND objsubid = 1
"""


def lock_name_to_id(lock_name: str) -> int:
    """
    Convert a lock name to a 64-bit advisory lock ID.

    Uses SHA-256 hash truncated to 63 bits (PostgreSQL bigint is signed).

    Args:
        lock_name: Name to hash

    Returns:
        63-bit positive integer lock ID
    """
    hash_bytes = hashlib.sha256(lock_name.encode()).digest()
    # Use first 8 bytes, mask to 63 bits for signed bigint
    return int.from_bytes(hash_bytes[:8], byteorder="big") & 0x7FFFFFFFFFFFFFFF


class PostgreSQLLock:
    """DistributedLock handle issued by PostgreSQLLockRegistry."""

    def __init__(self, registry: PostgreSQLLockRegistry, name: str) -> None:
        self._registry = registry
        self._name = name
        self.lock_id = lock_name_to_id(name)
        self._session: AsyncSession | None = None
        self._mutex = asyncio.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_held(self) -> bool:
        """Whether this handle has a session holding the lock."""
        return self._session is not None

    async def try_acquire(self, wait_time: float) -> bool:
        """
        Retry pg_try_advisory_lock until acquired or wait_time elapses.

        Raises:
            LockAcquisitionError: If the database fails
        """
        registry = self._registry

        with registry._tracer.span(
            "leaderlabel.lock.acquire",
            {
                ATTR_LOCK_NAME: self._name,
                ATTR_LOCK_BACKEND: "postgresql",
                ATTR_LOCK_TIMEOUT: wait_time,
            },
        ) as span:
            async with self._mutex:
                if self._session is not None:
                    return True

                session = registry._session_factory()
                try:
                    loop = asyncio.get_running_loop()
                    deadline = loop.time() + max(0.0, wait_time)

                    while True:
                        result = await session.execute(
                            text("SELECT pg_try_advisory_lock(:lock_id)"),
                            {"lock_id": self.lock_id},
                        )
                        if result.scalar():
                            self._session = session
                            if span:
                                span.set_attribute(ATTR_LOCK_ACQUIRED, True)
                            logger.debug(
                                "Acquired advisory lock: name=%s, lock_id=%d",
                                self._name,
                                self.lock_id,
                            )
                            return True

                        remaining = deadline - loop.time()
                        if remaining <= 0:
                            await session.close()
                            if span:
                                span.set_attribute(ATTR_LOCK_ACQUIRED, False)
                            return False

                        await asyncio.sleep(min(registry.poll_interval, remaining))

                except asyncio.CancelledError:
                    # Closing the session releases a lock granted mid-cancellation
                    await asyncio.shield(session.close())
                    raise
                except Exception as e:
                    await session.close()
                    raise LockAcquisitionError(self._name, f"Database error: {e}") from e

    async def release(self) -> None:
        """
        Unlock and close the session holding the lock, if any.

        Raises:
            LockError: If the unlock statement fails (the session is still closed)
        """
        async with self._mutex:
            session = self._session
            if session is None:
                return
            self._session = None

            try:
                await session.execute(
                    text("SELECT pg_advisory_unlock(:lock_id)"),
                    {"lock_id": self.lock_id},
                )
                logger.debug(
                    "Released advisory lock: name=%s, lock_id=%d",
                    self._name,
                    self.lock_id,
                )
            except Exception as e:
                raise LockError(
                    self._name, f"Failed to release lock '{self._name}': {e}"
                ) from e
            finally:
                await session.close()

    async def verify_held(self) -> None:
        """
        Check the lock is still granted to this handle's session.

        Raises:
            LockNotHeldError: If no session holds the lock
            LockRenewalError: If the database fails
        """
        async with self._mutex:
            session = self._session
            if session is None:
                raise LockNotHeldError(self._name)

            try:
                result = await session.execute(
                    text(_HELD_BY_SESSION_SQL),
                    {
                        "classid": self.lock_id >> 32,
                        "objid": self.lock_id & 0xFFFFFFFF,
                    },
                )
                held = bool(result.scalar())
            except Exception as e:
                raise LockRenewalError(self._name, f"Database error: {e}") from e

            if not held:
                raise LockNotHeldError(self._name)

    def __repr__(self) -> str:
        return f"PostgreSQLLock(name={self._name!r}, lock_id={self.lock_id}, held={self.is_held})"


class PostgreSQLLockRegistry:
    """
    LockRegistry backed by PostgreSQL session-level advisory locks.

    Note:
        Each held lock uses a dedicated session/connection. Consider
        connection pool sizing when several registries share a pool.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        poll_interval: float = 0.1,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the lock registry.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            poll_interval: Seconds between attempts while waiting for a lock
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.

        Raises:
            BackendNotAvailableError: If SQLAlchemy is not installed
        """
        if not SQLALCHEMY_AVAILABLE:
            raise BackendNotAvailableError("sqlalchemy", "postgresql")

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._session_factory = session_factory
        self.poll_interval = poll_interval
        self._locks: dict[str, PostgreSQLLock] = {}

    def obtain(self, lock_name: str) -> PostgreSQLLock:
        """Get the (cached) lock handle for lock_name."""
        lock = self._locks.get(lock_name)
        if lock is None:
            lock = PostgreSQLLock(self, lock_name)
            self._locks[lock_name] = lock
        return lock

    async def renew(self, lock_name: str, ttl: float) -> None:
        """
        Confirm lock_name is still held; ttl is ignored.

        Raises:
            LockNotHeldError: If the lock was never acquired or its session lost it
            LockRenewalError: If the database fails
        """
        lock = self._locks.get(lock_name)
        if lock is None:
            raise LockNotHeldError(lock_name)
        await lock.verify_held()

    async def release_all(self) -> int:
        """
        Release every lock held by this registry.

        Useful for cleanup on shutdown or error recovery.

        Returns:
            Number of locks released
        """
        released = 0
        for lock in list(self._locks.values()):
            if not lock.is_held:
                continue
            try:
                await lock.release()
                released += 1
            except LockError as e:
                logger.warning(
                    "Error releasing lock during release_all: name=%s, error=%s",
                    lock.name,
                    e,
                )
        return released


__all__ = [
    "SQLALCHEMY_AVAILABLE",
    "PostgreSQLLock",
    "PostgreSQLLockRegistry",
    "lock_name_to_id",
]
