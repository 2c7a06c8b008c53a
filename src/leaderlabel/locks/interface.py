"""
Distributed lock protocols.

A LockRegistry hands out DistributedLock handles by name and renews the
expiry of locks it holds. Mutual exclusion between replicas is entirely the
backend's job; the lifecycle manager only relies on the contract below.

Contract:
    - ``try_acquire(wait_time)`` returns True once the lock is held, False if
      it could not be acquired within ``wait_time`` seconds. It may raise
      asyncio.CancelledError when the caller is cancelled, and LockError
      subclasses when the backend fails.
    - ``release()`` is idempotent and must not raise when the lock is not
      held (double release, expired lock).
    - ``renew(lock_name, ttl)`` extends a held lock to expire ``ttl`` seconds
      from now, raising LockNotHeldError if the lock is no longer held and
      another LockError if the backend fails.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class DistributedLock(Protocol):
    """Handle to a named, advisory, time-bounded lock."""

    @property
    def name(self) -> str:
        """Name of the lock."""
        ...

    async def try_acquire(self, wait_time: float) -> bool:
        """
        Try to acquire the lock, waiting up to wait_time seconds.

        Args:
            wait_time: Maximum seconds to wait for the lock

        Returns:
            True if the lock is now held by this registry

        Raises:
            asyncio.CancelledError: If the caller was cancelled while waiting
            LockAcquisitionError: If the backend failed
        """
        ...

    async def release(self) -> None:
        """Release the lock if held. Safe to call more than once."""
        ...


@runtime_checkable
class LockRegistry(Protocol):
    """Source of DistributedLock handles for one backend."""

    def obtain(self, lock_name: str) -> DistributedLock:
        """
        Get the lock handle for lock_name.

        Obtaining does not acquire anything.
        """
        ...

    async def renew(self, lock_name: str, ttl: float) -> None:
        """
        Extend a held lock so it expires ttl seconds from now.

        Raises:
            LockNotHeldError: If this registry no longer holds the lock
            LockRenewalError: If the backend failed
        """
        ...


__all__ = [
    "DistributedLock",
    "LockRegistry",
]
