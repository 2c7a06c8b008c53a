"""
Tests for the in-memory lock registry.
"""

import asyncio

import pytest

from leaderlabel.exceptions import LockNotHeldError
from leaderlabel.locks import DistributedLock, InMemoryLockRegistry, LockRegistry, SharedLockState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def make_registry(state: SharedLockState, owner: str, clock=None) -> InMemoryLockRegistry:
    kwargs = {"clock": clock} if clock is not None else {}
    return InMemoryLockRegistry(
        shared_state=state,
        owner_id=owner,
        expire_after=10.0,
        poll_interval=0.005,
        **kwargs,
    )


class TestProtocolConformance:
    """Tests that the in-memory backend satisfies the lock protocols."""

    def test_registry_satisfies_protocol(self, lock_registry: InMemoryLockRegistry) -> None:
        assert isinstance(lock_registry, LockRegistry)

    def test_lock_satisfies_protocol(self, lock_registry: InMemoryLockRegistry) -> None:
        assert isinstance(lock_registry.obtain("web-leader"), DistributedLock)


class TestAcquireRelease:
    """Tests for acquiring and releasing locks."""

    @pytest.mark.asyncio
    async def test_acquire_free_lock(self, lock_registry: InMemoryLockRegistry) -> None:
        lock = lock_registry.obtain("web-leader")

        assert await lock.try_acquire(0.0) is True
        assert lock_registry.is_held("web-leader")
        assert lock_registry.holder_of("web-leader") == "web-0"

    @pytest.mark.asyncio
    async def test_obtain_returns_cached_handle(self, lock_registry: InMemoryLockRegistry) -> None:
        assert lock_registry.obtain("web-leader") is lock_registry.obtain("web-leader")

    @pytest.mark.asyncio
    async def test_mutual_exclusion(self, shared_lock_state: SharedLockState) -> None:
        """Test only one registry holds a lock at a time."""
        first = make_registry(shared_lock_state, "web-0")
        second = make_registry(shared_lock_state, "web-1")

        assert await first.obtain("web-leader").try_acquire(0.0) is True
        assert await second.obtain("web-leader").try_acquire(0.02) is False
        assert shared_lock_state.current_holder("web-leader", 0.0) == "web-0"

    @pytest.mark.asyncio
    async def test_reacquire_by_holder_succeeds(self, lock_registry: InMemoryLockRegistry) -> None:
        lock = lock_registry.obtain("web-leader")

        assert await lock.try_acquire(0.0)
        assert await lock.try_acquire(0.0)

    @pytest.mark.asyncio
    async def test_release_frees_lock(self, shared_lock_state: SharedLockState) -> None:
        first = make_registry(shared_lock_state, "web-0")
        second = make_registry(shared_lock_state, "web-1")
        await first.obtain("web-leader").try_acquire(0.0)

        await first.obtain("web-leader").release()

        assert await second.obtain("web-leader").try_acquire(0.0) is True

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, lock_registry: InMemoryLockRegistry) -> None:
        lock = lock_registry.obtain("web-leader")
        await lock.try_acquire(0.0)

        await lock.release()
        await lock.release()

        assert not lock_registry.is_held("web-leader")

    @pytest.mark.asyncio
    async def test_release_does_not_free_other_holders_lock(
        self, shared_lock_state: SharedLockState
    ) -> None:
        first = make_registry(shared_lock_state, "web-0")
        second = make_registry(shared_lock_state, "web-1")
        await first.obtain("web-leader").try_acquire(0.0)

        await second.obtain("web-leader").release()

        assert first.is_held("web-leader")

    @pytest.mark.asyncio
    async def test_waiting_acquire_succeeds_when_released(
        self, shared_lock_state: SharedLockState
    ) -> None:
        first = make_registry(shared_lock_state, "web-0")
        second = make_registry(shared_lock_state, "web-1")
        await first.obtain("web-leader").try_acquire(0.0)

        waiter = asyncio.create_task(second.obtain("web-leader").try_acquire(1.0))
        await asyncio.sleep(0.02)
        await first.obtain("web-leader").release()

        assert await waiter is True


class TestExpiry:
    """Tests for TTL expiry and renewal."""

    @pytest.mark.asyncio
    async def test_expired_lock_can_be_taken(self, shared_lock_state: SharedLockState) -> None:
        clock = FakeClock()
        first = make_registry(shared_lock_state, "web-0", clock)
        second = make_registry(shared_lock_state, "web-1", clock)
        await first.obtain("web-leader").try_acquire(0.0)

        clock.now += 11.0

        assert not first.is_held("web-leader")
        assert await second.obtain("web-leader").try_acquire(0.0) is True

    @pytest.mark.asyncio
    async def test_renew_extends_expiry(self, shared_lock_state: SharedLockState) -> None:
        clock = FakeClock()
        registry = make_registry(shared_lock_state, "web-0", clock)
        await registry.obtain("web-leader").try_acquire(0.0)

        clock.now += 8.0
        await registry.renew("web-leader", 10.0)
        clock.now += 8.0

        assert registry.is_held("web-leader")

    @pytest.mark.asyncio
    async def test_renew_unheld_lock_raises(self, lock_registry: InMemoryLockRegistry) -> None:
        with pytest.raises(LockNotHeldError) as exc_info:
            await lock_registry.renew("web-leader", 10.0)

        assert exc_info.value.lock_name == "web-leader"

    @pytest.mark.asyncio
    async def test_renew_after_expiry_raises(self, shared_lock_state: SharedLockState) -> None:
        clock = FakeClock()
        registry = make_registry(shared_lock_state, "web-0", clock)
        await registry.obtain("web-leader").try_acquire(0.0)

        clock.now += 11.0

        with pytest.raises(LockNotHeldError):
            await registry.renew("web-leader", 10.0)

    @pytest.mark.asyncio
    async def test_expire_simulates_lapse(self, lock_registry: InMemoryLockRegistry) -> None:
        await lock_registry.obtain("web-leader").try_acquire(0.0)

        lock_registry.expire("web-leader")

        with pytest.raises(LockNotHeldError):
            await lock_registry.renew("web-leader", 10.0)
