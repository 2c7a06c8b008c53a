"""
Unit tests for the Redis lock registry.

The Redis client is mocked: registered scripts are AsyncMocks, so these
tests check the registry's use of the scripts rather than Redis itself.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from leaderlabel.exceptions import LockAcquisitionError, LockError, LockNotHeldError, LockRenewalError
from leaderlabel.locks.redis import (
    OBTAIN_LOCK_SCRIPT,
    RELEASE_LOCK_SCRIPT,
    RENEW_LOCK_SCRIPT,
    RedisLockRegistry,
    RedisLockRegistryConfig,
)
from leaderlabel.observability import MockTracer

redis_exceptions = pytest.importorskip("redis.exceptions")


@pytest.fixture
def scripts() -> dict[str, AsyncMock]:
    return {
        OBTAIN_LOCK_SCRIPT: AsyncMock(return_value=1),
        RELEASE_LOCK_SCRIPT: AsyncMock(return_value=1),
        RENEW_LOCK_SCRIPT: AsyncMock(return_value=1),
    }


@pytest.fixture
def redis_client(scripts: dict[str, AsyncMock]) -> MagicMock:
    client = MagicMock()
    client.register_script.side_effect = lambda source: scripts[source]
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def config() -> RedisLockRegistryConfig:
    return RedisLockRegistryConfig(
        registry_key="web-leader-lock-registry",
        expire_after=120.0,
        poll_interval=0.005,
        owner_id="web-0:token",
    )


@pytest.fixture
def registry(config: RedisLockRegistryConfig, redis_client: MagicMock) -> RedisLockRegistry:
    return RedisLockRegistry(config, client=redis_client, tracer=MockTracer())


class TestRedisLockRegistryConfig:
    """Tests for RedisLockRegistryConfig."""

    def test_owner_id_generated(self) -> None:
        first = RedisLockRegistryConfig()
        second = RedisLockRegistryConfig()

        assert first.owner_id
        assert first.owner_id != second.owner_id

    def test_key_for(self, config: RedisLockRegistryConfig) -> None:
        assert config.key_for("web-leader") == "web-leader-lock-registry:web-leader"


class TestTryAcquire:
    """Tests for RedisLock.try_acquire."""

    @pytest.mark.asyncio
    async def test_acquire_runs_obtain_script(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        assert await registry.obtain("web-leader").try_acquire(1.0) is True

        scripts[OBTAIN_LOCK_SCRIPT].assert_awaited_once_with(
            keys=["web-leader-lock-registry:web-leader"],
            args=["web-0:token", 120000],
        )

    @pytest.mark.asyncio
    async def test_acquire_polls_until_timeout(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[OBTAIN_LOCK_SCRIPT].return_value = 0

        assert await registry.obtain("web-leader").try_acquire(0.03) is False
        assert scripts[OBTAIN_LOCK_SCRIPT].await_count >= 2

    @pytest.mark.asyncio
    async def test_acquire_succeeds_after_retry(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[OBTAIN_LOCK_SCRIPT].side_effect = [0, 0, 1]

        assert await registry.obtain("web-leader").try_acquire(1.0) is True
        assert scripts[OBTAIN_LOCK_SCRIPT].await_count == 3

    @pytest.mark.asyncio
    async def test_redis_error_wrapped(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[OBTAIN_LOCK_SCRIPT].side_effect = redis_exceptions.ConnectionError("down")

        with pytest.raises(LockAcquisitionError) as exc_info:
            await registry.obtain("web-leader").try_acquire(1.0)

        assert exc_info.value.lock_name == "web-leader"

    @pytest.mark.asyncio
    async def test_acquire_traced(self, config: RedisLockRegistryConfig, redis_client) -> None:
        tracer = MockTracer()
        registry = RedisLockRegistry(config, client=redis_client, tracer=tracer)

        await registry.obtain("web-leader").try_acquire(1.0)

        assert tracer.span_names == ["leaderlabel.lock.acquire"]


class TestRelease:
    """Tests for RedisLock.release."""

    @pytest.mark.asyncio
    async def test_release_runs_compare_and_delete(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        await registry.obtain("web-leader").release()

        scripts[RELEASE_LOCK_SCRIPT].assert_awaited_once_with(
            keys=["web-leader-lock-registry:web-leader"],
            args=["web-0:token"],
        )

    @pytest.mark.asyncio
    async def test_release_of_unheld_lock_is_silent(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[RELEASE_LOCK_SCRIPT].return_value = 0

        await registry.obtain("web-leader").release()

    @pytest.mark.asyncio
    async def test_release_error_wrapped(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[RELEASE_LOCK_SCRIPT].side_effect = redis_exceptions.TimeoutError("slow")

        with pytest.raises(LockError):
            await registry.obtain("web-leader").release()


class TestRenew:
    """Tests for RedisLockRegistry.renew."""

    @pytest.mark.asyncio
    async def test_renew_runs_compare_and_pexpire(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        await registry.renew("web-leader", 60.0)

        scripts[RENEW_LOCK_SCRIPT].assert_awaited_once_with(
            keys=["web-leader-lock-registry:web-leader"],
            args=["web-0:token", 60000],
        )

    @pytest.mark.asyncio
    async def test_renew_lost_lock_raises_not_held(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[RENEW_LOCK_SCRIPT].return_value = 0

        with pytest.raises(LockNotHeldError):
            await registry.renew("web-leader", 60.0)

    @pytest.mark.asyncio
    async def test_renew_error_wrapped(
        self, registry: RedisLockRegistry, scripts: dict[str, AsyncMock]
    ) -> None:
        scripts[RENEW_LOCK_SCRIPT].side_effect = redis_exceptions.ConnectionError("down")

        with pytest.raises(LockRenewalError):
            await registry.renew("web-leader", 60.0)


class TestClose:
    """Tests for RedisLockRegistry.close."""

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(
        self, registry: RedisLockRegistry, redis_client: MagicMock
    ) -> None:
        await registry.close()

        redis_client.aclose.assert_not_awaited()
