"""
Tests for LeaderLabeler application wiring.
"""

from __future__ import annotations

import asyncio

import pytest

from leaderlabel.app import LeaderLabeler
from leaderlabel.config import ElectorSettings
from leaderlabel.election import LifecycleState
from leaderlabel.exceptions import ElectionConfigError
from leaderlabel.locks import InMemoryLockRegistry
from leaderlabel.metadata import InMemoryMetadataClient
from leaderlabel.testing import ManualScheduler

LABEL_KEY = "example.com/leader"


@pytest.fixture
def settings(settings_env: dict[str, str]) -> ElectorSettings:
    return ElectorSettings.from_env({**settings_env, "ELECTOR_ENABLE_TRACING": "false"})


class TestConstruction:
    """Tests for building a LeaderLabeler."""

    def test_requires_redis_url_without_registry(
        self, settings: ElectorSettings, metadata_client: InMemoryMetadataClient
    ) -> None:
        with pytest.raises(ElectionConfigError, match="REDIS_URL"):
            LeaderLabeler(settings, metadata_client=metadata_client)

    def test_from_env(
        self,
        settings_env: dict[str, str],
        metadata_client: InMemoryMetadataClient,
        lock_registry: InMemoryLockRegistry,
        manual_scheduler: ManualScheduler,
    ) -> None:
        labeler = LeaderLabeler.from_env(
            settings_env,
            metadata_client=metadata_client,
            lock_registry=lock_registry,
            scheduler=manual_scheduler,
        )

        assert labeler.settings.identity == "web-0"
        assert labeler.reflector.identity == "web-0"
        assert labeler.manager.identity == "web-0"
        assert labeler.manager.config.lock_name == "web-leader"

    def test_from_env_rejects_incomplete_environment(self) -> None:
        with pytest.raises(ElectionConfigError):
            LeaderLabeler.from_env({"POD_NAME": "web-0"})


class TestLifecycle:
    """Tests for running a LeaderLabeler."""

    @pytest.mark.asyncio
    async def test_context_manager(
        self,
        settings: ElectorSettings,
        metadata_client: InMemoryMetadataClient,
        lock_registry: InMemoryLockRegistry,
        manual_scheduler: ManualScheduler,
    ) -> None:
        labeler = LeaderLabeler(
            settings,
            metadata_client=metadata_client,
            lock_registry=lock_registry,
            scheduler=manual_scheduler,
        )

        async with labeler:
            await manual_scheduler.run_due()
            assert labeler.manager.is_leader
            assert metadata_client.labels_of("default", "web-0")[LABEL_KEY] == "true"
            assert metadata_client.labels_of("default", "web-1")[LABEL_KEY] == "false"

        assert labeler.manager.state is LifecycleState.STOPPED
        assert metadata_client.labels_of("default", "web-0")[LABEL_KEY] == "false"
        assert not lock_registry.is_held("web-leader")

    @pytest.mark.asyncio
    async def test_run_until_shutdown(
        self,
        settings: ElectorSettings,
        metadata_client: InMemoryMetadataClient,
        lock_registry: InMemoryLockRegistry,
    ) -> None:
        labeler = LeaderLabeler(
            settings,
            metadata_client=metadata_client,
            lock_registry=lock_registry,
        )

        runner = asyncio.create_task(labeler.run_until_shutdown())
        assert await labeler.manager.wait_for_leadership(timeout=2.0)
        assert metadata_client.labels_of("default", "web-0")[LABEL_KEY] == "true"

        labeler.request_shutdown()
        await asyncio.wait_for(runner, timeout=2.0)

        assert labeler.manager.state is LifecycleState.STOPPED
        assert metadata_client.labels_of("default", "web-0")[LABEL_KEY] == "false"
        assert not lock_registry.is_held("web-leader")

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(
        self,
        settings: ElectorSettings,
        metadata_client: InMemoryMetadataClient,
        lock_registry: InMemoryLockRegistry,
    ) -> None:
        labeler = LeaderLabeler(
            settings,
            metadata_client=metadata_client,
            lock_registry=lock_registry,
        )
        await labeler.start()

        await labeler.stop()
        await labeler.stop()

        assert labeler.manager.state is LifecycleState.STOPPED
