"""
Shared pytest fixtures for the leaderlabel tests.

This module provides:
- Configuration fixtures (election_config, settings_env)
- Scheduler fixtures (manual_scheduler)
- Lock fixtures (shared_lock_state, lock_registry)
- Metadata fixtures (metadata_client with three labelled replicas)
- Callback and tracer fixtures (recording_callbacks, mock_tracer)
"""

from __future__ import annotations

import pytest

from leaderlabel.config import ElectionConfig
from leaderlabel.locks.memory import InMemoryLockRegistry, SharedLockState
from leaderlabel.metadata.memory import InMemoryMetadataClient
from leaderlabel.observability import MockTracer
from leaderlabel.testing import ManualScheduler, RecordingCallbacks

NAMESPACE = "default"
SELECTOR_KEY = "app"
SELECTOR_VALUE = "web"
LABEL_KEY = "example.com/leader"
LOCK_NAME = "web-leader"


@pytest.fixture
def election_config() -> ElectionConfig:
    """Election config with short timings; retries wait 10ms of real time."""
    return ElectionConfig(
        lock_name=LOCK_NAME,
        label_key=LABEL_KEY,
        selector_key=SELECTOR_KEY,
        selector_value=SELECTOR_VALUE,
        lease_duration=30.0,
        renew_deadline=10.0,
        retry_period=0.01,
    )


@pytest.fixture
def settings_env() -> dict[str, str]:
    """Complete environment for ElectorSettings.from_env."""
    return {
        "POD_NAME": "web-0",
        "POD_NAMESPACE": NAMESPACE,
        "ELECTOR_LOCK_NAME": LOCK_NAME,
        "ELECTOR_LABEL_KEY": LABEL_KEY,
        "ELECTOR_SELECTOR_KEY": SELECTOR_KEY,
        "ELECTOR_SELECTOR_VALUE": SELECTOR_VALUE,
    }


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def shared_lock_state() -> SharedLockState:
    return SharedLockState()


@pytest.fixture
def lock_registry(shared_lock_state: SharedLockState) -> InMemoryLockRegistry:
    """Lock registry for replica web-0."""
    return InMemoryLockRegistry(
        shared_state=shared_lock_state,
        owner_id="web-0",
        expire_after=30.0,
        poll_interval=0.005,
    )


@pytest.fixture
def metadata_client() -> InMemoryMetadataClient:
    """Metadata client holding replicas web-0, web-1 and web-2 plus an unrelated pod."""
    client = InMemoryMetadataClient()
    for name in ("web-0", "web-1", "web-2"):
        client.add_object(NAMESPACE, name, {SELECTOR_KEY: SELECTOR_VALUE, "tier": "frontend"})
    client.add_object(NAMESPACE, "db-0", {SELECTOR_KEY: "db"})
    return client


@pytest.fixture
def recording_callbacks() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()
