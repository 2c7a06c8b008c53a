"""
leaderlabel - leader election that mirrors leadership into cluster labels.

One replica of a multi-instance deployment holds a distributed lock and
is labelled leader; the others are labelled followers. Leadership is
acquired, renewed and relinquished by LeadershipLifecycleManager, and
LeadershipReflector keeps the labels in sync.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("leaderlabel-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Exceptions
from leaderlabel.exceptions import (
    BackendNotAvailableError,
    ElectionConfigError,
    ElectionStateError,
    LeaderLabelError,
    LockAcquisitionError,
    LockError,
    LockNotHeldError,
    LockRenewalError,
    MetadataClientError,
    ReflectorError,
)

# Configuration
from leaderlabel.config import ElectionConfig, ElectorSettings, parse_duration

# Scheduling
from leaderlabel.scheduling import AsyncioScheduler, ScheduledTask, Scheduler

# Locks
from leaderlabel.locks import (
    REDIS_AVAILABLE,
    SQLALCHEMY_AVAILABLE,
    DistributedLock,
    InMemoryLockRegistry,
    LockRegistry,
    PostgreSQLLockRegistry,
    RedisLockRegistry,
    RedisLockRegistryConfig,
    SharedLockState,
)

# Metadata
from leaderlabel.metadata import (
    KUBERNETES_AVAILABLE,
    ClusterMetadataClient,
    InMemoryMetadataClient,
    KubernetesMetadataClient,
    ObjectRef,
)

# Election
from leaderlabel.election import (
    ElectionStatus,
    LeadershipCallbackChain,
    LeadershipCallbacks,
    LeadershipLifecycleManager,
    LeadershipReconciler,
    LifecycleState,
)
from leaderlabel.reflector import LeadershipReflector

# Application
from leaderlabel.app import LeaderLabeler

__all__ = [
    "__version__",
    # Exceptions
    "LeaderLabelError",
    "ElectionConfigError",
    "ElectionStateError",
    "LockError",
    "LockAcquisitionError",
    "LockNotHeldError",
    "LockRenewalError",
    "MetadataClientError",
    "ReflectorError",
    "BackendNotAvailableError",
    # Configuration
    "ElectionConfig",
    "ElectorSettings",
    "parse_duration",
    # Scheduling
    "Scheduler",
    "ScheduledTask",
    "AsyncioScheduler",
    # Locks
    "LockRegistry",
    "DistributedLock",
    "InMemoryLockRegistry",
    "SharedLockState",
    "REDIS_AVAILABLE",
    "RedisLockRegistry",
    "RedisLockRegistryConfig",
    "SQLALCHEMY_AVAILABLE",
    "PostgreSQLLockRegistry",
    # Metadata
    "ClusterMetadataClient",
    "ObjectRef",
    "InMemoryMetadataClient",
    "KUBERNETES_AVAILABLE",
    "KubernetesMetadataClient",
    # Election
    "LeadershipLifecycleManager",
    "LeadershipCallbacks",
    "LeadershipCallbackChain",
    "LeadershipReconciler",
    "LifecycleState",
    "ElectionStatus",
    "LeadershipReflector",
    # Application
    "LeaderLabeler",
]
