"""
Leader election lifecycle.

- LeadershipLifecycleManager: acquire / renew / relinquish state machine
- LeadershipCallbacks: capability notified on leadership changes
- LeadershipReconciler: optional capability re-asserted while leading
- LifecycleState, ElectionStatus: state enum and status snapshot
"""

from leaderlabel.election.callbacks import (
    LeadershipCallbackChain,
    LeadershipCallbacks,
    LeadershipReconciler,
)
from leaderlabel.election.manager import LeadershipLifecycleManager
from leaderlabel.election.state import (
    VALID_TRANSITIONS,
    ElectionStatus,
    LifecycleState,
    is_valid_transition,
)

__all__ = [
    "LeadershipLifecycleManager",
    "LeadershipCallbacks",
    "LeadershipCallbackChain",
    "LeadershipReconciler",
    "LifecycleState",
    "ElectionStatus",
    "VALID_TRANSITIONS",
    "is_valid_transition",
]
