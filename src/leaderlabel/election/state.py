"""
Lifecycle state of a leadership manager.

State transitions:
    IDLE -> ACQUIRING | STOPPED
    ACQUIRING -> LEADING | ACQUIRING | STOPPED
    LEADING -> RELINQUISHING
    RELINQUISHING -> ACQUIRING | STOPPED
    STOPPED -> (terminal)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class LifecycleState(Enum):
    """States of a LeadershipLifecycleManager."""

    IDLE = "idle"
    """Constructed, not started."""

    ACQUIRING = "acquiring"
    """Running and trying to acquire the lock."""

    LEADING = "leading"
    """Holding the lock and renewing it periodically."""

    RELINQUISHING = "relinquishing"
    """Releasing the lock and running loss callbacks."""

    STOPPED = "stopped"
    """Stopped; the manager cannot be restarted."""


# Valid state transitions
VALID_TRANSITIONS: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.IDLE: {
        LifecycleState.ACQUIRING,
        LifecycleState.STOPPED,  # stop() before start()
    },
    LifecycleState.ACQUIRING: {
        LifecycleState.LEADING,
        LifecycleState.ACQUIRING,  # Failed attempt, retry
        LifecycleState.STOPPED,
    },
    LifecycleState.LEADING: {
        LifecycleState.RELINQUISHING,
    },
    LifecycleState.RELINQUISHING: {
        LifecycleState.ACQUIRING,
        LifecycleState.STOPPED,
    },
    LifecycleState.STOPPED: set(),  # Terminal state
}


def is_valid_transition(from_state: LifecycleState, to_state: LifecycleState) -> bool:
    """
    Check if a state transition is valid.

    Args:
        from_state: Current state
        to_state: Target state

    Returns:
        True if transition is allowed, False otherwise
    """
    return to_state in VALID_TRANSITIONS.get(from_state, set())


@dataclass(frozen=True)
class ElectionStatus:
    """
    Status snapshot for health checks and monitoring.

    Attributes:
        identity: Identity of this replica
        lock_name: Name of the lock being contested
        state: Current lifecycle state as string
        is_running: Whether the manager is started and not stopped
        is_leader: Whether this replica currently leads
        term: Number of times the lock has been acquired by this manager
        leader_since: ISO timestamp of the current acquisition, if leading
        last_renewed_at: ISO timestamp of the last successful renewal
        consecutive_failures: Failed acquisition attempts since the last success
        last_error: Message of the most recent error, if any
    """

    identity: str
    lock_name: str
    state: str
    is_running: bool
    is_leader: bool
    term: int
    leader_since: str | None = None
    last_renewed_at: str | None = None
    consecutive_failures: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "identity": self.identity,
            "lock_name": self.lock_name,
            "state": self.state,
            "is_running": self.is_running,
            "is_leader": self.is_leader,
            "term": self.term,
            "leader_since": self.leader_since,
            "last_renewed_at": self.last_renewed_at,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


__all__ = [
    "ElectionStatus",
    "LifecycleState",
    "VALID_TRANSITIONS",
    "is_valid_transition",
]
