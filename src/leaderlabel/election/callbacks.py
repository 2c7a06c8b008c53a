"""
Leadership callbacks.

The lifecycle manager notifies a LeadershipCallbacks capability about
leadership changes. The production implementation is
leaderlabel.reflector.LeadershipReflector; applications that need to react
as well can combine several implementations with LeadershipCallbackChain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class LeadershipCallbacks(Protocol):
    """
    Capability notified by the lifecycle manager.

    ``on_became_leader`` raising makes the manager relinquish the lock it
    just acquired. ``on_lost_leadership`` should not raise; if it does, the
    error is logged and loss handling continues.
    """

    async def on_became_leader(self) -> None:
        """Called after the lock is acquired, before renewals start."""
        ...

    async def on_lost_leadership(self) -> None:
        """Called after the lock is released following a loss or stop."""
        ...


@runtime_checkable
class LeadershipReconciler(Protocol):
    """
    Optional capability for callbacks that re-assert leadership state.

    When ``ElectionConfig.reconcile_interval`` is set, the manager calls
    ``reconcile_leadership`` at that interval for as long as this replica
    leads. Errors are logged and never cost leadership.
    """

    async def reconcile_leadership(self) -> None:
        """Called periodically while leading."""
        ...


class LeadershipCallbackChain:
    """
    Runs several LeadershipCallbacks in order.

    ``on_became_leader`` stops at the first failure and propagates it.
    ``on_lost_leadership`` runs every callback in reverse order, logging
    failures, then re-raises the first one.
    ``reconcile_leadership`` runs every member that supports it, in order,
    with the same error handling.

    Example:
        >>> chain = LeadershipCallbackChain([reflector, metrics_callbacks])
        >>> manager = LeadershipLifecycleManager(config, registry, scheduler, chain)
    """

    def __init__(self, callbacks: Iterable[LeadershipCallbacks] = ()) -> None:
        self._callbacks: list[LeadershipCallbacks] = list(callbacks)

    def add(self, callbacks: LeadershipCallbacks) -> None:
        """Append callbacks to the chain."""
        self._callbacks.append(callbacks)

    def __len__(self) -> int:
        return len(self._callbacks)

    async def on_became_leader(self) -> None:
        for callbacks in self._callbacks:
            await callbacks.on_became_leader()

    async def on_lost_leadership(self) -> None:
        first_error: Exception | None = None
        for callbacks in reversed(self._callbacks):
            try:
                await callbacks.on_lost_leadership()
            except Exception as e:
                logger.error(
                    "Lost-leadership callback failed",
                    extra={"callbacks": type(callbacks).__name__},
                    exc_info=True,
                )
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    async def reconcile_leadership(self) -> None:
        first_error: Exception | None = None
        for callbacks in self._callbacks:
            if not isinstance(callbacks, LeadershipReconciler):
                continue
            try:
                await callbacks.reconcile_leadership()
            except Exception as e:
                logger.error(
                    "Reconcile callback failed",
                    extra={"callbacks": type(callbacks).__name__},
                    exc_info=True,
                )
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


__all__ = [
    "LeadershipCallbackChain",
    "LeadershipCallbacks",
    "LeadershipReconciler",
]
