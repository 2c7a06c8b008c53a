"""
Leadership lifecycle manager.

Drives one replica through the leader election lifecycle over a
distributed lock:

    IDLE --start()--> ACQUIRING --lock acquired--> LEADING
    LEADING --renewal failed / callback failed / stop()--> RELINQUISHING
    RELINQUISHING --> ACQUIRING (running) or STOPPED (stopping)

Every acquisition, renewal and reconcile attempt runs as a callable
handed to the injected Scheduler. Mutable state lives in a single record
guarded by one asyncio.Lock. The lock is held across callbacks, so
transitions are serialized, but never across lock backend I/O, so stop()
is not blocked by a slow backend.

Example:
    >>> manager = LeadershipLifecycleManager(
    ...     config=ElectionConfig(
    ...         lock_name="web-leader",
    ...         label_key="example.com/leader",
    ...         selector_key="app",
    ...         selector_value="web",
    ...     ),
    ...     lock_registry=RedisLockRegistry(redis_config),
    ...     scheduler=AsyncioScheduler(),
    ...     callbacks=reflector,
    ...     identity="web-0",
    ... )
    >>> await manager.start()
    >>> await manager.wait_for_leadership(timeout=30.0)
    >>> await manager.stop()
"""

from __future__ import annotations

import asyncio
import functools
import logging
import socket
from dataclasses import dataclass
from datetime import UTC, datetime

from leaderlabel.config import ElectionConfig
from leaderlabel.election.callbacks import LeadershipCallbacks, LeadershipReconciler
from leaderlabel.election.state import ElectionStatus, LifecycleState, is_valid_transition
from leaderlabel.exceptions import ElectionStateError
from leaderlabel.locks.interface import DistributedLock, LockRegistry
from leaderlabel.observability import Tracer, create_tracer
from leaderlabel.observability.attributes import (
    ATTR_ELECTION_TERM,
    ATTR_ERROR_TYPE,
    ATTR_IDENTITY,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_NAME,
    ATTR_LOCK_TIMEOUT,
    ATTR_LOCK_TTL,
    ATTR_LOSS_REASON,
)
from leaderlabel.scheduling import ScheduledTask, Scheduler

logger = logging.getLogger(__name__)


@dataclass
class _ElectionRecord:
    """Mutable manager state; only touched while holding the manager mutex."""

    state: LifecycleState = LifecycleState.IDLE
    running: bool = False
    stopping: bool = False
    lock: DistributedLock | None = None
    refresh_task: ScheduledTask | None = None
    reconcile_task: ScheduledTask | None = None
    acquire_task: ScheduledTask | None = None
    term: int = 0
    leader_since: datetime | None = None
    last_renewed_at: datetime | None = None
    consecutive_failures: int = 0
    last_error: str | None = None

    @property
    def competing(self) -> bool:
        return self.running and not self.stopping


class LeadershipLifecycleManager:
    """
    Acquires, renews and relinquishes leadership for one replica.

    Loss handling (renewal failure, callback failure or stop) runs at most
    once per acquisition: the renewal and reconcile tasks are cancelled,
    the lock released, ``on_lost_leadership`` invoked, and acquisition
    rescheduled immediately if the manager is still running.

    Callbacks run while the manager mutex is held and must not call
    start() or stop() on the same manager.

    Attributes:
        config: Election timing and naming
    """

    def __init__(
        self,
        config: ElectionConfig,
        lock_registry: LockRegistry,
        scheduler: Scheduler,
        callbacks: LeadershipCallbacks,
        *,
        identity: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the manager.

        Args:
            config: Election timing and naming
            lock_registry: Backend issuing the election lock
            scheduler: Scheduler running acquisition, renewal and reconcile
                attempts
            callbacks: Notified when leadership is gained or lost
            identity: Name of this replica (default: the hostname)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self.config = config
        self._registry = lock_registry
        self._scheduler = scheduler
        self._callbacks = callbacks
        self._identity = identity or socket.gethostname()

        self._record = _ElectionRecord()
        self._mutex = asyncio.Lock()
        self._leader_event = asyncio.Event()

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def identity(self) -> str:
        """Name of this replica."""
        return self._identity

    @property
    def state(self) -> LifecycleState:
        """Current lifecycle state."""
        return self._record.state

    @property
    def is_running(self) -> bool:
        """Whether start() has been called and stop() has not yet completed."""
        return self._record.running

    @property
    def is_leader(self) -> bool:
        """Whether this replica currently holds leadership."""
        return self._record.state is LifecycleState.LEADING

    @property
    def term(self) -> int:
        """Number of times this manager has acquired the lock."""
        return self._record.term

    def get_status(self) -> ElectionStatus:
        """Get a snapshot of the election state for health checks."""
        record = self._record
        return ElectionStatus(
            identity=self._identity,
            lock_name=self.config.lock_name,
            state=record.state.value,
            is_running=record.running,
            is_leader=record.state is LifecycleState.LEADING,
            term=record.term,
            leader_since=_isoformat(record.leader_since),
            last_renewed_at=_isoformat(record.last_renewed_at),
            consecutive_failures=record.consecutive_failures,
            last_error=record.last_error,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Start competing for leadership.

        Returns immediately; the first acquisition attempt is scheduled
        with no delay. Calling start() on a running manager does nothing.

        Raises:
            ElectionStateError: If the manager has been stopped
        """
        async with self._mutex:
            record = self._record
            if record.state is LifecycleState.STOPPED:
                raise ElectionStateError(
                    f"Election for '{self.config.lock_name}' has been stopped and cannot restart"
                )
            if record.running:
                return

            record.running = True
            self._transition(LifecycleState.ACQUIRING)
            self._schedule_acquire_locked(0.0)

        logger.info(
            "Leader election started",
            extra={"identity": self._identity, "lock_name": self.config.lock_name},
        )

    async def stop(self) -> None:
        """
        Stop competing for leadership.

        Cancels pending attempts, releases a held lock and, only if this
        replica was leading, invokes ``on_lost_leadership``. Errors while
        releasing are logged, never raised. ``is_running`` stays True until
        this completes. Idempotent.
        """
        async with self._mutex:
            record = self._record
            if record.state is LifecycleState.STOPPED:
                return

            record.stopping = True
            if record.acquire_task is not None:
                record.acquire_task.cancel()
                record.acquire_task = None

            if record.state is LifecycleState.LEADING:
                await self._relinquish_locked("stopped")
            else:
                self._cancel_leader_tasks_locked()
                await self._release_lock_locked()
                record.lock = None
                self._transition(LifecycleState.STOPPED)
            record.running = False

        logger.info(
            "Leader election stopped",
            extra={"identity": self._identity, "lock_name": self.config.lock_name},
        )

    async def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """
        Wait until this replica leads.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if leading, False if the timeout expired first
        """
        if self.is_leader:
            return True
        try:
            await asyncio.wait_for(self._leader_event.wait(), timeout)
        except TimeoutError:
            return False
        return self.is_leader

    # =========================================================================
    # Acquisition
    # =========================================================================

    async def _acquire_attempt(self) -> None:
        async with self._mutex:
            record = self._record
            if not record.competing or record.state is not LifecycleState.ACQUIRING:
                return
            term = record.term
            lock = self._registry.obtain(self.config.lock_name)

        with self._tracer.span(
            "leaderlabel.election.acquire",
            {
                ATTR_IDENTITY: self._identity,
                ATTR_LOCK_NAME: self.config.lock_name,
                ATTR_LOCK_TIMEOUT: self.config.retry_period,
            },
        ) as span:
            try:
                acquired = await lock.try_acquire(self.config.retry_period)
            except asyncio.CancelledError:
                logger.debug(
                    "Acquisition attempt cancelled",
                    extra={"identity": self._identity, "lock_name": self.config.lock_name},
                )
                raise
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                await self._acquisition_failed(term, e)
                return

            if span:
                span.set_attribute(ATTR_LOCK_ACQUIRED, acquired)

        if not acquired:
            await self._acquisition_failed(term, None)
            return

        try:
            await self._on_acquired(lock, term)
        except asyncio.CancelledError:
            # Acquired but never recorded: nobody else would release it
            if self._record.lock is not lock:
                await _release_quietly(lock, self._identity)
            raise

    async def _on_acquired(self, lock: DistributedLock, term: int) -> None:
        async with self._mutex:
            record = self._record
            if (
                not record.competing
                or record.term != term
                or record.state is not LifecycleState.ACQUIRING
            ):
                # Stopped while the attempt was in flight
                await _release_quietly(lock, self._identity)
                return

            record.lock = lock
            record.acquire_task = None
            record.term += 1
            record.leader_since = datetime.now(UTC)
            record.last_renewed_at = None
            record.consecutive_failures = 0
            self._transition(LifecycleState.LEADING)
            term = record.term

            logger.info(
                "Acquired leadership",
                extra={
                    "identity": self._identity,
                    "lock_name": self.config.lock_name,
                    "term": term,
                },
            )

            try:
                await self._callbacks.on_became_leader()
            except Exception as e:
                record.last_error = str(e)
                logger.error(
                    "Became-leader callback failed, relinquishing leadership",
                    extra={"identity": self._identity, "term": term},
                    exc_info=True,
                )
                await self._relinquish_locked(
                    "became_leader_failed", retry_delay=self.config.retry_period
                )
                return

            self._schedule_refresh_locked(term)
            self._schedule_reconcile_locked(term)
            self._leader_event.set()

    async def _acquisition_failed(self, term: int, error: Exception | None) -> None:
        async with self._mutex:
            record = self._record
            if (
                not record.competing
                or record.term != term
                or record.state is not LifecycleState.ACQUIRING
            ):
                return

            record.consecutive_failures += 1
            if error is None:
                logger.debug(
                    "Lock held by another replica, retrying in %ss",
                    self.config.retry_period,
                    extra={"identity": self._identity, "lock_name": self.config.lock_name},
                )
            else:
                record.last_error = str(error)
                logger.warning(
                    "Lock acquisition failed, retrying in %ss: %s",
                    self.config.retry_period,
                    error,
                    extra={
                        "identity": self._identity,
                        "lock_name": self.config.lock_name,
                        "consecutive_failures": record.consecutive_failures,
                    },
                    exc_info=error,
                )

            self._transition(LifecycleState.ACQUIRING)
            self._schedule_acquire_locked(self.config.retry_period)

    def _schedule_acquire_locked(self, delay: float) -> None:
        self._record.acquire_task = self._scheduler.schedule_once(self._acquire_attempt, delay)

    # =========================================================================
    # Renewal
    # =========================================================================

    def _schedule_refresh_locked(self, term: int) -> None:
        # At most one renewal task exists
        self._cancel_refresh_locked()
        self._record.refresh_task = self._scheduler.schedule_at_fixed_rate(
            functools.partial(self._renew_attempt, term),
            self.config.renew_deadline,
            self.config.renew_deadline,
        )

    async def _renew_attempt(self, term: int) -> None:
        async with self._mutex:
            record = self._record
            if record.term != term or record.state is not LifecycleState.LEADING:
                return
            if not record.competing:
                await self._relinquish_locked("stopped")
                return

        with self._tracer.span(
            "leaderlabel.election.renew",
            {
                ATTR_IDENTITY: self._identity,
                ATTR_LOCK_NAME: self.config.lock_name,
                ATTR_LOCK_TTL: self.config.lease_duration,
                ATTR_ELECTION_TERM: term,
            },
        ) as span:
            try:
                await self._registry.renew(self.config.lock_name, self.config.lease_duration)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                logger.warning(
                    "Lock renewal failed, relinquishing leadership: %s",
                    e,
                    extra={
                        "identity": self._identity,
                        "lock_name": self.config.lock_name,
                        "term": term,
                    },
                )
                async with self._mutex:
                    record = self._record
                    if record.term == term and record.state is LifecycleState.LEADING:
                        record.last_error = str(e)
                        await self._relinquish_locked("renewal_failed")
                return

        async with self._mutex:
            record = self._record
            if record.term == term and record.state is LifecycleState.LEADING:
                record.last_renewed_at = datetime.now(UTC)

        logger.debug(
            "Renewed lock",
            extra={"identity": self._identity, "lock_name": self.config.lock_name, "term": term},
        )

    def _cancel_refresh_locked(self) -> None:
        record = self._record
        if record.refresh_task is not None:
            record.refresh_task.cancel()
            record.refresh_task = None

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def _schedule_reconcile_locked(self, term: int) -> None:
        interval = self.config.reconcile_interval
        if interval is None or not isinstance(self._callbacks, LeadershipReconciler):
            return
        self._cancel_reconcile_locked()
        self._record.reconcile_task = self._scheduler.schedule_at_fixed_rate(
            functools.partial(self._reconcile_attempt, term),
            interval,
            interval,
        )

    async def _reconcile_attempt(self, term: int) -> None:
        # Held across the callback so loss handling cannot interleave with it
        async with self._mutex:
            record = self._record
            if (
                not record.competing
                or record.term != term
                or record.state is not LifecycleState.LEADING
            ):
                return

            callbacks = self._callbacks
            if not isinstance(callbacks, LeadershipReconciler):
                return
            try:
                await callbacks.reconcile_leadership()
            except Exception:
                logger.warning(
                    "Leadership reconcile failed",
                    extra={"identity": self._identity, "term": term},
                    exc_info=True,
                )

    def _cancel_reconcile_locked(self) -> None:
        record = self._record
        if record.reconcile_task is not None:
            record.reconcile_task.cancel()
            record.reconcile_task = None

    def _cancel_leader_tasks_locked(self) -> None:
        self._cancel_refresh_locked()
        self._cancel_reconcile_locked()

    # =========================================================================
    # Loss handling
    # =========================================================================

    async def _relinquish_locked(self, reason: str, retry_delay: float = 0.0) -> None:
        record = self._record
        if record.state is not LifecycleState.LEADING:
            # Loss already handled for this term
            return

        term = record.term
        self._transition(LifecycleState.RELINQUISHING)
        self._leader_event.clear()

        with self._tracer.span(
            "leaderlabel.election.relinquish",
            {
                ATTR_IDENTITY: self._identity,
                ATTR_LOCK_NAME: self.config.lock_name,
                ATTR_ELECTION_TERM: term,
                ATTR_LOSS_REASON: reason,
            },
        ):
            self._cancel_leader_tasks_locked()
            await self._release_lock_locked()

            try:
                await self._callbacks.on_lost_leadership()
            except Exception:
                logger.error(
                    "Lost-leadership callback failed",
                    extra={"identity": self._identity, "term": term},
                    exc_info=True,
                )

            record.lock = None
            record.leader_since = None

        logger.info(
            "Relinquished leadership",
            extra={"identity": self._identity, "term": term, "reason": reason},
        )

        if record.competing:
            self._transition(LifecycleState.ACQUIRING)
            self._schedule_acquire_locked(retry_delay)
        else:
            self._transition(LifecycleState.STOPPED)

    async def _release_lock_locked(self) -> None:
        lock = self._record.lock
        if lock is not None:
            await _release_quietly(lock, self._identity)

    def _transition(self, new_state: LifecycleState) -> None:
        record = self._record
        old_state = record.state
        if not is_valid_transition(old_state, new_state):
            raise ElectionStateError(
                f"Invalid state transition from {old_state.value} to {new_state.value}"
            )
        record.state = new_state

        if old_state is not new_state:
            logger.info(
                "Election state changed: %s -> %s",
                old_state.value,
                new_state.value,
                extra={
                    "identity": self._identity,
                    "state": new_state.value,
                },
            )


async def _release_quietly(lock: DistributedLock, identity: str) -> None:
    try:
        await lock.release()
    except Exception:
        logger.warning(
            "Failed to release lock",
            extra={"identity": identity, "lock_name": lock.name},
            exc_info=True,
        )


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


__all__ = [
    "LeadershipLifecycleManager",
]
