"""
Application wiring for a leader-labelling replica.

LeaderLabeler assembles the lifecycle manager, reflector, lock registry,
metadata client and scheduler from ElectorSettings, and runs them until
the process is asked to shut down.

Example:
    >>> import asyncio
    >>> from leaderlabel.app import LeaderLabeler
    >>>
    >>> async def main() -> None:
    ...     labeler = LeaderLabeler.from_env()
    ...     await labeler.run_until_shutdown()
    >>>
    >>> asyncio.run(main())
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Mapping
from typing import Any

from leaderlabel.config import ElectorSettings
from leaderlabel.election.manager import LeadershipLifecycleManager
from leaderlabel.exceptions import ElectionConfigError
from leaderlabel.locks.interface import LockRegistry
from leaderlabel.locks.redis import RedisLockRegistry, RedisLockRegistryConfig
from leaderlabel.metadata.interface import ClusterMetadataClient
from leaderlabel.metadata.kubernetes import KubernetesMetadataClient
from leaderlabel.observability import Tracer
from leaderlabel.reflector import LeadershipReflector
from leaderlabel.scheduling import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class LeaderLabeler:
    """
    A complete leader-labelling replica.

    Components not passed in are built from the settings:
    - metadata_client: KubernetesMetadataClient loaded from the cluster config
    - lock_registry: RedisLockRegistry on ``settings.redis_url``
    - scheduler: AsyncioScheduler, shut down on stop()

    Attributes:
        settings: Settings the replica was built from
        reflector: LeadershipReflector writing the leadership labels
        manager: LeadershipLifecycleManager driving the election
    """

    def __init__(
        self,
        settings: ElectorSettings,
        *,
        metadata_client: ClusterMetadataClient | None = None,
        lock_registry: LockRegistry | None = None,
        scheduler: Scheduler | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        """
        Initialize the replica.

        Raises:
            ElectionConfigError: If no lock registry is given and no Redis
                URL is configured
            BackendNotAvailableError: If a default backend's extra is missing
        """
        self.settings = settings

        self._owned_registry: RedisLockRegistry | None = None
        if lock_registry is None:
            if settings.redis_url is None:
                raise ElectionConfigError(
                    "redis_url (REDIS_URL): must be configured when no lock registry is given"
                )
            self._owned_registry = RedisLockRegistry(
                RedisLockRegistryConfig(
                    redis_url=settings.redis_url,
                    registry_key=settings.registry_key,
                    expire_after=settings.lease_duration,
                    enable_tracing=settings.enable_tracing,
                ),
                tracer=tracer,
            )
            lock_registry = self._owned_registry

        if metadata_client is None:
            metadata_client = KubernetesMetadataClient.from_config(
                enable_tracing=settings.enable_tracing
            )

        self._owned_scheduler: AsyncioScheduler | None = None
        if scheduler is None:
            self._owned_scheduler = AsyncioScheduler(name=f"leaderlabel:{settings.identity}")
            scheduler = self._owned_scheduler

        self.reflector = LeadershipReflector.from_settings(settings, metadata_client, tracer=tracer)
        self.manager = LeadershipLifecycleManager(
            settings.to_election_config(),
            lock_registry,
            scheduler,
            self.reflector,
            identity=settings.identity,
            tracer=tracer,
            enable_tracing=settings.enable_tracing,
        )

        self._shutdown_event = asyncio.Event()
        self._registered_signals: list[signal.Signals] = []

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **kwargs: Any) -> LeaderLabeler:
        """
        Build a replica from environment variables.

        Args:
            environ: Mapping to read instead of os.environ
            **kwargs: Passed to the constructor (e.g. lock_registry)

        Raises:
            ElectionConfigError: If the environment is incomplete or invalid
        """
        return cls(ElectorSettings.from_env(environ), **kwargs)

    async def start(self) -> None:
        """Start competing for leadership."""
        await self.manager.start()

    async def stop(self) -> None:
        """
        Stop the election, release the lock and clear this replica's label.

        Owned resources (scheduler, Redis connection) are closed. Idempotent.
        """
        await self.manager.stop()

        if self._owned_scheduler is not None:
            await self._owned_scheduler.shutdown()
        if self._owned_registry is not None:
            try:
                await self._owned_registry.close()
            except Exception:
                logger.warning("Error closing lock registry", exc_info=True)
            self._owned_registry = None

    def request_shutdown(self) -> None:
        """Make run_until_shutdown() stop the replica and return."""
        self._shutdown_event.set()

    def register_signals(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """
        Register SIGTERM and SIGINT handlers that request shutdown.

        Args:
            loop: Event loop to register handlers on. Defaults to the
                  running event loop.
        """
        loop = loop or asyncio.get_running_loop()

        for sig in SHUTDOWN_SIGNALS:
            if sig in self._registered_signals:
                continue
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
                self._registered_signals.append(sig)
                logger.debug("Registered signal handler", extra={"signal": sig.name})
            except NotImplementedError:
                # Windows doesn't fully support add_signal_handler
                logger.warning(
                    "Signal handling not fully supported on this platform",
                    extra={"signal": sig.name},
                )

    def unregister_signals(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Remove the handlers installed by register_signals()."""
        loop = loop or asyncio.get_running_loop()
        for sig in self._registered_signals:
            loop.remove_signal_handler(sig)
        self._registered_signals.clear()

    async def run_until_shutdown(self) -> None:
        """
        Run the replica until a shutdown signal is received.

        Registers SIGTERM/SIGINT handlers, starts the election, blocks until
        a signal (or request_shutdown()) arrives, then stops cleanly.
        """
        self.register_signals()
        logger.info(
            "Leader labeler running",
            extra={
                "identity": self.settings.identity,
                "namespace": self.settings.namespace,
                "lock_name": self.settings.lock_name,
            },
        )
        try:
            await self.start()
            await self._shutdown_event.wait()
        finally:
            await self.stop()
            self.unregister_signals()

        logger.info("Leader labeler shut down", extra={"identity": self.settings.identity})

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received shutdown signal", extra={"signal": sig.name})
        self.request_shutdown()

    async def __aenter__(self) -> LeaderLabeler:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Async context manager exit."""
        await self.stop()


__all__ = [
    "LeaderLabeler",
    "SHUTDOWN_SIGNALS",
]
