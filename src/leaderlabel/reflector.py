"""
Leadership reflector.

Mirrors the local leadership state into cluster metadata: when this replica
becomes leader, every peer selected by ``selector_key=selector_value`` gets
``label_key=false`` and this replica gets ``label_key=true``. When
leadership is lost, only this replica's label is set back to ``false``.
While leading, ``reconcile_leadership`` demotes any other object that still
carries ``label_key=true``.

The reflector is the production implementation of LeadershipCallbacks and
LeadershipReconciler.

Example:
    >>> reflector = LeadershipReflector(
    ...     metadata_client,
    ...     identity="web-0",
    ...     namespace="default",
    ...     label_key="example.com/leader",
    ...     selector_key="app",
    ...     selector_value="web",
    ... )
    >>> await reflector.on_became_leader()
"""

from __future__ import annotations

import logging

from leaderlabel.config import ElectorSettings
from leaderlabel.exceptions import ReflectorError
from leaderlabel.metadata.interface import ClusterMetadataClient
from leaderlabel.observability import Tracer, create_tracer
from leaderlabel.observability.attributes import (
    ATTR_IDENTITY,
    ATTR_LABEL_KEY,
    ATTR_NAMESPACE,
    ATTR_PEER_COUNT,
    ATTR_PEER_FAILURES,
)

logger = logging.getLogger(__name__)

LEADER_VALUE = "true"
FOLLOWER_VALUE = "false"
LEADER_INFO_KEY = "leaderPod"
"""ConfigMap data key holding the identity of the current leader."""


class LeadershipReflector:
    """
    Keeps leadership labels in sync with the local leadership state.

    Peers are demoted before this replica is promoted. A failure to demote
    one peer is logged and does not stop the others.

    Attributes:
        identity: Name of this replica's object
        namespace: Namespace of this replica and its peers
        label_key: Leadership label key
    """

    def __init__(
        self,
        metadata_client: ClusterMetadataClient,
        *,
        identity: str,
        namespace: str,
        label_key: str,
        selector_key: str,
        selector_value: str,
        leader_info_config_map: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the reflector.

        Args:
            metadata_client: Client used to list and label replicas
            identity: Name of this replica's object
            namespace: Namespace of this replica and its peers
            label_key: Leadership label key
            selector_key: Label key identifying the peer set
            selector_value: Label value identifying the peer set
            leader_info_config_map: Optional ConfigMap in which the leader
                records its identity under ``leaderPod``
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._client = metadata_client
        self.identity = identity
        self.namespace = namespace
        self.label_key = label_key
        self._selector_key = selector_key
        self._selector_value = selector_value
        self._leader_info_config_map = leader_info_config_map

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @classmethod
    def from_settings(
        cls,
        settings: ElectorSettings,
        metadata_client: ClusterMetadataClient,
        *,
        tracer: Tracer | None = None,
    ) -> LeadershipReflector:
        """Build a reflector for the replica described by settings."""
        return cls(
            metadata_client,
            identity=settings.identity,
            namespace=settings.namespace,
            label_key=settings.label_key,
            selector_key=settings.selector_key,
            selector_value=settings.selector_value,
            leader_info_config_map=settings.leader_info_config_map,
            tracer=tracer,
            enable_tracing=settings.enable_tracing,
        )

    async def on_became_leader(self) -> None:
        """
        Label this replica leader and every peer follower.

        Raises:
            ReflectorError: If the peers cannot be listed or this replica
                cannot be labelled leader
        """
        with self._tracer.span(
            "leaderlabel.reflector.became_leader",
            {
                ATTR_IDENTITY: self.identity,
                ATTR_NAMESPACE: self.namespace,
                ATTR_LABEL_KEY: self.label_key,
            },
        ) as span:
            try:
                peers = await self._client.list_by_label(
                    self.namespace, self._selector_key, self._selector_value
                )
            except Exception as e:
                logger.error(
                    "Failed to list peers",
                    extra={
                        "identity": self.identity,
                        "namespace": self.namespace,
                        "selector": f"{self._selector_key}={self._selector_value}",
                    },
                    exc_info=True,
                )
                raise ReflectorError(f"Failed to list peers of {self.identity}: {e}") from e

            # A listing may repeat an object; each peer is patched once
            peer_names = sorted({peer.name for peer in peers if peer.name != self.identity})
            failures = 0
            for name in peer_names:
                try:
                    await self._client.patch_label(
                        self.namespace, name, self.label_key, FOLLOWER_VALUE
                    )
                    logger.debug(
                        "Labelled peer as follower",
                        extra={"identity": self.identity, "peer": name},
                    )
                except Exception as e:
                    failures += 1
                    logger.warning(
                        "Failed to label peer as follower: %s",
                        e,
                        extra={"identity": self.identity, "peer": name},
                    )

            if span:
                span.set_attribute(ATTR_PEER_COUNT, len(peer_names))
                span.set_attribute(ATTR_PEER_FAILURES, failures)

            try:
                await self._client.patch_label(
                    self.namespace, self.identity, self.label_key, LEADER_VALUE
                )
            except Exception as e:
                logger.error(
                    "Failed to label self as leader",
                    extra={"identity": self.identity, "namespace": self.namespace},
                    exc_info=True,
                )
                raise ReflectorError(f"Failed to label {self.identity} as leader: {e}") from e

            logger.info(
                "Leadership labels reconciled",
                extra={
                    "identity": self.identity,
                    "peer_count": len(peer_names),
                    "peer_failures": failures,
                },
            )

            if self._leader_info_config_map:
                await self._record_leader(self.identity)

    async def on_lost_leadership(self) -> None:
        """Label this replica follower. Never raises."""
        with self._tracer.span(
            "leaderlabel.reflector.lost_leadership",
            {
                ATTR_IDENTITY: self.identity,
                ATTR_NAMESPACE: self.namespace,
                ATTR_LABEL_KEY: self.label_key,
            },
        ):
            try:
                await self._client.patch_label(
                    self.namespace, self.identity, self.label_key, FOLLOWER_VALUE
                )
                logger.info("Labelled self as follower", extra={"identity": self.identity})
            except Exception:
                logger.error(
                    "Failed to label self as follower",
                    extra={"identity": self.identity, "namespace": self.namespace},
                    exc_info=True,
                )

            if self._leader_info_config_map:
                await self._clear_leader()

    async def reconcile_leadership(self) -> None:
        """
        Demote every object still labelled leader, other than this replica.

        Called periodically while leading, so a peer restarted with a stale
        leader label, or one added after the election, is corrected before
        the next failover. Never raises.
        """
        with self._tracer.span(
            "leaderlabel.reflector.reconcile",
            {
                ATTR_IDENTITY: self.identity,
                ATTR_NAMESPACE: self.namespace,
                ATTR_LABEL_KEY: self.label_key,
            },
        ) as span:
            try:
                labelled = await self._client.list_by_label(
                    self.namespace, self.label_key, LEADER_VALUE
                )
            except Exception as e:
                logger.warning(
                    "Failed to list leader-labelled objects: %s",
                    e,
                    extra={"identity": self.identity, "namespace": self.namespace},
                )
                return

            stale = sorted({obj.name for obj in labelled if obj.name != self.identity})
            failures = 0
            for name in stale:
                try:
                    await self._client.patch_label(
                        self.namespace, name, self.label_key, FOLLOWER_VALUE
                    )
                    logger.info(
                        "Removed stale leader label",
                        extra={"identity": self.identity, "peer": name},
                    )
                except Exception as e:
                    failures += 1
                    logger.warning(
                        "Failed to remove stale leader label: %s",
                        e,
                        extra={"identity": self.identity, "peer": name},
                    )

            if span:
                span.set_attribute(ATTR_PEER_COUNT, len(stale))
                span.set_attribute(ATTR_PEER_FAILURES, failures)

    async def _record_leader(self, identity: str) -> None:
        config_map = self._leader_info_config_map
        assert config_map is not None
        try:
            await self._client.patch_config_map_data(
                self.namespace, config_map, {LEADER_INFO_KEY: identity}
            )
        except Exception as e:
            logger.warning(
                "Failed to record leader in ConfigMap: %s",
                e,
                extra={"identity": identity, "config_map": config_map},
            )

    async def _clear_leader(self) -> None:
        config_map = self._leader_info_config_map
        assert config_map is not None
        try:
            data = await self._client.get_config_map_data(self.namespace, config_map)
            # Another replica may already have taken over
            if data.get(LEADER_INFO_KEY) != self.identity:
                return
            await self._client.patch_config_map_data(
                self.namespace, config_map, {LEADER_INFO_KEY: None}
            )
        except Exception as e:
            logger.warning(
                "Failed to clear leader from ConfigMap: %s",
                e,
                extra={"identity": self.identity, "config_map": config_map},
            )


__all__ = [
    "FOLLOWER_VALUE",
    "LEADER_INFO_KEY",
    "LEADER_VALUE",
    "LeadershipReflector",
]
