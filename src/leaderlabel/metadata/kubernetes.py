"""
Kubernetes metadata client.

Uses the official ``kubernetes`` client's CoreV1Api. The client is
synchronous, so each call runs in a worker thread via asyncio.to_thread.

Every failure, API errors and transport errors alike, surfaces as
MetadataClientError.

Pod labels and ConfigMap data are changed with patches containing only the
keys being written, so unrelated labels and data keys are preserved.

Example:
    >>> from leaderlabel.metadata.kubernetes import KubernetesMetadataClient
    >>>
    >>> client = KubernetesMetadataClient.from_config()
    >>> pods = await client.list_by_label("default", "app", "web")
    >>> await client.patch_label("default", "web-0", "example.com/leader", "true")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from leaderlabel.exceptions import BackendNotAvailableError, MetadataClientError
from leaderlabel.metadata.interface import ObjectRef
from leaderlabel.observability import Tracer, create_tracer
from leaderlabel.observability.attributes import ATTR_NAMESPACE

# Optional kubernetes import - fail gracefully if not installed
try:
    from kubernetes import client as k8s_client
    from kubernetes import config as k8s_config
    from kubernetes.client.rest import ApiException
    from kubernetes.config.config_exception import ConfigException

    KUBERNETES_AVAILABLE = True
except ImportError:
    KUBERNETES_AVAILABLE = False
    k8s_client = None  # type: ignore[assignment]
    k8s_config = None  # type: ignore[assignment]
    ApiException = Exception  # type: ignore[assignment, misc]
    ConfigException = Exception  # type: ignore[assignment, misc]

logger = logging.getLogger(__name__)


class KubernetesMetadataClient:
    """
    ClusterMetadataClient for pods and ConfigMaps in a Kubernetes cluster.

    The service account needs ``list`` and ``patch`` on pods and ``get``,
    ``create`` and ``patch`` on configmaps in the target namespace.
    """

    def __init__(
        self,
        core_api: Any = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the client.

        Args:
            core_api: CoreV1Api instance. Defaults to one built from the
                     currently loaded kube configuration.
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.

        Raises:
            BackendNotAvailableError: If kubernetes is not installed and no
                core_api was given
        """
        if core_api is None:
            if not KUBERNETES_AVAILABLE:
                raise BackendNotAvailableError("kubernetes", "kubernetes")
            core_api = k8s_client.CoreV1Api()

        self._api = core_api
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

    @classmethod
    def from_config(cls, *, enable_tracing: bool = True) -> KubernetesMetadataClient:
        """
        Load cluster credentials and build a client.

        Uses the in-cluster service account when running in a pod, falling
        back to the local kubeconfig.

        Raises:
            BackendNotAvailableError: If kubernetes is not installed
        """
        if not KUBERNETES_AVAILABLE:
            raise BackendNotAvailableError("kubernetes", "kubernetes")

        try:
            k8s_config.load_incluster_config()
            logger.debug("Loaded in-cluster Kubernetes configuration")
        except ConfigException:
            k8s_config.load_kube_config()
            logger.debug("Loaded Kubernetes configuration from kubeconfig")

        return cls(k8s_client.CoreV1Api(), enable_tracing=enable_tracing)

    async def list_by_label(self, namespace: str, key: str, value: str) -> list[ObjectRef]:
        selector = f"{key}={value}"
        with self._tracer.span(
            "leaderlabel.kubernetes.list_pods",
            {ATTR_NAMESPACE: namespace, "leaderlabel.selector": selector},
        ):
            try:
                pods = await asyncio.to_thread(
                    self._api.list_namespaced_pod,
                    namespace,
                    label_selector=selector,
                )
            except Exception as e:
                raise _wrap("list_by_label", f"{namespace}/{selector}", e) from e

        return [
            ObjectRef(
                name=pod.metadata.name,
                namespace=pod.metadata.namespace or namespace,
                labels=dict(pod.metadata.labels or {}),
            )
            for pod in pods.items
        ]

    async def patch_label(self, namespace: str, name: str, key: str, value: str) -> None:
        body = {"metadata": {"labels": {key: value}}}
        try:
            await asyncio.to_thread(self._api.patch_namespaced_pod, name, namespace, body)
        except Exception as e:
            raise _wrap("patch_label", f"{namespace}/{name}", e) from e

        logger.debug(
            "Patched pod label",
            extra={"namespace": namespace, "pod": name, "key": key, "value": value},
        )

    async def get_config_map_data(self, namespace: str, name: str) -> dict[str, str]:
        try:
            config_map = await asyncio.to_thread(
                self._api.read_namespaced_config_map, name, namespace
            )
        except ApiException as e:
            if e.status == 404:
                return {}
            raise _wrap("get_config_map_data", f"{namespace}/{name}", e) from e
        except Exception as e:
            raise _wrap("get_config_map_data", f"{namespace}/{name}", e) from e

        return dict(config_map.data or {})

    async def patch_config_map_data(
        self,
        namespace: str,
        name: str,
        data: dict[str, str | None],
    ) -> None:
        target = f"{namespace}/{name}"
        try:
            await asyncio.to_thread(
                self._api.patch_namespaced_config_map,
                name,
                namespace,
                {"data": data},
            )
            return
        except ApiException as e:
            if e.status != 404:
                raise _wrap("patch_config_map_data", target, e) from e
        except Exception as e:
            raise _wrap("patch_config_map_data", target, e) from e

        # Not found: create it with the non-deleted keys
        body = k8s_client.V1ConfigMap(
            metadata=k8s_client.V1ObjectMeta(name=name, namespace=namespace),
            data={key: value for key, value in data.items() if value is not None},
        )
        try:
            await asyncio.to_thread(self._api.create_namespaced_config_map, namespace, body)
        except Exception as e:
            raise _wrap("patch_config_map_data", target, e) from e

        logger.info("Created ConfigMap", extra={"namespace": namespace, "config_map": name})


def _wrap(operation: str, target: str, error: Any) -> MetadataClientError:
    status = getattr(error, "status", None)
    reason = getattr(error, "reason", None) or str(error)
    return MetadataClientError(operation, target, str(reason), status=status)


__all__ = [
    "KUBERNETES_AVAILABLE",
    "KubernetesMetadataClient",
]
