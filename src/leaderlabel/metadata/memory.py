"""
In-memory cluster metadata client.

Keeps objects and ConfigMaps in dictionaries. Intended for tests and local
runs; failures can be injected per operation to exercise error paths.

Example:
    >>> client = InMemoryMetadataClient()
    >>> client.add_object("default", "web-0", {"app": "web"})
    >>> await client.patch_label("default", "web-0", "leader", "true")
    >>> client.labels_of("default", "web-0")
    {'app': 'web', 'leader': 'true'}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from leaderlabel.exceptions import MetadataClientError
from leaderlabel.metadata.interface import ObjectRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatchCall:
    """A recorded patch_label call."""

    namespace: str
    name: str
    key: str
    value: str


@dataclass
class _Object:
    labels: dict[str, str] = field(default_factory=dict)


class InMemoryMetadataClient:
    """
    ClusterMetadataClient backed by dictionaries.

    Attributes:
        patch_calls: Every patch_label call, including failed ones, in order
        fail_list: When set, list_by_label raises MetadataClientError
    """

    def __init__(self) -> None:
        self._objects: dict[tuple[str, str], _Object] = {}
        self._config_maps: dict[tuple[str, str], dict[str, str]] = {}
        self._failing_patches: set[tuple[str, str]] = set()
        self.fail_list = False
        self.fail_config_map = False
        self.patch_calls: list[PatchCall] = []

    # -- test helpers -------------------------------------------------------

    def add_object(
        self,
        namespace: str,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Add (or replace) an object with the given labels."""
        self._objects[(namespace, name)] = _Object(dict(labels or {}))

    def remove_object(self, namespace: str, name: str) -> None:
        """Remove an object, e.g. a replica that went away."""
        self._objects.pop((namespace, name), None)

    def labels_of(self, namespace: str, name: str) -> dict[str, str]:
        """Get a copy of an object's labels."""
        return dict(self._objects[(namespace, name)].labels)

    def fail_patches_for(self, namespace: str, name: str, fail: bool = True) -> None:
        """Make patch_label raise for the named object."""
        if fail:
            self._failing_patches.add((namespace, name))
        else:
            self._failing_patches.discard((namespace, name))

    def config_map(self, namespace: str, name: str) -> dict[str, str] | None:
        """Get a copy of a ConfigMap's data, or None if it does not exist."""
        data = self._config_maps.get((namespace, name))
        return None if data is None else dict(data)

    # -- ClusterMetadataClient ----------------------------------------------

    async def list_by_label(self, namespace: str, key: str, value: str) -> list[ObjectRef]:
        if self.fail_list:
            raise MetadataClientError("list_by_label", f"{namespace}/{key}={value}", "injected failure")
        return [
            ObjectRef(name=name, namespace=ns, labels=dict(obj.labels))
            for (ns, name), obj in self._objects.items()
            if ns == namespace and obj.labels.get(key) == value
        ]

    async def patch_label(self, namespace: str, name: str, key: str, value: str) -> None:
        self.patch_calls.append(PatchCall(namespace, name, key, value))
        target = f"{namespace}/{name}"

        if (namespace, name) in self._failing_patches:
            raise MetadataClientError("patch_label", target, "injected failure")

        obj = self._objects.get((namespace, name))
        if obj is None:
            raise MetadataClientError("patch_label", target, "not found", status=404)

        obj.labels[key] = value
        logger.debug("Patched label", extra={"target": target, "key": key, "value": value})

    async def get_config_map_data(self, namespace: str, name: str) -> dict[str, str]:
        if self.fail_config_map:
            raise MetadataClientError("get_config_map_data", f"{namespace}/{name}", "injected failure")
        return dict(self._config_maps.get((namespace, name), {}))

    async def patch_config_map_data(
        self,
        namespace: str,
        name: str,
        data: dict[str, str | None],
    ) -> None:
        if self.fail_config_map:
            raise MetadataClientError("patch_config_map_data", f"{namespace}/{name}", "injected failure")

        current = self._config_maps.setdefault((namespace, name), {})
        for key, value in data.items():
            if value is None:
                current.pop(key, None)
            else:
                current[key] = value


__all__ = [
    "InMemoryMetadataClient",
    "PatchCall",
]
