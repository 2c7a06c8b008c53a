"""
Cluster metadata client protocol.

The reflector only needs to find the replicas of a deployment by label,
set one label on a replica and keep a small key/value record (a ConfigMap
in Kubernetes) naming the current leader.

Label writes are merge patches: other labels on the object are untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class ObjectRef:
    """
    Reference to a labelled cluster object (a replica).

    Attributes:
        name: Object name, unique within the namespace
        namespace: Namespace of the object
        labels: Labels observed when the object was listed
    """

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@runtime_checkable
class ClusterMetadataClient(Protocol):
    """
    Protocol for reading and labelling cluster objects.

    Every method raises MetadataClientError when the backend fails.
    """

    async def list_by_label(self, namespace: str, key: str, value: str) -> list[ObjectRef]:
        """
        List objects in namespace whose label key equals value.

        Args:
            namespace: Namespace to search
            key: Label key to select on
            value: Required label value

        Returns:
            Matching objects, in backend order
        """
        ...

    async def patch_label(self, namespace: str, name: str, key: str, value: str) -> None:
        """Set label key to value on the named object, preserving other labels."""
        ...

    async def get_config_map_data(self, namespace: str, name: str) -> dict[str, str]:
        """
        Read the data of a ConfigMap.

        Returns:
            The ConfigMap data, or an empty dict if it does not exist
        """
        ...

    async def patch_config_map_data(
        self,
        namespace: str,
        name: str,
        data: dict[str, str | None],
    ) -> None:
        """
        Merge data into a ConfigMap, creating it if missing.

        A value of None removes the key.
        """
        ...


__all__ = [
    "ClusterMetadataClient",
    "ObjectRef",
]
