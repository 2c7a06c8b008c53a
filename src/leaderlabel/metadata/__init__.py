"""
Cluster metadata clients used by the leadership reflector.

- InMemoryMetadataClient: dictionaries, with failure injection for tests
- KubernetesMetadataClient: pods and ConfigMaps via the official client
  (requires ``leaderlabel-py[kubernetes]``)
"""

from leaderlabel.metadata.interface import ClusterMetadataClient, ObjectRef
from leaderlabel.metadata.kubernetes import KUBERNETES_AVAILABLE, KubernetesMetadataClient
from leaderlabel.metadata.memory import InMemoryMetadataClient, PatchCall

__all__ = [
    "ClusterMetadataClient",
    "ObjectRef",
    "InMemoryMetadataClient",
    "PatchCall",
    "KUBERNETES_AVAILABLE",
    "KubernetesMetadataClient",
]
