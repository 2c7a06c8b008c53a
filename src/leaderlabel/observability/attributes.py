"""
Standard span attributes for leaderlabel.

Attribute names are shared by the lifecycle manager, lock backends, and
reflector so traces from every replica can be filtered the same way.

Example:
    >>> from leaderlabel.observability.attributes import ATTR_LOCK_NAME, ATTR_IDENTITY
    >>>
    >>> with tracer.span(
    ...     "leaderlabel.election.renew",
    ...     {ATTR_LOCK_NAME: "web-leader", ATTR_IDENTITY: "web-0"},
    ... ):
    ...     pass
"""

# =============================================================================
# Election Attributes
# =============================================================================

ATTR_IDENTITY = "leaderlabel.identity"
"""Identity of the replica running the election (string)."""

ATTR_ELECTION_TERM = "leaderlabel.election.term"
"""Local count of acquisitions made by this manager (integer)."""

ATTR_LOSS_REASON = "leaderlabel.election.loss_reason"
"""Why leadership was relinquished (string)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_NAME = "leaderlabel.lock.name"
"""Name of the distributed lock (string)."""

ATTR_LOCK_TIMEOUT = "leaderlabel.lock.timeout"
"""Seconds to wait when acquiring a lock (float)."""

ATTR_LOCK_TTL = "leaderlabel.lock.ttl"
"""Lease duration requested when renewing (float)."""

ATTR_LOCK_ACQUIRED = "leaderlabel.lock.acquired"
"""Whether the lock was acquired (boolean)."""

ATTR_LOCK_BACKEND = "leaderlabel.lock.backend"
"""Lock backend identifier (e.g. 'redis', 'postgresql', 'memory')."""

# =============================================================================
# Reflector Attributes
# =============================================================================

ATTR_NAMESPACE = "leaderlabel.namespace"
"""Namespace of the cluster objects being labelled (string)."""

ATTR_LABEL_KEY = "leaderlabel.label.key"
"""Leadership label key (string)."""

ATTR_PEER_COUNT = "leaderlabel.peer.count"
"""Number of peers discovered by the selector (integer)."""

ATTR_PEER_FAILURES = "leaderlabel.peer.failures"
"""Number of peers whose label update failed (integer)."""

# =============================================================================
# Error Attributes
# =============================================================================

ATTR_ERROR_TYPE = "error.type"
"""Exception class name for failed operations."""
