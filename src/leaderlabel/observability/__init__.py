"""
Observability utilities for leaderlabel.

Tracing is optional: every utility here degrades to a no-op when
OpenTelemetry is not installed.

Example:
    >>> from leaderlabel.observability import create_tracer
    >>>
    >>> class MyLockRegistry:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from leaderlabel.observability.attributes import (
    ATTR_ELECTION_TERM,
    ATTR_ERROR_TYPE,
    ATTR_IDENTITY,
    ATTR_LABEL_KEY,
    ATTR_LOCK_ACQUIRED,
    ATTR_LOCK_BACKEND,
    ATTR_LOCK_NAME,
    ATTR_LOCK_TIMEOUT,
    ATTR_LOCK_TTL,
    ATTR_LOSS_REASON,
    ATTR_NAMESPACE,
    ATTR_PEER_COUNT,
    ATTR_PEER_FAILURES,
)
from leaderlabel.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from leaderlabel.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes - Election
    "ATTR_IDENTITY",
    "ATTR_ELECTION_TERM",
    "ATTR_LOSS_REASON",
    # Attributes - Lock
    "ATTR_LOCK_NAME",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_LOCK_TTL",
    "ATTR_LOCK_ACQUIRED",
    "ATTR_LOCK_BACKEND",
    # Attributes - Reflector
    "ATTR_NAMESPACE",
    "ATTR_LABEL_KEY",
    "ATTR_PEER_COUNT",
    "ATTR_PEER_FAILURES",
    "ATTR_ERROR_TYPE",
]
