"""
Test utilities for leaderlabel.

Components:
    ManualScheduler: Virtual-time scheduler running tasks only when told to
    RecordingCallbacks: LeadershipCallbacks recording every invocation
    ElectionTestHarness: Several replicas wired to shared in-memory backends

Example:
    >>> from leaderlabel.testing import ElectionTestHarness
    >>>
    >>> harness = ElectionTestHarness()
    >>> harness.add_replica("web-0")
    >>> await harness.start_all()
    >>> await harness.scheduler.run_due()
    >>> assert harness.leaders() == ["web-0"]

Note:
    This module is optional and intended for test code only. It should not
    be imported in production code paths.
"""

from leaderlabel.testing.callbacks import RecordingCallbacks
from leaderlabel.testing.harness import ElectionTestHarness
from leaderlabel.testing.scheduler import ManualScheduler, ManualTask

__all__ = [
    "ElectionTestHarness",
    "ManualScheduler",
    "ManualTask",
    "RecordingCallbacks",
]
