"""Library exceptions for the leaderlabel package."""


class LeaderLabelError(Exception):
    """Base exception for leaderlabel library."""

    pass


class ElectionConfigError(LeaderLabelError, ValueError):
    """
    Raised when election configuration is missing or invalid.

    Configuration errors are fatal at startup: they are raised before any
    election attempt is made.

    Attributes:
        problems: Every individual problem found, in discovery order
    """

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("Invalid election configuration: " + "; ".join(self.problems))


class ElectionStateError(LeaderLabelError):
    """Raised when an operation is invalid for the current lifecycle state."""

    pass


class LockError(LeaderLabelError):
    """Base exception for distributed lock failures."""

    def __init__(self, lock_name: str, message: str) -> None:
        self.lock_name = lock_name
        super().__init__(message)


class LockAcquisitionError(LockError):
    """
    Raised when the lock backend fails while trying to acquire a lock.

    Not raised for a plain timeout; ``try_acquire`` returns False then.

    Attributes:
        lock_name: The lock that could not be acquired
        reason: Description of why acquisition failed
    """

    def __init__(self, lock_name: str, reason: str) -> None:
        self.reason = reason
        super().__init__(lock_name, f"Failed to acquire lock '{lock_name}': {reason}")


class LockNotHeldError(LockError):
    """Raised when renewing a lock this process no longer holds."""

    def __init__(self, lock_name: str) -> None:
        super().__init__(lock_name, f"Lock '{lock_name}' is not held by this registry")


class LockRenewalError(LockError):
    """Raised when the lock backend fails while renewing a held lock."""

    def __init__(self, lock_name: str, reason: str) -> None:
        self.reason = reason
        super().__init__(lock_name, f"Failed to renew lock '{lock_name}': {reason}")


class MetadataClientError(LeaderLabelError):
    """
    Raised when a cluster metadata read or write fails.

    Attributes:
        operation: The client operation that failed (e.g. "patch_label")
        target: The object or selector the operation was addressed to
        status: Backend status code if one was reported
    """

    def __init__(
        self,
        operation: str,
        target: str,
        message: str,
        status: int | None = None,
    ) -> None:
        self.operation = operation
        self.target = target
        self.status = status
        super().__init__(f"{operation} failed for {target}: {message}")


class ReflectorError(LeaderLabelError):
    """Raised when leadership cannot be reflected into cluster metadata."""

    pass


class BackendNotAvailableError(ImportError):
    """Raised when an optional backend package is not installed."""

    def __init__(self, package: str, extra: str) -> None:
        self.package = package
        self.extra = extra
        super().__init__(
            f"{package} package is not installed. "
            f"Install it with: pip install leaderlabel-py[{extra}]"
        )
