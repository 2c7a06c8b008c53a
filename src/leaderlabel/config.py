"""
Configuration for leader election.

This module provides:
- ElectionConfig: Immutable timing and naming configuration for the lifecycle manager
- ElectorSettings: Process-level settings, loadable from the environment
- parse_duration: Parses "90", "90s", "1500ms", "2m", "1h" into seconds

Configuration errors are fatal: both classes raise ElectionConfigError at
construction, before any election attempt can start.
"""

from __future__ import annotations

import math
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from leaderlabel.exceptions import ElectionConfigError

DEFAULT_LEASE_DURATION = 120.0
"""Seconds a held lock stays valid without renewal."""

DEFAULT_RENEW_DEADLINE = 60.0
"""Seconds between renewal attempts while leading."""

DEFAULT_RETRY_PERIOD = 5.0
"""Seconds between failed acquisition attempts."""

DEFAULT_RECONCILE_INTERVAL = 5.0
"""Seconds between leader label reconciliations for a replica run from settings."""

ENV_VARS: dict[str, str] = {
    "POD_NAME": "identity",
    "POD_NAMESPACE": "namespace",
    "ELECTOR_LOCK_NAME": "lock_name",
    "ELECTOR_LABEL_KEY": "label_key",
    "ELECTOR_SELECTOR_KEY": "selector_key",
    "ELECTOR_SELECTOR_VALUE": "selector_value",
    "ELECTOR_LEASE_DURATION": "lease_duration",
    "ELECTOR_RENEW_DEADLINE": "renew_deadline",
    "ELECTOR_RETRY_PERIOD": "retry_period",
    "ELECTOR_RECONCILE_INTERVAL": "reconcile_interval",
    "ELECTOR_LEADER_INFO_CONFIGMAP": "leader_info_config_map",
    "ELECTOR_LOCK_REGISTRY_KEY": "lock_registry_key",
    "REDIS_URL": "redis_url",
    "ELECTOR_ENABLE_TRACING": "enable_tracing",
}
"""Environment variable name -> ElectorSettings field."""

_FIELD_TO_ENV = {field: var for var, field in ENV_VARS.items()}

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts numbers (seconds) and strings with an optional unit suffix:
    ``ms``, ``s``, ``m`` or ``h``. A bare number is taken as seconds.

    Args:
        value: Duration as int, float or string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the value cannot be parsed

    Example:
        >>> parse_duration("2m")
        120.0
        >>> parse_duration("1500ms")
        1.5
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int | float):
        if not math.isfinite(value):
            raise ValueError(f"Invalid duration: {value!r}")
        return float(value)
    if isinstance(value, str):
        match = _DURATION_PATTERN.match(value)
        if match:
            amount, unit = match.groups()
            return float(amount) * _DURATION_UNITS[(unit or "s").lower()]
    raise ValueError(f"Invalid duration: {value!r}")


@dataclass(frozen=True)
class ElectionConfig:
    """
    Configuration for a leadership lifecycle manager.

    Attributes:
        lock_name: Name of the distributed lock all replicas compete for
        label_key: Label key written on replicas to mark leadership
        selector_key: Label key identifying the peer set
        selector_value: Label value identifying the peer set
        lease_duration: Max seconds a held lock is valid without renewal
        renew_deadline: Seconds between renewals; must be < lease_duration
        retry_period: Seconds between failed acquisition attempts
        reconcile_interval: Seconds between leader label reconciliations
            while leading; None disables them

    Raises:
        ElectionConfigError: If any name is blank, any duration is not a
            finite positive number, or renew_deadline is not strictly less
            than lease_duration

    Example:
        >>> config = ElectionConfig(
        ...     lock_name="web-leader",
        ...     label_key="example.com/leader",
        ...     selector_key="app",
        ...     selector_value="web",
        ... )
        >>> config.renew_deadline
        60.0
    """

    lock_name: str
    label_key: str
    selector_key: str
    selector_value: str
    lease_duration: float = DEFAULT_LEASE_DURATION
    renew_deadline: float = DEFAULT_RENEW_DEADLINE
    retry_period: float = DEFAULT_RETRY_PERIOD
    reconcile_interval: float | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        problems: list[str] = []

        for name in ("lock_name", "label_key", "selector_key", "selector_value"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                problems.append(f"{name} must be configured")

        durations = ["lease_duration", "renew_deadline", "retry_period"]
        if self.reconcile_interval is not None:
            durations.append("reconcile_interval")
        for name in durations:
            value = getattr(self, name)
            if not _is_finite_number(value):
                problems.append(f"{name} must be a finite number of seconds, got {value!r}")
            elif value <= 0:
                problems.append(f"{name} must be positive, got {value}")

        # Renewal must complete before the lock can expire
        if (
            _is_finite_number(self.renew_deadline)
            and _is_finite_number(self.lease_duration)
            and self.renew_deadline >= self.lease_duration
        ):
            problems.append(
                f"renew_deadline ({self.renew_deadline}s) must be less than "
                f"lease_duration ({self.lease_duration}s)"
            )

        if problems:
            raise ElectionConfigError(problems)


class ElectorSettings(BaseModel):
    """
    Process-level settings for a leader-labelling replica.

    Combines the election configuration with the replica's identity and
    the backends it talks to. Usually loaded with :meth:`from_env`.

    Attributes:
        identity: Stable name of this replica (the pod name)
        namespace: Namespace holding the replica and its peers
        lock_name: Name of the distributed lock
        label_key: Leadership label key
        selector_key: Label key identifying the peer set
        selector_value: Label value identifying the peer set
        lease_duration: Seconds a held lock is valid without renewal
        renew_deadline: Seconds between renewals
        retry_period: Seconds between failed acquisition attempts
        reconcile_interval: Seconds between leader label reconciliations
            while leading; 0 disables them
        leader_info_config_map: Optional ConfigMap recording the leader identity
        redis_url: Optional Redis URL for the Redis lock backend
        lock_registry_key: Optional Redis key prefix; defaults to
            "{lock_name}-lock-registry"
        enable_tracing: Whether to emit OpenTelemetry spans when available

    Example:
        >>> settings = ElectorSettings.from_env({
        ...     "POD_NAME": "web-0",
        ...     "POD_NAMESPACE": "default",
        ...     "ELECTOR_LOCK_NAME": "web-leader",
        ...     "ELECTOR_LABEL_KEY": "example.com/leader",
        ...     "ELECTOR_SELECTOR_KEY": "app",
        ...     "ELECTOR_SELECTOR_VALUE": "web",
        ...     "ELECTOR_RENEW_DEADLINE": "30s",
        ... })
        >>> settings.to_election_config().renew_deadline
        30.0
    """

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., description="Stable name of this replica")
    namespace: str = Field(..., description="Namespace of the replica and its peers")
    lock_name: str = Field(..., description="Name of the distributed lock")
    label_key: str = Field(..., description="Leadership label key")
    selector_key: str = Field(..., description="Peer selector label key")
    selector_value: str = Field(..., description="Peer selector label value")

    lease_duration: float = Field(default=DEFAULT_LEASE_DURATION, gt=0)
    renew_deadline: float = Field(default=DEFAULT_RENEW_DEADLINE, gt=0)
    retry_period: float = Field(default=DEFAULT_RETRY_PERIOD, gt=0)
    reconcile_interval: float = Field(default=DEFAULT_RECONCILE_INTERVAL, ge=0)

    leader_info_config_map: str | None = Field(
        default=None,
        description="ConfigMap in which to record the current leader",
    )
    redis_url: str | None = Field(default=None, description="Redis URL for the lock backend")
    lock_registry_key: str | None = Field(default=None, description="Redis key prefix")
    enable_tracing: bool = True

    @field_validator(
        "identity",
        "namespace",
        "lock_name",
        "label_key",
        "selector_key",
        "selector_value",
    )
    @classmethod
    def _require_non_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be configured")
        return value

    @field_validator(
        "lease_duration", "renew_deadline", "retry_period", "reconcile_interval", mode="before"
    )
    @classmethod
    def _parse_durations(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("leader_info_config_map", "redis_url", "lock_registry_key")
    @classmethod
    def _blank_as_none(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _check_timing(self) -> ElectorSettings:
        if self.renew_deadline >= self.lease_duration:
            raise ValueError(
                f"renew_deadline ({self.renew_deadline}s) must be less than "
                f"lease_duration ({self.lease_duration}s)"
            )
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ElectorSettings:
        """
        Load settings from environment variables.

        Empty variables are treated as unset. See ENV_VARS for the names.

        Args:
            environ: Mapping to read instead of os.environ

        Returns:
            Validated ElectorSettings

        Raises:
            ElectionConfigError: Listing every missing or invalid variable
        """
        env = os.environ if environ is None else environ
        data = {field: env[var] for var, field in ENV_VARS.items() if env.get(var, "").strip()}
        return cls.from_mapping(data)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ElectorSettings:
        """
        Validate settings from a field-name mapping.

        Raises:
            ElectionConfigError: Listing every missing or invalid field
        """
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise ElectionConfigError([_describe_error(err) for err in e.errors()]) from e

    @property
    def registry_key(self) -> str:
        """Redis key prefix for the lock registry."""
        return self.lock_registry_key or f"{self.lock_name}-lock-registry"

    def to_election_config(self) -> ElectionConfig:
        """Build the ElectionConfig used by the lifecycle manager."""
        return ElectionConfig(
            lock_name=self.lock_name,
            label_key=self.label_key,
            selector_key=self.selector_key,
            selector_value=self.selector_value,
            lease_duration=self.lease_duration,
            renew_deadline=self.renew_deadline,
            retry_period=self.retry_period,
            reconcile_interval=self.reconcile_interval or None,
        )


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, int | float)
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _describe_error(error: Mapping[str, Any]) -> str:
    loc = error.get("loc") or ()
    message = str(error.get("msg", "invalid value"))
    if not loc:
        return message.removeprefix("Value error, ")
    field = str(loc[0])
    env_var = _FIELD_TO_ENV.get(field)
    name = f"{field} ({env_var})" if env_var else field
    return f"{name}: {message.removeprefix('Value error, ')}"


__all__ = [
    "DEFAULT_LEASE_DURATION",
    "DEFAULT_RECONCILE_INTERVAL",
    "DEFAULT_RENEW_DEADLINE",
    "DEFAULT_RETRY_PERIOD",
    "ENV_VARS",
    "ElectionConfig",
    "ElectorSettings",
    "parse_duration",
]
