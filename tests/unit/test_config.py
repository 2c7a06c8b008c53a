"""
Tests for election configuration and environment settings.
"""

import pytest

from leaderlabel.config import (
    DEFAULT_LEASE_DURATION,
    DEFAULT_RENEW_DEADLINE,
    DEFAULT_RETRY_PERIOD,
    ElectionConfig,
    ElectorSettings,
    parse_duration,
)
from leaderlabel.exceptions import ElectionConfigError


def make_config(**overrides):
    values = {
        "lock_name": "web-leader",
        "label_key": "example.com/leader",
        "selector_key": "app",
        "selector_value": "web",
    }
    values.update(overrides)
    return ElectionConfig(**values)


class TestElectionConfig:
    """Tests for ElectionConfig validation."""

    def test_defaults(self) -> None:
        """Test default timings."""
        config = make_config()

        assert config.lease_duration == DEFAULT_LEASE_DURATION == 120.0
        assert config.renew_deadline == DEFAULT_RENEW_DEADLINE == 60.0
        assert config.retry_period == DEFAULT_RETRY_PERIOD == 5.0

    def test_is_frozen(self) -> None:
        """Test config cannot be modified after construction."""
        config = make_config()

        with pytest.raises(AttributeError):
            config.lease_duration = 10.0  # type: ignore[misc]

    def test_renew_deadline_longer_than_lease_rejected(self) -> None:
        """Test lease 120s with renew deadline 200s is rejected at construction."""
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(lease_duration=120.0, renew_deadline=200.0)

        assert "renew_deadline" in str(exc_info.value)
        assert isinstance(exc_info.value, ValueError)

    def test_renew_deadline_equal_to_lease_rejected(self) -> None:
        """Test renew deadline must be strictly less than the lease."""
        with pytest.raises(ElectionConfigError):
            make_config(lease_duration=60.0, renew_deadline=60.0)

    @pytest.mark.parametrize("field", ["lease_duration", "renew_deadline", "retry_period"])
    def test_non_positive_durations_rejected(self, field: str) -> None:
        """Test zero durations are rejected."""
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(**{field: 0})

        assert any(field in problem for problem in exc_info.value.problems)

    @pytest.mark.parametrize("field", ["lock_name", "label_key", "selector_key", "selector_value"])
    def test_blank_names_rejected(self, field: str) -> None:
        """Test blank names are rejected."""
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(**{field: "  "})

        assert exc_info.value.problems == [f"{field} must be configured"]

    def test_all_problems_reported(self) -> None:
        """Test every problem is listed, not just the first."""
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(lock_name="", retry_period=-1.0, lease_duration=10.0, renew_deadline=20.0)

        assert len(exc_info.value.problems) == 3

    @pytest.mark.parametrize("value", ["120", None, float("nan"), float("inf"), True])
    def test_non_numeric_durations_rejected(self, value) -> None:
        """Test durations that are not finite numbers raise ElectionConfigError."""
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(lease_duration=value)

        assert exc_info.value.problems == [
            f"lease_duration must be a finite number of seconds, got {value!r}"
        ]

    def test_nan_renew_deadline_rejected(self) -> None:
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(renew_deadline=float("nan"))

        assert any("renew_deadline" in problem for problem in exc_info.value.problems)

    def test_reconcile_interval_disabled_by_default(self) -> None:
        assert make_config().reconcile_interval is None

    @pytest.mark.parametrize("value", [0, -5.0, float("nan")])
    def test_invalid_reconcile_interval_rejected(self, value) -> None:
        with pytest.raises(ElectionConfigError) as exc_info:
            make_config(reconcile_interval=value)

        assert any("reconcile_interval" in problem for problem in exc_info.value.problems)


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (90, 90.0),
            (1.5, 1.5),
            ("90", 90.0),
            ("90s", 90.0),
            ("1500ms", 1.5),
            ("2m", 120.0),
            ("1h", 3600.0),
            (" 5 S ", 5.0),
        ],
    )
    def test_valid_durations(self, value, expected: float) -> None:
        assert parse_duration(value) == expected

    @pytest.mark.parametrize(
        "value", ["", "soon", "5d", "-5s", True, None, float("nan"), float("inf")]
    )
    def test_invalid_durations(self, value) -> None:
        with pytest.raises(ValueError):
            parse_duration(value)


class TestElectorSettings:
    """Tests for ElectorSettings."""

    def test_from_env(self, settings_env: dict[str, str]) -> None:
        """Test loading a complete environment."""
        settings = ElectorSettings.from_env(settings_env)

        assert settings.identity == "web-0"
        assert settings.namespace == "default"
        assert settings.lock_name == "web-leader"
        assert settings.lease_duration == 120.0
        assert settings.leader_info_config_map is None
        assert settings.enable_tracing is True

    def test_durations_with_units(self, settings_env: dict[str, str]) -> None:
        settings_env.update(
            {
                "ELECTOR_LEASE_DURATION": "2m",
                "ELECTOR_RENEW_DEADLINE": "30s",
                "ELECTOR_RETRY_PERIOD": "500ms",
            }
        )

        settings = ElectorSettings.from_env(settings_env)

        assert settings.lease_duration == 120.0
        assert settings.renew_deadline == 30.0
        assert settings.retry_period == 0.5

    def test_missing_variables_listed(self) -> None:
        """Test every missing variable is reported with its env name."""
        with pytest.raises(ElectionConfigError) as exc_info:
            ElectorSettings.from_env({"POD_NAME": "web-0"})

        message = str(exc_info.value)
        assert "POD_NAMESPACE" in message
        assert "ELECTOR_LOCK_NAME" in message
        assert "ELECTOR_SELECTOR_VALUE" in message
        assert "POD_NAME)" not in message

    def test_empty_variables_treated_as_unset(self, settings_env: dict[str, str]) -> None:
        settings_env["POD_NAMESPACE"] = ""

        with pytest.raises(ElectionConfigError) as exc_info:
            ElectorSettings.from_env(settings_env)

        assert "POD_NAMESPACE" in str(exc_info.value)

    def test_timing_order_rejected(self, settings_env: dict[str, str]) -> None:
        """Test lease 120s with renew deadline 200s is rejected."""
        settings_env["ELECTOR_RENEW_DEADLINE"] = "200"

        with pytest.raises(ElectionConfigError) as exc_info:
            ElectorSettings.from_env(settings_env)

        assert "renew_deadline" in str(exc_info.value)

    def test_invalid_duration_rejected(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_RETRY_PERIOD"] = "often"

        with pytest.raises(ElectionConfigError) as exc_info:
            ElectorSettings.from_env(settings_env)

        assert "ELECTOR_RETRY_PERIOD" in str(exc_info.value)

    def test_tracing_flag(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_ENABLE_TRACING"] = "false"

        assert ElectorSettings.from_env(settings_env).enable_tracing is False

    def test_registry_key_default(self, settings_env: dict[str, str]) -> None:
        settings = ElectorSettings.from_env(settings_env)

        assert settings.registry_key == "web-leader-lock-registry"

    def test_registry_key_override(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_LOCK_REGISTRY_KEY"] = "locks"

        assert ElectorSettings.from_env(settings_env).registry_key == "locks"

    def test_to_election_config(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_RENEW_DEADLINE"] = "45"

        config = ElectorSettings.from_env(settings_env).to_election_config()

        assert config == ElectionConfig(
            lock_name="web-leader",
            label_key="example.com/leader",
            selector_key="app",
            selector_value="web",
            lease_duration=120.0,
            renew_deadline=45.0,
            retry_period=5.0,
            reconcile_interval=5.0,
        )

    def test_is_frozen(self, settings_env: dict[str, str]) -> None:
        settings = ElectorSettings.from_env(settings_env)

        with pytest.raises(Exception):
            settings.identity = "web-9"  # type: ignore[misc]

    def test_reconcile_interval_from_env(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_RECONCILE_INTERVAL"] = "30s"

        config = ElectorSettings.from_env(settings_env).to_election_config()

        assert config.reconcile_interval == 30.0

    def test_reconcile_interval_zero_disables(self, settings_env: dict[str, str]) -> None:
        settings_env["ELECTOR_RECONCILE_INTERVAL"] = "0"

        config = ElectorSettings.from_env(settings_env).to_election_config()

        assert config.reconcile_interval is None
