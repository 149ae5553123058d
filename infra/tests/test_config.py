"""
Tests for topology configuration resolution.

Resolution order is CDK context, then environment variable, then default.
"""

from collections.abc import Callable

import aws_cdk as cdk
import pytest
from aws_cdk import aws_logs as logs
from structlog.testing import capture_logs

from stacks import config as config_module
from stacks.config import ConfigurationError, TopologyConfig
from stacks.logging import get_logger


@pytest.fixture
def resolve(monkeypatch: pytest.MonkeyPatch) -> Callable[..., TopologyConfig]:
    """Factory fixture: resolve(context=..., environ=...) -> TopologyConfig."""

    def _resolve(context: dict | None = None, environ: dict | None = None) -> TopologyConfig:
        for name, value in (environ or {}).items():
            monkeypatch.setenv(name, value)
        return TopologyConfig.from_scope(cdk.App(context=context or {}))

    return _resolve


class TestDefaults:
    """Omitted inputs fall back to their documented defaults."""

    def test_all_defaults(self, resolve):
        config = resolve()

        assert config.model_dump() == TopologyConfig().model_dump()
        assert config.container_image == "public.ecr.aws/nginx/nginx:stable"
        assert config.container_port == 80
        assert config.desired_count == 2
        assert config.domain_name == "harbor.example.com"
        assert config.hosted_zone_id is None
        assert config.alarm_email is None
        assert config.deletion_protection is True

    def test_sources_report_default(self, resolve):
        config = resolve()

        assert set(config.sources.values()) == {"default"}
        assert "container_image" in config.sources

    def test_empty_string_counts_as_unset(self, resolve):
        config = resolve(context={"container_image": ""}, environ={"CONTAINER_IMAGE": ""})

        assert config.container_image == "public.ecr.aws/nginx/nginx:stable"
        assert config.sources["container_image"] == "default"


class TestResolutionOrder:
    """Context beats environment, environment beats default."""

    def test_environment_overrides_default(self, resolve):
        config = resolve(environ={"CONTAINER_IMAGE": "registry.example.com/web:2.0"})

        assert config.container_image == "registry.example.com/web:2.0"
        assert config.sources["container_image"] == "env"

    def test_context_overrides_environment(self, resolve):
        config = resolve(
            context={"container_image": "registry.example.com/web:3.0"},
            environ={"CONTAINER_IMAGE": "registry.example.com/web:2.0"},
        )

        assert config.container_image == "registry.example.com/web:3.0"
        assert config.sources["container_image"] == "context"

    def test_only_named_key_changes(self, resolve):
        config = resolve(environ={"DESIRED_COUNT": "3"})

        assert config.desired_count == 3
        assert config.max_capacity == TopologyConfig().max_capacity
        assert config.sources["max_capacity"] == "default"

    def test_lowercase_environment_name_is_accepted(self, monkeypatch):
        monkeypatch.setenv("database_name", "orders")

        config = TopologyConfig.from_scope(cdk.App())

        assert config.database_name == "orders"


class TestCoercion:
    """String inputs are coerced to the declared types."""

    def test_int_from_string(self, resolve):
        config = resolve(context={"container_port": "8080"})

        assert config.container_port == 8080

    def test_int_from_json_context(self, resolve):
        config = resolve(context={"container_port": 8080})

        assert config.container_port == 8080

    def test_float_from_string(self, resolve):
        config = resolve(environ={"DATABASE_MAX_ACU": "8.5"})

        assert config.database_max_acu == 8.5

    @pytest.mark.parametrize("raw", ["false", "False", "0", "no", "off"])
    def test_bool_false_values(self, resolve, raw):
        config = resolve(environ={"DELETION_PROTECTION": raw})

        assert config.deletion_protection is False

    @pytest.mark.parametrize("raw", ["true", "1", "yes", "ON"])
    def test_bool_true_values(self, resolve, raw):
        config = resolve(environ={"DELETION_PROTECTION": raw})

        assert config.deletion_protection is True

    def test_invalid_int_names_key_and_source(self, resolve):
        with pytest.raises(ConfigurationError, match=r"desired_count='many' \(from env\)"):
            resolve(environ={"DESIRED_COUNT": "many"})

    def test_fractional_int_rejected(self, resolve):
        with pytest.raises(ConfigurationError, match="task_cpu"):
            resolve(context={"task_cpu": 512.5})

    def test_invalid_bool(self, resolve):
        with pytest.raises(ConfigurationError, match="deletion_protection"):
            resolve(context={"deletion_protection": "maybe"})

    def test_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestRangeChecks:
    """Out-of-range values fail before any construct is declared."""

    @pytest.mark.parametrize(
        ("context", "key"),
        [
            ({"container_port": 70000}, "container_port"),
            ({"container_port": 0}, "container_port"),
            ({"desired_count": 0}, "desired_count"),
            ({"desired_count": 4, "max_capacity": 3}, "max_capacity"),
            ({"database_min_acu": 0.25}, "database_min_acu"),
            ({"database_min_acu": 2, "database_max_acu": 1}, "database_max_acu"),
            ({"database_max_acu": 300}, "database_max_acu"),
            ({"database_min_acu": 0.7}, "database_min_acu"),
            ({"backup_retention_days": 36}, "backup_retention_days"),
            ({"log_retention_days": 31}, "log_retention_days"),
            ({"analytics_retention_hours": 12}, "analytics_retention_hours"),
            ({"health_check_path": "health"}, "health_check_path"),
        ],
    )
    def test_out_of_range(self, resolve, context, key):
        with pytest.raises(ConfigurationError, match=key):
            resolve(context=context)

    def test_message_reports_context_source(self, resolve):
        with pytest.raises(ConfigurationError, match=r"\(from context\)"):
            resolve(context={"container_port": "70000"})

    @pytest.mark.parametrize(
        "environ",
        [
            {"DATABASE_MAX_ACU": "nan"},
            {"DATABASE_MAX_ACU": "inf"},
            {"DATABASE_MIN_ACU": "nan"},
        ],
    )
    def test_non_finite_capacity_rejected(self, resolve, environ):
        with pytest.raises(ConfigurationError, match=r"database_m\w+_acu=.*\(from env\)"):
            resolve(environ=environ)

    def test_capacity_in_half_unit_steps(self, resolve):
        config = resolve(context={"database_min_acu": "1.5", "database_max_acu": 256})

        assert config.database_min_acu == 1.5
        assert config.database_max_acu == 256


class TestDerivedValues:
    def test_api_domain_name(self, resolve):
        config = resolve(context={"api_subdomain": "edge", "domain_name": "shop.example.org"})

        assert config.api_domain_name == "edge.shop.example.org"

    def test_log_retention_maps_to_enum(self, resolve):
        config = resolve(context={"log_retention_days": "90"})

        assert config.log_retention == logs.RetentionDays.THREE_MONTHS


class TestResolutionLogging:
    def test_logs_each_key_with_source(self, resolve, monkeypatch):
        monkeypatch.setattr(config_module, "logger", get_logger("test"))

        with capture_logs() as captured:
            resolve(environ={"DESIRED_COUNT": "3"})

        resolved = {entry["key"]: entry["source"] for entry in captured}
        assert resolved["desired_count"] == "env"
        assert resolved["container_image"] == "default"
        assert all(entry["event"] == "config_resolved" for entry in captured)
