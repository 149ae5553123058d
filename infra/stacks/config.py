"""
Configuration for the topology descriptor.

Every setting is resolved from CDK context first, then from an environment
variable named after the upper-cased key, then from the literal default:

    cdk synth -c container_image=registry.example.com/web:1.4.2
    CONTAINER_IMAGE=registry.example.com/web:1.4.2 cdk synth

Context values are passed to the settings model as init arguments, which
pydantic-settings ranks above the environment. Values given on the command
line always arrive as strings and are coerced to the declared field types.
"""

import os

from aws_cdk import aws_logs as logs
from constructs import Construct
from pydantic import Field, PrivateAttr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .logging import get_logger

logger = get_logger(__name__)

# CloudWatch Logs only accepts these retention periods
LOG_RETENTION = {
    1: logs.RetentionDays.ONE_DAY,
    3: logs.RetentionDays.THREE_DAYS,
    5: logs.RetentionDays.FIVE_DAYS,
    7: logs.RetentionDays.ONE_WEEK,
    14: logs.RetentionDays.TWO_WEEKS,
    30: logs.RetentionDays.ONE_MONTH,
    60: logs.RetentionDays.TWO_MONTHS,
    90: logs.RetentionDays.THREE_MONTHS,
    120: logs.RetentionDays.FOUR_MONTHS,
    150: logs.RetentionDays.FIVE_MONTHS,
    180: logs.RetentionDays.SIX_MONTHS,
    365: logs.RetentionDays.ONE_YEAR,
    731: logs.RetentionDays.TWO_YEARS,
    1827: logs.RetentionDays.FIVE_YEARS,
    3653: logs.RetentionDays.TEN_YEARS,
}


class ConfigurationError(ValueError):
    """A configuration value could not be coerced or is out of range."""


class TopologyConfig(BaseSettings):
    """Named inputs of the topology descriptor, with documented defaults."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------
    resource_prefix: str = Field(default="harbor", min_length=1)

    # -------------------------------------------------------------------------
    # DNS: the public hosted zone for domain_name must already exist
    # -------------------------------------------------------------------------
    domain_name: str = Field(default="harbor.example.com", min_length=1)
    hosted_zone_id: str | None = None
    api_subdomain: str = Field(default="api", min_length=1)

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------
    vpc_cidr: str = "10.0.0.0/16"

    # -------------------------------------------------------------------------
    # Container service
    # -------------------------------------------------------------------------
    container_image: str = Field(default="public.ecr.aws/nginx/nginx:stable", min_length=1)
    container_port: int = Field(default=80, ge=1, le=65535)
    health_check_path: str = Field(default="/", pattern=r"^/")
    task_cpu: int = Field(default=512, gt=0)
    task_memory_mib: int = Field(default=1024, gt=0)
    desired_count: int = Field(default=2, ge=1)
    max_capacity: int = Field(default=6, ge=1)

    # -------------------------------------------------------------------------
    # Database (Aurora Serverless v2 capacity moves in 0.5 ACU steps)
    # -------------------------------------------------------------------------
    database_name: str = Field(default="harbor", min_length=1)
    database_min_acu: float = Field(
        default=0.5, ge=0.5, le=256, multiple_of=0.5, allow_inf_nan=False
    )
    database_max_acu: float = Field(
        default=4.0, ge=0.5, le=256, multiple_of=0.5, allow_inf_nan=False
    )
    backup_retention_days: int = Field(default=7, ge=1, le=35)
    deletion_protection: bool = True

    # -------------------------------------------------------------------------
    # Observability and analytics
    # -------------------------------------------------------------------------
    log_retention_days: int = 30
    analytics_retention_hours: int = Field(default=24, ge=24, le=8760)
    alarm_email: str | None = None

    # Where each value came from: "context", "env" or "default"
    _sources: dict[str, str] = PrivateAttr(default_factory=dict)

    @field_validator("log_retention_days")
    @classmethod
    def _check_log_retention(cls, value: int) -> int:
        if value not in LOG_RETENTION:
            raise ValueError(f"must be one of {sorted(LOG_RETENTION)}")
        return value

    @model_validator(mode="after")
    def _check_ranges(self) -> "TopologyConfig":
        if self.max_capacity < self.desired_count:
            raise ValueError(
                f"max_capacity={self.max_capacity} must not be lower than "
                f"desired_count={self.desired_count}"
            )
        if self.database_max_acu < self.database_min_acu:
            raise ValueError(
                f"database_max_acu={self.database_max_acu} must not be lower than "
                f"database_min_acu={self.database_min_acu}"
            )
        return self

    @property
    def sources(self) -> dict[str, str]:
        return dict(self._sources)

    @property
    def api_domain_name(self) -> str:
        """Fully qualified name the load balancer is published under."""
        return f"{self.api_subdomain}.{self.domain_name}"

    @property
    def log_retention(self) -> logs.RetentionDays:
        return LOG_RETENTION[self.log_retention_days]

    @classmethod
    def from_scope(cls, scope: Construct) -> "TopologyConfig":
        """
        Resolve every setting from CDK context, then environment, then default.

        Args:
            scope: Construct whose node context is consulted (usually the stack)

        Raises:
            ConfigurationError: If a value cannot be coerced or is out of range
        """
        context = {}
        for key in cls.model_fields:
            value = scope.node.try_get_context(key)
            if value is not None and value != "":
                context[key] = value

        environ = {name.lower() for name, value in os.environ.items() if value}
        sources = {
            key: "context" if key in context else "env" if key in environ else "default"
            for key in cls.model_fields
        }

        try:
            config = cls(**context)
        except ValidationError as exc:
            raise ConfigurationError(_describe(exc, sources)) from exc

        config._sources = sources
        for key, source in sources.items():
            logger.debug("config_resolved", key=key, source=source)
        return config


def _describe(exc: ValidationError, sources: dict[str, str]) -> str:
    """Render validation errors as 'Invalid key=value (from source): reason'."""
    messages = []
    for error in exc.errors():
        if error["loc"]:
            key = str(error["loc"][0])
            messages.append(
                f"Invalid {key}={error['input']!r} "
                f"(from {sources.get(key, 'default')}): {error['msg']}"
            )
        else:
            messages.append(f"Invalid configuration: {error['msg']}")
    return "; ".join(messages)
