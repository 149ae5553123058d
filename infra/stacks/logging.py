"""
Structured logging configuration using structlog.

Synth-time logging for the CDK app. Output goes to stderr because the CDK
CLI owns stdout while it reads the synthesized assembly.

Usage:
    from stacks.logging import get_logger

    logger = get_logger(__name__)
    logger.info("topology_declared", stack="Harbor", region="us-east-1")
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor


def _drop_empty_values(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Remove keys whose value is None so unset config does not clutter output."""
    return {key: value for key, value in event_dict.items() if value is not None}


def configure_logging(json_format: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog for the CDK app.

    Uses stdlib integration so warnings from jsii and CDK share the same format.

    Args:
        json_format: If True, output JSON (CI). If False, pretty console output (local).
        log_level: Minimum log level to output.
    """
    log_level_int = getattr(logging, log_level.upper(), logging.INFO)

    pre_chain: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _drop_empty_values,
    ]

    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if json_format
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level_int)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.
    """
    return structlog.get_logger(name)
