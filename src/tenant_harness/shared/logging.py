"""Logging configuration for tenant-harness.

Configures structlog on top of standard logging. CI runs emit JSON lines
next to the other job artifacts; local runs get the console renderer.
Events logged while an environment is active carry its namespace and user,
and private bearer tokens are masked before anything is rendered.
"""

import logging
import re
import sys
from pathlib import Path
from typing import Any

import structlog

# Libraries whose debug output drowns the provisioning log
_NOISY_LOGGERS = ("httpx", "httpcore")

_TOKEN_PATTERN = re.compile(r"sha256~[A-Za-z0-9_-]+")
_REDACTED = "sha256~<redacted>"


def redact(text: str) -> str:
    """Mask ``sha256~`` bearer tokens in ``text``."""
    return _TOKEN_PATTERN.sub(_REDACTED, text)


def redact_tokens(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask ``sha256~`` bearer tokens in string values of an event."""
    for key, value in event_dict.items():
        if isinstance(value, str) and "sha256~" in value:
            event_dict[key] = redact(value)
    return event_dict


def configure_logging(
    level: str = "info",
    log_file: str | Path | None = None,
    json_output: bool = False,
) -> None:
    """Configure logging for a harness run.

    Called once per process, usually from the test session setup or the
    ``tenant-harness`` CLI.

    Args:
        level: Log level (debug, info, warning, error, critical)
        log_file: Optional path to a log file (e.g. inside ARTIFACT_DIR)
        json_output: If True, render JSON lines instead of console output
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(str(log_file))
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    logging.basicConfig(level=log_level, handlers=[handler], format="%(message)s", force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_tokens,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_environment(namespace: str, user: str) -> None:
    """Attach the active test namespace and user to every following event."""
    structlog.contextvars.bind_contextvars(namespace=namespace, user=user)


def clear_environment() -> None:
    structlog.contextvars.unbind_contextvars("namespace", "user")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
