"""Logging configuration utilities."""

import logging
import sys
from enum import Enum
from typing import Any, Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars


SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "bearer",
}

REDACTED = "[REDACTED]"

_RENDERERS = {
    "json": structlog.processors.JSONRenderer,
    "console": structlog.dev.ConsoleRenderer,
}


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if str(k).lower() in SENSITIVE_KEYS else _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_scrub(v) for v in value)
    return value


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Redact sensitive fields, including those nested in mappings such as request headers."""
    return _scrub(event_dict)


def _enum_values(_, __, event_dict: dict) -> dict:
    # Action, OutcomeStatus, RunState and SyncMode log as their plain values
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    return event_dict


def _stderr_logger(*_args) -> structlog.PrintLogger:
    # Resolved per logger so a replaced sys.stderr is picked up
    return structlog.PrintLogger(file=sys.stderr)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging on stderr.

    stdout is left to command output (the `plan` listing), so logs can be
    separated from it in pipelines.
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _enum_values,
            _redact_sensitive,
            _RENDERERS.get(log_format, structlog.processors.JSONRenderer)(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def bind_run_context(run_id: Optional[str] = None, sync_mode: Optional[str] = None) -> None:
    """Start a fresh log context for one deployment run."""
    clear_contextvars()
    if run_id:
        bind_contextvars(runId=run_id)
    if sync_mode:
        bind_contextvars(syncMode=sync_mode)
