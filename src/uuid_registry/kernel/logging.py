"""
Structured logging for the UUID registry.

Every log line emitted during a backfill run carries that run's ``run_id``
(bound through structlog's contextvars), so a scheduled pass can be
followed across every table it touches and told apart from the next one.
uuid values are rendered in their canonical text form and patient
identifiers are redacted before anything is written.
"""

import logging
import os
import secrets
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog

# Event keys that may carry patient identifiers or credentials
REDACTED_FIELDS = frozenset({"pid", "patient_id", "ssn", "password", "token", "secret"})


def new_run_id() -> str:
    """Random 12-character hex tag for one backfill run"""
    return secrets.token_hex(6)


@contextmanager
def backfill_run() -> Iterator[str]:
    """
    Bind a fresh run id for the duration of the block

    The previous binding (if any) is restored on exit, so log lines
    written between runs are not attributed to the last one.
    """
    run_id = new_run_id()
    with structlog.contextvars.bound_contextvars(run_id=run_id):
        yield run_id


def current_run_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("run_id")


def render_uuid_bytes(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Show 16-byte values as canonical uuid strings instead of raw bytes."""
    for key, value in event_dict.items():
        if isinstance(value, bytes) and len(value) == 16:
            event_dict[key] = str(uuid.UUID(bytes=value))
    return event_dict


def redact_phi(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Replace the values of REDACTED_FIELDS so they never reach the output."""
    for key in REDACTED_FIELDS.intersection(event_dict):
        event_dict[key] = "***REDACTED***"
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    log_level: str = "INFO",
) -> None:
    """
    Configure structured logging for the application.

    Args:
        json_output: If True, output JSON logs (for production).
                    If False, output human-readable console logs (for development).
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=level,
    )

    # Flask's request log is noise next to the health endpoints
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        render_uuid_bytes,
        redact_phi,
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def is_production() -> bool:
    """ENVIRONMENT=production selects JSON logs and drops stack traces."""
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


class LogOperation:
    """
    Log the start and end of a registry operation with its duration

    Results known only at the end (rows backfilled, tables skipped) are
    attached with ``note()`` and appear on the completion line.

    Example:
        with LogOperation(logger, "create_missing_uuids", table_name="lists") as op:
            op.note(uuids_added=engine.run())
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.outcome: dict[str, Any] = {}
        self.start_time: float = 0.0

    def note(self, **fields: Any) -> None:
        self.outcome.update(fields)

    def __enter__(self) -> "LogOperation":
        self.start_time = time.perf_counter()
        self.logger.info(f"{self.operation} started", operation=self.operation, **self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is None:
            self.logger.info(
                f"{self.operation} completed",
                operation=self.operation,
                duration_ms=duration_ms,
                **{**self.context, **self.outcome},
            )
        else:
            # Stack traces only in development
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error=str(exc_val),
                exc_info=not is_production(),
                **self.context,
            )
