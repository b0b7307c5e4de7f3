"""
Prometheus metrics collection for the UUID registry.

Tracks identifier issuance, collisions, and backfill progress so that a
stalled or misbehaving maintenance job is visible from the outside.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Identifier Issuance Metrics
# ============================================================================

identifiers_generated_total = Counter(
    "uuid_registry_identifiers_generated_total",
    "Total number of candidate identifiers generated",
    ["path"],  # path: single, batch
)

collisions_total = Counter(
    "uuid_registry_collisions_total",
    "Total number of candidate identifiers rejected because they were already in use",
    ["location"],  # location: registry, table, documents, batch
)

probe_rounds_total = Counter(
    "uuid_registry_probe_rounds_total",
    "Total number of supplemental batch probe rounds caused by collisions",
)

records_inserted_total = Counter(
    "uuid_registry_records_inserted_total",
    "Total number of rows appended to the registry table",
    ["table_name"],
)

# ============================================================================
# Backfill Metrics
# ============================================================================

backfill_rows_total = Counter(
    "uuid_registry_backfill_rows_total",
    "Total number of existing rows that received a uuid from backfill",
    ["table_name"],
)

backfill_duration_seconds = Histogram(
    "uuid_registry_backfill_duration_seconds",
    "Duration of a single-table backfill in seconds",
    ["table_name"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0),
)

tables_missing_uuids = Gauge(
    "uuid_registry_tables_missing_uuids",
    "Rows still missing a uuid, as last counted",
    ["table_name"],
)

operation_duration_seconds = Histogram(
    "uuid_registry_operation_duration_seconds",
    "Duration of registry operations in seconds",
    ["operation", "status"],  # status: success, failure
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, 600.0),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_operation_duration(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track how long an operation takes and whether it failed.

    Args:
        operation: Operation name used as metric label

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(
                    operation=operation, status=status
                ).observe(time.perf_counter() - start)

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)
