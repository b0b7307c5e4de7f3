"""
Prometheus metrics server for the UUID registry.

Runs a periodic backfill in-process and exposes its metrics at /metrics, so
a long-lived maintenance worker can be scraped between runs.

Usage:
    python -m uuid_registry.metrics_server --db emr.db --port 9090 --interval 3600
"""

import argparse
import time

from uuid_registry.kernel.audit import SQLiteAuditLog
from uuid_registry.kernel.errors import UuidRegistryError
from uuid_registry.kernel.logging import configure_logging, get_logger, is_production
from uuid_registry.kernel.metrics import start_metrics_server
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.orchestrator import BackfillOrchestrator
from uuid_registry.registry_store import RegistryStore

logger = get_logger(__name__)


def run_once(db_path: str, settings: RegistrySettings) -> int:
    """Run one backfill pass over every tracked table; returns uuids added"""
    with SQLiteStorage(db_path) as storage:
        RegistryStore(storage, settings).ensure_schema()
        audit_log = SQLiteAuditLog(storage)
        audit_log.ensure_schema()
        report = BackfillOrchestrator(
            storage, audit_log=audit_log, settings=settings
        ).populate_all_missing_uuids(skip_missing_tables=True)
    return report.total


def main() -> None:
    """
    Start the metrics endpoint and backfill on a fixed interval.

    The endpoint is served at http://0.0.0.0:<port>/metrics in Prometheus
    text format. A failed pass is logged and retried at the next interval.
    """
    parser = argparse.ArgumentParser(description="UUID Registry Metrics Server")
    parser.add_argument("--db", required=True, help="Path to the SQLite database")
    parser.add_argument(
        "--port",
        type=int,
        default=9090,
        help="Port to listen on (default: 9090)",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=3600,
        help="Seconds between backfill passes (default: 3600)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    configure_logging(json_output=is_production(), log_level=args.log_level)
    settings = RegistrySettings.from_env()

    logger.info(
        "Starting Prometheus metrics server",
        port=args.port,
        endpoint=f"http://0.0.0.0:{args.port}/metrics",
    )
    start_metrics_server(port=args.port)

    try:
        while True:
            try:
                added = run_once(args.db, settings)
                logger.info("Backfill pass finished", added=added)
            except UuidRegistryError as e:
                logger.error("Backfill pass failed", error=str(e))
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Shutting down metrics server")


if __name__ == "__main__":
    main()
