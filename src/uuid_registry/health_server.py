"""
Health check HTTP server for liveness and readiness probes.

Lets the scheduler that runs periodic backfills (or a Kubernetes probe)
confirm the registry database is reachable before it starts a job.
"""

from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify

from uuid_registry.kernel.errors import StorageFailure
from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.registry_store import RegistryStore

logger = get_logger(__name__)

app = Flask(__name__)

# Set by initialize_health_server()
_db_path: Path | None = None
_settings: RegistrySettings = RegistrySettings()


def initialize_health_server(
    db_path: str | Path, settings: RegistrySettings | None = None
) -> None:
    """
    Point the health server at a registry database.

    Args:
        db_path: Path to SQLite database
        settings: Registry settings (table names); defaults if None
    """
    global _db_path, _settings
    _db_path = Path(db_path)
    _settings = settings or RegistrySettings()
    logger.info("Health server initialized", db_path=str(_db_path))


@app.after_request
def add_security_headers(response: Response) -> Response:
    """Attach conservative security headers to every response."""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    return response


def _registry_count() -> int:
    with SQLiteStorage(_db_path) as storage:  # type: ignore[arg-type]
        return RegistryStore(storage, _settings).count()


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    """Liveness probe - the process is running."""
    return jsonify({"status": "alive", "service": "uuid-registry"}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """
    Readiness probe - the registry table can be queried.

    Returns:
        200 with the registry row count, or 503 with a reason
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        count = _registry_count()
    except StorageFailure as e:
        logger.error("Readiness check failed: registry not queryable", error=str(e))
        return (
            jsonify({"status": "not_ready", "reason": "registry_unavailable", "error": str(e)}),
            503,
        )

    logger.debug("Readiness check passed", registry_count=count)
    return jsonify({"status": "ready", "database": "accessible", "registry_count": count}), 200


@app.route("/health/registry", methods=["GET"])
def registry_health() -> tuple[Response, int]:
    """
    Registry details - row count overall and per owning table.

    Returns:
        200 with counts, 503 if the registry cannot be read
    """
    if _db_path is None or not _db_path.exists():
        return jsonify({"status": "not_initialized"}), 503

    try:
        with SQLiteStorage(_db_path) as storage:
            rows = storage.execute(
                f"SELECT table_name, COUNT(*) AS total FROM {_settings.registry_table} "
                "GROUP BY table_name ORDER BY table_name"
            )
    except StorageFailure as e:
        logger.error("Registry health check failed", error=str(e))
        return jsonify({"status": "unhealthy", "error": str(e)}), 503

    by_table: dict[str, Any] = {row["table_name"] or "(untracked)": row["total"] for row in rows}
    return (
        jsonify(
            {
                "status": "healthy",
                "registry_count": sum(by_table.values()),
                "by_table": by_table,
            }
        ),
        200,
    )


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)
