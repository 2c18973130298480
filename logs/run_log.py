"""
Run logs for the ops scripts: one JSON line per CLI run in logs/ops_runs.jsonl,
plus stdlib logging setup shared by every entry point.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
LOGS_DIR = os.path.join(ROOT, "logs")
RUN_LOG_NAME = "ops_runs.jsonl"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%H:%M:%S"


def configure_logging(verbose: bool = False) -> None:
    """Log to stderr; stdout is kept for the command's own output (JSON reports)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
    )


def ensure_logs_dir(logs_dir=None) -> Path:
    path = Path(logs_dir or LOGS_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def log_run(run_id: str, operation: str, status: str, row_count: int = None,
            error_message: str = None, logs_dir=None) -> dict:
    """Append one entry to <logs_dir>/ops_runs.jsonl."""
    entry = {
        "run_id": run_id,
        "operation": operation,
        "status": status,
        "row_count": row_count,
        "error_message": error_message,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    try:
        path = ensure_logs_dir(logs_dir) / RUN_LOG_NAME
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError as e:
        logging.getLogger(__name__).warning("Could not append run log: %s", e)
    return entry
