"""
Shared plumbing for the command-line scripts: common flags, settings, run log, exit codes,
and the manifest -> mutate -> outcome sequence used by every mutating command.

Exit codes: 0 success, 1 input/configuration/validation, 2 not found, 3 rolled back.
"""
import argparse
import json
import logging
import sys
import uuid
from typing import Callable, Iterable

import psycopg2

from audit.manifest import APPLIED, ROLLED_BACK, ChangeManifest, ManifestWriter
from db.mutator import Statement, TransactionalMutator
from errors import ConnectionFailed, OpsError
from logs.run_log import configure_logging, log_run
from settings import Settings

logger = logging.getLogger(__name__)


def add_db_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument("--db", default=None, help="Database URL (default: DATABASE_URL or DB_* env)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def add_mutation_args(ap: argparse.ArgumentParser) -> None:
    add_db_args(ap)
    ap.add_argument("--yes", action="store_true", help="Confirm the change (or set CONFIRM=1)")
    ap.add_argument("--dry-run", action="store_true", help="Preview only: write the manifest, roll back")


def load_settings(args, env=None) -> Settings:
    return Settings.from_env(env).with_database_url(getattr(args, "db", None))


def make_mutator(db, args, settings: Settings) -> TransactionalMutator:
    return TransactionalMutator(
        db,
        confirmed=getattr(args, "yes", False),
        dry_run=getattr(args, "dry_run", False),
        confirm_override=settings.confirm_override,
    )


def manifest_writer(settings: Settings) -> ManifestWriter:
    return ManifestWriter(settings.manifest_dir, require_audit=settings.require_audit)


def apply_with_manifest(mutator: TransactionalMutator, writer: ManifestWriter,
                        manifest: ChangeManifest, statements: Iterable[Statement]) -> int:
    """Record the manifest, run the statements, then record the outcome."""
    manifest.dry_run = mutator.dry_run
    writer.record(manifest)
    try:
        rows = mutator.run(statements)
    except OpsError as e:
        writer.update_outcome(manifest, ROLLED_BACK, error=str(e))
        raise
    writer.update_outcome(manifest, ROLLED_BACK if mutator.dry_run else APPLIED)
    return rows


def print_json(data) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def run_cli(operation: str, args, body: Callable[[Settings], int], env=None) -> int:
    """
    Configure logging, run body(settings) and map errors to exit codes.
    psycopg2 errors that escape body are reported as ConnectionFailed.
    body returns the affected row count (logged in the run log).
    """
    configure_logging(getattr(args, "verbose", False))
    run_id = uuid.uuid4().hex[:12]
    settings = None
    try:
        settings = load_settings(args, env)
        try:
            rows = body(settings)
        except psycopg2.Error as e:
            # reads outside the mutator (lookups, counts, pool checkout)
            raise ConnectionFailed(f"Database error: {str(e).strip()}") from e
    except OpsError as e:
        print(f"Error: {e}", file=sys.stderr)
        log_run(run_id, operation, "failed", error_message=str(e),
                logs_dir=settings.logs_dir if settings else None)
        return e.exit_code
    log_run(run_id, operation, "success", row_count=rows, logs_dir=settings.logs_dir)
    return 0
