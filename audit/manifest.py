"""
Before/after change manifests, written to disk before a mutation is attempted.

File: <directory>/<operation>-<subject_id>-<timestamp>.json. The timestamp has microsecond
resolution; files are created exclusively and a numeric suffix is appended on collision, so
an existing manifest is never overwritten.
"""
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from errors import ManifestWriteFailed

logger = logging.getLogger(__name__)

PENDING = "pending"
APPLIED = "applied"
ROLLED_BACK = "rolled-back"
OUTCOMES = (PENDING, APPLIED, ROLLED_BACK)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _json_default(v):
    if isinstance(v, (set, frozenset)):
        return sorted(v)
    if isinstance(v, datetime):
        return v.isoformat()
    return str(v)


@dataclass
class ChangeManifest:
    operation: str
    subject_id: Any
    subject_identity: Optional[str] = None
    before: dict = field(default_factory=dict)
    after: dict = field(default_factory=dict)
    dry_run: bool = False
    timestamp: datetime = field(default_factory=_now)
    outcome: str = PENDING
    error: Optional[str] = None
    manifest_path: Optional[Path] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("manifest_path")
        d["timestamp"] = self.timestamp.isoformat()
        return d


def _safe(part: Any) -> str:
    return re.sub(r"[^A-Za-z0-9_.@-]+", "_", str(part)).strip("_") or "none"


class ManifestWriter:
    def __init__(self, directory, require_audit: bool = False):
        self.directory = Path(directory)
        self.require_audit = require_audit

    def base_name(self, manifest: ChangeManifest) -> str:
        ts = manifest.timestamp.strftime("%Y%m%dT%H%M%S%fZ")
        return f"{_safe(manifest.operation)}-{_safe(manifest.subject_id)}-{ts}"

    def write(self, manifest: ChangeManifest) -> Path:
        """Persist a new manifest file. Raises ManifestWriteFailed."""
        payload = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False, default=_json_default)
        base = self.base_name(manifest)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            n = 0
            while True:
                name = f"{base}.json" if n == 0 else f"{base}-{n}.json"
                path = self.directory / name
                try:
                    with open(path, "x", encoding="utf-8") as f:
                        f.write(payload)
                    break
                except FileExistsError:
                    n += 1
        except OSError as e:
            raise ManifestWriteFailed(f"Could not write manifest in {self.directory}: {e}") from e
        manifest.manifest_path = path
        logger.info("Manifest saved: %s", path)
        return path

    def record(self, manifest: ChangeManifest) -> Optional[Path]:
        """
        write() plus the audit policy: dry runs continue with a warning; real runs abort
        when require_audit is set, otherwise continue with an ERROR log.
        """
        try:
            return self.write(manifest)
        except ManifestWriteFailed as e:
            if manifest.dry_run:
                logger.warning("%s (dry run, continuing)", e)
                return None
            if self.require_audit:
                raise
            logger.error("%s. Proceeding WITHOUT an audit trail (set REQUIRE_AUDIT=1 to abort).", e)
            return None

    def update_outcome(self, manifest: ChangeManifest, outcome: str, error: Optional[str] = None) -> None:
        """Rewrite the manifest with its final outcome. Failures are logged, not raised."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")
        manifest.outcome = outcome
        manifest.error = error
        if manifest.manifest_path is None:
            return
        try:
            with open(manifest.manifest_path, "w", encoding="utf-8") as f:
                json.dump(manifest.to_dict(), f, indent=2, ensure_ascii=False, default=_json_default)
        except OSError as e:
            logger.error("Could not update manifest %s: %s", manifest.manifest_path, e)
