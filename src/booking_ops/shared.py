"""booking_ops.shared

Shared utilities used by the importers, the controller and the CLI.
Includes id/clock helpers, the capped audit log, RejectWriter for
line-level parse errors, and run-report writing.
"""

from __future__ import annotations

import csv
import json
import logging
import uuid
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from booking_ops.models import AUDIT_LIMIT, AuditEntry

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Ids and clocks
# ---------------------------------------------------------------------------

def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def today_iso(today: date | None = None) -> str:
    return (today or date.today()).isoformat()


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def append_audit(
    audit: list[AuditEntry],
    entry_type: str,
    msg: str,
    at: str | None = None,
) -> None:
    """Append one entry in place.  Never raises into the caller."""
    try:
        audit.append(AuditEntry(id=new_id(), at=at or now_iso(), type=entry_type, msg=msg))
    except Exception as exc:  # advisory log only
        log.warning("Audit append failed for %s: %s", entry_type, exc)


def cap_audit(audit: list[AuditEntry], limit: int = AUDIT_LIMIT) -> list[AuditEntry]:
    """Keep the most recent ``limit`` entries, oldest evicted first."""
    if len(audit) <= limit:
        return audit
    return audit[-limit:]


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for pasted lines that failed to parse."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.count = 0

    def write(self, row: dict[str, Any], reason: str) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            fieldnames = list(row.keys()) + ["_reject_reason"]
            self._writer = csv.DictWriter(
                self._fh, fieldnames=fieldnames, extrasaction="ignore"
            )
            self._writer.writeheader()
        out = dict(row)
        out["_reject_reason"] = reason
        self._writer.writerow(out)
        self._fh.flush()
        self.count += 1

    def write_errors(self, errors: Iterable[Any], reason: str) -> None:
        for err in errors:
            self.write({"line": err.line, "raw": err.raw}, reason)

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> RejectWriter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

def write_run_report(
    report_dir: Path,
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    counters: dict[str, Any],
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": now_iso(),
        "dry_run": dry_run,
        **source_paths,
        "counters": counters,
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
