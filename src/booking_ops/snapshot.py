"""booking_ops.snapshot

JSON snapshot export/import.

Export shape (per-account embedding, joined on lowercased email):

    {exportedAt, settings, hotels[], specialRewards[],
     accounts: [{...account, bookings: [...], sales: [...]}]}

The state file written by the CLI is the same document plus ``audit``
and ``lastImport``, so a snapshot and a state file are interchangeable.
Bookings or sales whose email has no account are kept under
``orphanBookings``/``orphanSales`` so nothing is lost on a round trip.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from booking_ops.models import (
    AUDIT_LIMIT,
    Account,
    AuditEntry,
    Booking,
    Hotel,
    OpsState,
    Sale,
    SpecialReward,
)
from booking_ops.normalize import safe_lower
from booking_ops.settings import Settings, SettingsValidationError
from booking_ops.shared import now_iso

log = logging.getLogger(__name__)


class SnapshotImportError(ValueError):
    """Raised when a snapshot payload cannot be adopted."""


def export_state_by_email(state: OpsState, exported_at: str | None = None) -> dict[str, Any]:
    bookings_by_email: dict[str, list[dict[str, Any]]] = {}
    for b in state.bookings:
        bookings_by_email.setdefault(b.email_key, []).append(b.to_dict())
    sales_by_email: dict[str, list[dict[str, Any]]] = {}
    for s in state.sales:
        sales_by_email.setdefault(safe_lower(s.email), []).append(s.to_dict())

    known = {a.email_key for a in state.accounts}
    accounts = [
        {
            **acc.to_dict(),
            "bookings": bookings_by_email.get(acc.email_key, []),
            "sales": sales_by_email.get(acc.email_key, []),
        }
        for acc in state.accounts
    ]
    payload: dict[str, Any] = {
        "exportedAt": exported_at or now_iso(),
        "settings": state.settings.to_dict(),
        "hotels": [h.to_dict() for h in state.hotels],
        "specialRewards": [r.to_dict() for r in state.special_rewards],
        "accounts": accounts,
    }
    orphan_bookings = [b.to_dict() for b in state.bookings if b.email_key not in known]
    orphan_sales = [s.to_dict() for s in state.sales if safe_lower(s.email) not in known]
    if orphan_bookings:
        payload["orphanBookings"] = orphan_bookings
    if orphan_sales:
        payload["orphanSales"] = orphan_sales
    return payload


def _dict_list(payload: dict[str, Any], key: str) -> list[dict[str, Any]]:
    value = payload.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def import_snapshot(payload: Any, current: OpsState | None = None) -> OpsState:
    """Build a new OpsState from an export payload.

    Raises SnapshotImportError when ``accounts`` is missing or the payload
    is malformed; ``current`` is never touched.  Missing optional sections
    fall back to the ones on ``current``.
    """
    current = current or OpsState()
    if not isinstance(payload, dict) or not isinstance(payload.get("accounts"), list):
        raise SnapshotImportError("Snapshot must be an object with an 'accounts' list.")

    try:
        settings = (
            Settings.from_dict(payload["settings"])
            if isinstance(payload.get("settings"), dict)
            else current.settings
        )
    except SettingsValidationError as exc:
        raise SnapshotImportError(f"Invalid settings in snapshot: {exc}") from exc

    accounts: list[Account] = []
    bookings: list[Booking] = []
    sales: list[Sale] = []
    for item in payload["accounts"]:
        if not isinstance(item, dict):
            raise SnapshotImportError("Every entry in 'accounts' must be an object.")
        accounts.append(Account.from_dict(item))
        bookings.extend(Booking.from_dict(b) for b in item.get("bookings") or [] if isinstance(b, dict))
        sales.extend(Sale.from_dict(s) for s in item.get("sales") or [] if isinstance(s, dict))
    bookings.extend(Booking.from_dict(b) for b in _dict_list(payload, "orphanBookings"))
    sales.extend(Sale.from_dict(s) for s in _dict_list(payload, "orphanSales"))

    hotels = (
        [Hotel.from_dict(h) for h in _dict_list(payload, "hotels")]
        if isinstance(payload.get("hotels"), list)
        else list(current.hotels)
    )
    special_rewards = (
        [SpecialReward.from_dict(r) for r in _dict_list(payload, "specialRewards")]
        if isinstance(payload.get("specialRewards"), list)
        else list(current.special_rewards)
    )
    audit = (
        [AuditEntry.from_dict(e) for e in _dict_list(payload, "audit")][-AUDIT_LIMIT:]
        if isinstance(payload.get("audit"), list)
        else list(current.audit)
    )
    last_import = payload.get("lastImport") if isinstance(payload.get("lastImport"), dict) else None

    return current.evolve(
        settings=settings,
        accounts=accounts,
        hotels=hotels,
        bookings=bookings,
        sales=sales,
        special_rewards=special_rewards,
        audit=audit,
        last_import=last_import,
    )


# ---------------------------------------------------------------------------
# State file
# ---------------------------------------------------------------------------

def state_to_document(state: OpsState) -> dict[str, Any]:
    doc = export_state_by_email(state)
    doc["audit"] = [e.to_dict() for e in state.audit]
    doc["lastImport"] = state.last_import
    doc["version"] = state.version
    return doc


def load_state(path: Path) -> OpsState:
    """Read a state file; a missing file yields an empty state."""
    if not path.exists():
        log.info("State file %s not found; starting empty", path)
        return OpsState()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SnapshotImportError(f"State file {path} is not valid JSON: {exc}") from exc
    state = import_snapshot(payload)
    version = payload.get("version")
    if isinstance(version, int):
        state = state.evolve(version=version)
    return state


def save_state(state: OpsState, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(state_to_document(state), indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)
    return path
