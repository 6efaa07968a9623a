"""booking_ops.ingest

Mutation side of the pipeline.  Every command takes the current OpsState
and returns a new one (plus a summary); the input state is never
modified in place.

Booking paste ingestion:
  1. parse the paste (rows + line errors)
  2. skip rows whose (email, bookingNo) key is already known, including
     keys added earlier in the same paste
  3. auto-create unknown accounts and hotels when enabled
  4. append the booking with a fresh id and a hotel-name snapshot
  5. audit every created entity and every parse error; cap the log

The TECH-block sweep (apply_tech_blocks) writes behavioural blocks back
into the manual status so they survive threshold changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any

from booking_ops.derive import DerivedModel, derive_model
from booking_ops.models import (
    ACCOUNT_ACTIVE,
    ACCOUNT_BLOCKED,
    HOTEL_BLOCK,
    HOTEL_OK,
    Account,
    AuditEntry,
    Booking,
    Hotel,
    OpsState,
    Sale,
    SpecialReward,
    normalize_account_status,
    normalize_hotel_status,
)
from booking_ops.normalize import (
    derive_stable_hotel_id,
    is_iso_date_like,
    normalize_money,
    normalize_reward_type,
    normalize_status,
    safe_lower,
)
from booking_ops.parsers import (
    LineError,
    parse_accounts_paste,
    parse_blocked_paste,
    parse_paste,
    parse_spent_paste,
)
from booking_ops.settings import Settings
from booking_ops.shared import append_audit, cap_audit, new_id, now_iso, today_iso

log = logging.getLogger(__name__)

NOTE_AUTO_CREATED = "AUTO_CREATED_FROM_IMPORT"
NOTE_TECH_BLOCK = "TECH_BLOCK"
NOTE_RAW_IMPORT = "RAW_IMPORT"
NOTE_MASS_BLOCK = "MASS_BLOCK"
NOTE_MASS_BLOCK_IMPORT = "MASS_BLOCK_IMPORT"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class IngestError(ValueError):
    """Raised when a manual command targets an unknown entity or bad value."""


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

@dataclass
class ImportSummary:
    added: int = 0
    dup_skipped: int = 0
    acc_created: int = 0
    hotel_created: int = 0
    errors: list[LineError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "dupSkipped": self.dup_skipped,
            "accCreated": self.acc_created,
            "hotelCreated": self.hotel_created,
            "errors": len(self.errors),
        }


@dataclass
class PasteSummary:
    """Counters for the account, spend and block-list pastes."""

    added: int = 0
    updated: int = 0
    errors: list[LineError] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"added": self.added, "updated": self.updated, "errors": len(self.errors)}


def _append_note(notes: str, marker: str) -> str:
    return f"{notes or ''} {marker}".strip()


def _audit_parse_errors(audit: list[AuditEntry], errors: list[LineError], source: str, at: str) -> None:
    for err in errors:
        append_audit(audit, "PARSE_ERROR", f"{source} line {err.line} skipped: {err.raw}", at)
    if errors:
        log.warning("%s paste: %d line(s) could not be parsed", source, len(errors))


# ---------------------------------------------------------------------------
# Booking paste
# ---------------------------------------------------------------------------

def ingest_booking_paste(
    state: OpsState,
    text: str,
    now: str | None = None,
    today: date | None = None,
) -> tuple[OpsState, ImportSummary]:
    """Merge a booking paste into the collections."""
    settings = state.settings
    now = now or now_iso()
    parsed = parse_paste(text, settings.reward_types)
    summary = ImportSummary(errors=list(parsed.errors))

    accounts = list(state.accounts)
    hotels = list(state.hotels)
    bookings = list(state.bookings)
    audit = list(state.audit)

    known_emails = {a.email_key for a in accounts}
    hotel_index = {h.hotel_id: i for i, h in enumerate(hotels)}
    hotel_id_by_name = {safe_lower(h.name): h.hotel_id for h in hotels if h.name}
    booking_keys = {b.dedup_key for b in bookings}

    def add_hotel(hotel_id: str, name: str) -> None:
        hotel = Hotel(hotel_id=hotel_id, name=name or hotel_id, manual_status=HOTEL_OK,
                      notes=NOTE_AUTO_CREATED)
        hotel_index[hotel_id] = len(hotels)
        hotels.append(hotel)
        hotel_id_by_name.setdefault(safe_lower(hotel.name), hotel_id)
        summary.hotel_created += 1
        append_audit(audit, "HOTEL_CREATE", f"Hotel auto-created: {hotel_id} {hotel.name}", now)

    for row in parsed.rows:
        key = (safe_lower(row.email), str(row.booking_no))
        if key in booking_keys:
            summary.dup_skipped += 1
            log.debug("Duplicate booking skipped: %s / %s", row.email, row.booking_no)
            continue

        if row.email not in known_emails and settings.auto_create_from_import:
            accounts.append(Account(
                email=row.email,
                password="",
                manual_status=ACCOUNT_ACTIVE,
                notes=NOTE_AUTO_CREATED,
                created_at=today_iso(today),
            ))
            known_emails.add(row.email)
            summary.acc_created += 1
            append_audit(audit, "ACCOUNT_CREATE", f"Account auto-created: {row.email}", now)

        hotel_id = (row.hotel_id or "").strip()
        hotel_name = (row.hotel_name or "").strip()
        if not hotel_id and hotel_name:
            hotel_id = hotel_id_by_name.get(safe_lower(hotel_name), "")

        if hotel_id:
            if hotel_id not in hotel_index:
                if settings.auto_create_from_import:
                    add_hotel(hotel_id, hotel_name)
            elif hotel_name:
                idx = hotel_index[hotel_id]
                existing = hotels[idx]
                if not existing.name.strip() or existing.name == existing.hotel_id:
                    hotels[idx] = replace(existing, name=hotel_name)
                    hotel_id_by_name.setdefault(safe_lower(hotel_name), hotel_id)
        elif settings.auto_create_from_import:
            hotel_id = derive_stable_hotel_id(hotel_name)
            if hotel_id not in hotel_index:
                add_hotel(hotel_id, hotel_name)

        bookings.append(Booking(
            booking_id=new_id(),
            created_at=row.created_at,
            email=row.email,
            booking_no=row.booking_no,
            pin=row.pin,
            hotel_id=hotel_id or row.hotel_id or "",
            hotel_name_snapshot=hotel_name or hotel_id or "",
            cost=row.cost,
            check_in=row.check_in,
            check_out=row.check_out,
            promo_code=row.promo_code or "",
            reward_amount=row.reward_amount,
            reward_currency=row.reward_currency or "USD",
            reward_type=row.reward_type or "Booking",
            airline=row.airline or "",
            status=row.status,
            level=row.level or "",
            reward_paid_on=row.reward_paid_on or "",
            note=row.note or "",
            raw=row.raw or "",
        ))
        booking_keys.add(key)
        summary.added += 1
        append_audit(
            audit, "BOOKING_ADD",
            f"Booking added: {row.email} / {row.booking_no} / {row.status}", now,
        )

    _audit_parse_errors(audit, summary.errors, "Booking", now)
    log.info(
        "Booking paste: added=%d dup_skipped=%d acc_created=%d hotel_created=%d errors=%d",
        summary.added, summary.dup_skipped, summary.acc_created,
        summary.hotel_created, len(summary.errors),
    )
    next_state = state.evolve(
        accounts=accounts,
        hotels=hotels,
        bookings=bookings,
        audit=cap_audit(audit),
        last_import={"at": now, **summary.to_dict()},
    )
    return next_state, summary


# ---------------------------------------------------------------------------
# Account / spend / block-list pastes
# ---------------------------------------------------------------------------

def ingest_accounts_paste(
    state: OpsState,
    text: str,
    now: str | None = None,
    today: date | None = None,
) -> tuple[OpsState, PasteSummary]:
    """Add unknown accounts; refresh the password of known ones."""
    now = now or now_iso()
    parsed = parse_accounts_paste(text)
    summary = PasteSummary(errors=list(parsed.errors))
    accounts = list(state.accounts)
    audit = list(state.audit)
    index = {a.email_key: i for i, a in enumerate(accounts)}

    for row in parsed.rows:
        if row.email in index:
            if row.password:
                idx = index[row.email]
                accounts[idx] = replace(accounts[idx], password=row.password)
                summary.updated += 1
            continue
        index[row.email] = len(accounts)
        accounts.append(Account(
            email=row.email,
            password=row.password,
            manual_status=ACCOUNT_ACTIVE,
            notes=NOTE_RAW_IMPORT,
            created_at=today_iso(today),
        ))
        summary.added += 1

    if summary.added or summary.updated:
        append_audit(
            audit, "ACCOUNT_IMPORT",
            f"Accounts imported: added={summary.added} updated={summary.updated}", now,
        )
    _audit_parse_errors(audit, summary.errors, "Accounts", now)
    return state.evolve(accounts=accounts, audit=cap_audit(audit)), summary


def ingest_spend_paste(
    state: OpsState,
    text: str,
    now: str | None = None,
) -> tuple[OpsState, PasteSummary]:
    """Append one Sale per valid spend row."""
    now = now or now_iso()
    parsed = parse_spent_paste(text)
    summary = PasteSummary(errors=list(parsed.errors))
    sales = list(state.sales)
    audit = list(state.audit)
    for row in parsed.rows:
        sales.append(Sale(id=new_id(), date=row.date, email=row.email, amount=row.amount, note=row.note))
        summary.added += 1
    if summary.added:
        append_audit(audit, "SPEND_ADD", f"Spend rows imported: {summary.added}", now)
    _audit_parse_errors(audit, summary.errors, "Spend", now)
    return state.evolve(sales=sales, audit=cap_audit(audit)), summary


def ingest_blocked_paste(
    state: OpsState,
    text: str,
    now: str | None = None,
    today: date | None = None,
) -> tuple[OpsState, PasteSummary]:
    """Mark every listed email Blocked, creating accounts that are unknown."""
    now = now or now_iso()
    parsed = parse_blocked_paste(text)
    summary = PasteSummary(errors=list(parsed.errors))
    accounts = list(state.accounts)
    audit = list(state.audit)
    index = {a.email_key: i for i, a in enumerate(accounts)}

    for email in parsed.rows:
        if email in index:
            idx = index[email]
            acc = accounts[idx]
            notes = acc.notes if NOTE_MASS_BLOCK in (acc.notes or "") else _append_note(acc.notes, NOTE_MASS_BLOCK)
            accounts[idx] = replace(acc, manual_status=ACCOUNT_BLOCKED, notes=notes)
            summary.updated += 1
        else:
            index[email] = len(accounts)
            accounts.append(Account(
                email=email,
                password="",
                manual_status=ACCOUNT_BLOCKED,
                notes=NOTE_MASS_BLOCK_IMPORT,
                created_at=today_iso(today),
            ))
            summary.added += 1
        append_audit(audit, "MASS_BLOCK", f"Mass block: {email}", now)

    _audit_parse_errors(audit, summary.errors, "Block list", now)
    return state.evolve(accounts=accounts, audit=cap_audit(audit)), summary


# ---------------------------------------------------------------------------
# Manual entries and edits
# ---------------------------------------------------------------------------

def add_special_reward(
    state: OpsState,
    email: str,
    amount: Any,
    promo: str = "",
    today: date | None = None,
) -> OpsState:
    key = safe_lower(email)
    value = normalize_money(amount)
    if "@" not in key or value <= 0:
        raise IngestError("Promo reward needs a valid email and a positive amount.")
    reward = SpecialReward(
        id=new_id(), email=key, amount=value,
        promo=(promo or "").strip() or "PROMO", created_at=today_iso(today),
    )
    audit = list(state.audit)
    append_audit(audit, "PROMO_ADD", f"Promo reward added: {key} {value}")
    return state.evolve(
        special_rewards=[*state.special_rewards, reward], audit=cap_audit(audit)
    )


def add_sale(state: OpsState, spent_on: str, email: str, amount: Any, note: str = "") -> OpsState:
    key = safe_lower(email)
    if not is_iso_date_like(spent_on) or "@" not in key:
        raise IngestError("Spend entry needs an ISO date and a valid email.")
    sale = Sale(id=new_id(), date=spent_on, email=key, amount=normalize_money(amount), note=note or "")
    audit = list(state.audit)
    append_audit(audit, "SPEND_ADD", f"Spend added: {key} {sale.amount}")
    return state.evolve(sales=[*state.sales, sale], audit=cap_audit(audit))


_ACCOUNT_FIELDS = {"password", "manual_status", "notes"}
_HOTEL_FIELDS = {"name", "manual_status", "notes"}
_BOOKING_FIELDS = {
    "status", "reward_amount", "reward_currency", "reward_type", "reward_paid_on",
    "airline", "level", "promo_code", "note", "pin", "check_in", "check_out", "cost",
}


def _check_fields(patch: dict[str, Any], allowed: set[str], entity: str) -> None:
    unknown = set(patch) - allowed
    if unknown:
        raise IngestError(f"Cannot edit {entity} field(s): {sorted(unknown)}")


def update_account(state: OpsState, email: str, /, **patch: Any) -> OpsState:
    _check_fields(patch, _ACCOUNT_FIELDS, "account")
    key = safe_lower(email)
    accounts = list(state.accounts)
    for idx, acc in enumerate(accounts):
        if acc.email_key == key:
            if "manual_status" in patch:
                patch["manual_status"] = normalize_account_status(patch["manual_status"])
            accounts[idx] = replace(acc, **patch)
            break
    else:
        raise IngestError(f"Unknown account: {email}")
    audit = list(state.audit)
    append_audit(audit, "ACCOUNT_EDIT", f"Account edited: {key} {sorted(patch)}")
    return state.evolve(accounts=accounts, audit=cap_audit(audit))


def update_hotel(state: OpsState, hotel_id: str, /, **patch: Any) -> OpsState:
    _check_fields(patch, _HOTEL_FIELDS, "hotel")
    hotels = list(state.hotels)
    for idx, hotel in enumerate(hotels):
        if hotel.hotel_id == hotel_id:
            if "manual_status" in patch:
                patch["manual_status"] = normalize_hotel_status(patch["manual_status"])
            hotels[idx] = replace(hotel, **patch)
            break
    else:
        raise IngestError(f"Unknown hotel: {hotel_id}")
    audit = list(state.audit)
    append_audit(audit, "HOTEL_EDIT", f"Hotel edited: {hotel_id} {sorted(patch)}")
    return state.evolve(hotels=hotels, audit=cap_audit(audit))


def update_booking(state: OpsState, booking_id: str, /, **patch: Any) -> OpsState:
    _check_fields(patch, _BOOKING_FIELDS, "booking")
    if "status" in patch:
        patch["status"] = normalize_status(patch["status"])
    for money_field in ("reward_amount", "cost"):
        if money_field in patch:
            patch[money_field] = normalize_money(patch[money_field])
    if "reward_type" in patch:
        patch["reward_type"] = normalize_reward_type(patch["reward_type"], state.settings.reward_types)
    bookings = list(state.bookings)
    for idx, booking in enumerate(bookings):
        if booking.booking_id == booking_id:
            bookings[idx] = replace(booking, **patch)
            break
    else:
        raise IngestError(f"Unknown booking: {booking_id}")
    audit = list(state.audit)
    append_audit(audit, "BOOKING_EDIT", f"Booking edited: {booking_id} {sorted(patch)}")
    return state.evolve(bookings=bookings, audit=cap_audit(audit))


def update_settings(state: OpsState, patch: dict[str, Any]) -> OpsState:
    """Overlay a (camelCase or snake_case) patch; bad numbers keep the old value."""
    settings = Settings.from_dict(patch, base=state.settings)
    audit = list(state.audit)
    append_audit(audit, "SETTINGS_UPDATE", f"Settings updated: {sorted(patch)}")
    return state.evolve(settings=settings, audit=cap_audit(audit))


# ---------------------------------------------------------------------------
# TECH-block sweep
# ---------------------------------------------------------------------------

def apply_tech_blocks(
    state: OpsState,
    model: DerivedModel | None = None,
    now: str | None = None,
    today: date | None = None,
) -> tuple[OpsState, int]:
    """Persist TECH blocks as manual blocks.

    Returns the (possibly unchanged) state and the number of entities
    written.  Entities already manually blocked are skipped, so a second
    run on the same data changes nothing.
    """
    if not state.settings.auto_write_tech_blocks:
        return state, 0
    model = model or derive_model(state, today=today)
    tech_accounts = {a.email_key for a in model.accounts if a.tech_blocked and not a.manual_blocked}
    tech_hotels = {h.hotel_id for h in model.hotels if h.tech_blocked and not h.manual_blocked}
    if not tech_accounts and not tech_hotels:
        return state, 0

    now = now or now_iso()
    audit = list(state.audit)
    changed = 0

    accounts = list(state.accounts)
    for idx, acc in enumerate(accounts):
        if acc.email_key in tech_accounts and acc.manual_status != ACCOUNT_BLOCKED:
            accounts[idx] = replace(
                acc, manual_status=ACCOUNT_BLOCKED, notes=_append_note(acc.notes, NOTE_TECH_BLOCK)
            )
            changed += 1
            append_audit(audit, "AUTO_BLOCK_ACCOUNT", f"TECH block -> manual Blocked: {acc.email}", now)

    hotels = list(state.hotels)
    for idx, hotel in enumerate(hotels):
        if hotel.hotel_id in tech_hotels and hotel.manual_status != HOTEL_BLOCK:
            hotels[idx] = replace(
                hotel, manual_status=HOTEL_BLOCK, notes=_append_note(hotel.notes, NOTE_TECH_BLOCK)
            )
            changed += 1
            append_audit(
                audit, "AUTO_BLOCK_HOTEL",
                f"TECH block -> manual BLOCK: {hotel.hotel_id} {hotel.name}", now,
            )

    if not changed:
        return state, 0
    log.info("TECH-block sweep wrote %d block(s)", changed)
    return state.evolve(accounts=accounts, hotels=hotels, audit=cap_audit(audit)), changed
