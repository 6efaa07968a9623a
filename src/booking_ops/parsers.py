"""booking_ops.parsers

Line-oriented parsers for text pasted from the booking spreadsheets.

Booking lines are tab-separated:

    createdAt  email  bookingNo  pin  hotelId  hotelName  cost  checkIn  checkOut
    [promoCode] ... reward  status  [level] [rewardType] [rewardPaidOn] [airline]

The number of columns between checkOut and status varies, so the status
column is located first and everything else pivots on it.  Tokens after
the status are classified by what they look like, not by position.

Account and spend pastes auto-detect their delimiter (tab, ';', ',',
then whitespace).  No parser raises on bad input: a line either yields a
row or a LineError carrying its 1-based number and raw text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Sequence

from booking_ops.normalize import (
    DEFAULT_REWARD_TYPE,
    extract_genius_level,
    is_iso_date_like,
    is_known_reward_type,
    is_numeric_like,
    match_status,
    mentions_genius_level,
    normalize_email,
    normalize_money,
    normalize_reward_type,
    normalize_space,
)
from booking_ops.settings import default_reward_types

MIN_BOOKING_FIELDS = 10
# Fields 0-8 are fixed-position; the status anchor can only follow them.
FIXED_FIELDS = 9


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineError:
    line: int
    raw: str


@dataclass
class ParsedBooking:
    created_at: str
    email: str
    booking_no: str
    pin: str
    hotel_id: str
    hotel_name: str
    cost: Decimal
    check_in: str
    check_out: str
    promo_code: str = ""
    reward_amount: Decimal = Decimal("0")
    reward_currency: str = "USD"
    status: str = "Pending"
    level: str = ""
    reward_type: str = DEFAULT_REWARD_TYPE
    airline: str = ""
    reward_paid_on: str = ""
    note: str = ""
    raw: str = ""


@dataclass
class ParseResult:
    rows: list[Any] = field(default_factory=list)
    errors: list[LineError] = field(default_factory=list)


@dataclass(frozen=True)
class AccountRow:
    email: str
    password: str


@dataclass(frozen=True)
class SpendRow:
    date: str
    email: str
    amount: Decimal
    note: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _lines(text: str | None) -> list[str]:
    """Non-blank, trimmed lines of a paste block."""
    return [ln.strip() for ln in re.split(r"\r?\n", text or "") if ln.strip()]


def split_delimited(raw: str) -> list[str]:
    """Split on the first delimiter present: tab, ';', ',', else whitespace."""
    for delim in ("\t", ";", ","):
        if delim in raw:
            return raw.split(delim)
    return raw.split()


def _classify_tail(tail: Sequence[str], reward_types) -> tuple[str, str, list[str]]:
    """Return (reward_type, reward_paid_on, remainder) for post-status tokens.

    Priority per token: ISO date, then configured reward type, else
    remainder.  Later matches of the same kind overwrite earlier ones.
    """
    reward_type = DEFAULT_REWARD_TYPE
    reward_paid_on = ""
    remainder: list[str] = []
    for tok in tail:
        if is_iso_date_like(tok):
            reward_paid_on = tok
            continue
        if is_known_reward_type(tok, reward_types):
            reward_type = normalize_reward_type(tok, reward_types)
            continue
        remainder.append(tok)
    return reward_type, reward_paid_on, remainder


# ---------------------------------------------------------------------------
# Booking lines
# ---------------------------------------------------------------------------

def find_status_index(parts: Sequence[str]) -> int:
    for idx in range(FIXED_FIELDS, len(parts)):
        if match_status(parts[idx]) is not None:
            return idx
    return -1


def parse_booking_line(line: str | None, reward_types=None) -> ParsedBooking | None:
    """Parse one tab-separated booking line; None when it cannot be read."""
    raw = (line or "").strip()
    if not raw:
        return None
    parts = [p.strip() for p in raw.split("\t")]
    if len(parts) < MIN_BOOKING_FIELDS:
        return None

    status_idx = find_status_index(parts)
    if status_idx == -1:
        return None

    if reward_types is None:
        reward_types = default_reward_types()

    created_at = parts[0]
    email = normalize_email(parts[1]) or ""
    booking_no = parts[2]
    if not created_at or not email or not booking_no:
        return None

    # Between zone: [promoCode] ... reward
    between = parts[FIXED_FIELDS:status_idx]
    reward_amount = Decimal("0")
    promo_code = ""
    if between:
        if is_numeric_like(between[-1]):
            reward_amount = normalize_money(between[-1])
        if len(between) > 1 and not is_numeric_like(between[0]):
            promo_code = between[0]

    tail = [p for p in parts[status_idx + 1:] if p]
    reward_type, reward_paid_on, remainder = _classify_tail(tail, reward_types)
    airline = next((tok for tok in remainder if not mentions_genius_level(tok)), "")

    return ParsedBooking(
        created_at=created_at,
        email=email,
        booking_no=booking_no,
        pin=parts[3].zfill(4),
        hotel_id=parts[4],
        hotel_name=parts[5],
        cost=normalize_money(parts[6]),
        check_in=parts[7],
        check_out=parts[8],
        promo_code=promo_code,
        reward_amount=reward_amount,
        status=match_status(parts[status_idx]),
        level=extract_genius_level(remainder),
        reward_type=reward_type,
        airline=airline,
        reward_paid_on=reward_paid_on,
        raw=raw,
    )


def parse_paste(text: str | None, reward_types=None) -> ParseResult:
    """Run parse_booking_line over every non-blank line of a paste."""
    result = ParseResult()
    for idx, raw in enumerate(_lines(text), start=1):
        row = parse_booking_line(raw, reward_types)
        if row is None:
            result.errors.append(LineError(idx, raw))
        else:
            result.rows.append(row)
    return result


# ---------------------------------------------------------------------------
# Accounts / spend / block list
# ---------------------------------------------------------------------------

def parse_accounts_paste(text: str | None) -> ParseResult:
    """email<delim>password rows; the email must contain '@'."""
    result = ParseResult()
    for idx, raw in enumerate(_lines(text), start=1):
        parts = split_delimited(raw)
        email = normalize_email(parts[0] if parts else "") or ""
        password = parts[1].strip() if len(parts) > 1 else ""
        if not email or "@" not in email:
            result.errors.append(LineError(idx, raw))
            continue
        result.rows.append(AccountRow(email=email, password=password))
    return result


def parse_spent_paste(text: str | None) -> ParseResult:
    """date<delim>email<delim>amount<delim>note... rows."""
    result = ParseResult()
    for idx, raw in enumerate(_lines(text), start=1):
        parts = split_delimited(raw)
        spent_on = parts[0].strip() if parts else ""
        email = (normalize_email(parts[1]) or "") if len(parts) > 1 else ""
        amount_raw = parts[2] if len(parts) > 2 else ""
        note = normalize_space(" ".join(parts[3:])) or ""
        if (
            not is_iso_date_like(spent_on)
            or "@" not in email
            or not is_numeric_like(amount_raw)
        ):
            result.errors.append(LineError(idx, raw))
            continue
        result.rows.append(
            SpendRow(date=spent_on, email=email, amount=normalize_money(amount_raw), note=note)
        )
    return result


def parse_blocked_paste(text: str | None) -> ParseResult:
    """One email per line for a mass block."""
    result = ParseResult()
    for idx, raw in enumerate(_lines(text), start=1):
        email = normalize_email(raw) or ""
        if "@" not in email:
            result.errors.append(LineError(idx, raw))
            continue
        result.rows.append(email)
    return result


def accounts_to_tsv(accounts: Iterable[Any]) -> str:
    """Render accounts back into the email<TAB>password paste format."""
    return "\n".join(f"{a.email}\t{a.password or ''}" for a in accounts)
