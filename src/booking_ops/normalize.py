"""Normalization functions for pasted booking data.

String helpers accept str | None.  Money helpers never raise: anything
that cannot be read as a number becomes Decimal("0").
"""

from __future__ import annotations

import re
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation

STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_COMPLETED = "Completed"
STATUS_CANCELLED = "Cancelled"

BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)

# Prefix -> canonical status.  Order matters only for readability.
_STATUS_PREFIXES = (
    ("conf", STATUS_CONFIRMED),
    ("pend", STATUS_PENDING),
    ("comp", STATUS_COMPLETED),
    ("canc", STATUS_CANCELLED),
)

DEFAULT_REWARD_TYPE = "Booking"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$", re.ASCII)
_NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)
_ISO_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ].*)?$", re.ASCII)
_GENIUS_RE = re.compile(r"genius\s*level\s*(1|2|3)", re.IGNORECASE)
_GENIUS_MENTION_RE = re.compile(r"genius\s*level", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Rule 1: trim / case
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = str(value).strip()
    return v if v else None


def safe_lower(value) -> str:
    """Trimmed lowercase form, "" for None/blank."""
    return (trim(value) or "").lower()


def normalize_space(value: str | None) -> str | None:
    """Single-spaced, trimmed text (spend notes rejoined from split cells)."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


def normalize_email(value: str | None) -> str | None:
    """Canonical email: trimmed and lowercased, None when blank.

    Every email read from a paste or a snapshot goes through here, so the
    account join key and the booking dedup key agree.
    """
    v = trim(value)
    if v is None:
        return None
    return v.lower()


# ---------------------------------------------------------------------------
# Rule 2: money
# ---------------------------------------------------------------------------

def _strip_money(value) -> str:
    return str(value if value is not None else "").strip().replace(",", "").replace("$", "")


def normalize_money(value) -> Decimal:
    """Parse '$1,234.50' style amounts.  Blank or garbage -> Decimal('0')."""
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            d = Decimal(str(value))
        except InvalidOperation:
            return Decimal("0")
        return d if d.is_finite() else Decimal("0")
    cleaned = _strip_money(value)
    if not _NUMBER_RE.match(cleaned):
        return Decimal("0")
    try:
        d = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    return d if d.is_finite() else Decimal("0")


def is_numeric_like(value) -> bool:
    """True when the value reads as a number once ',' and '$' are removed.

    Plain ASCII decimal notation only: '1_000' and non-Latin digits are not
    numbers here even though Decimal() would take them.
    """
    return bool(_NUMBER_RE.match(_strip_money(value)))


# ---------------------------------------------------------------------------
# Rule 3: ISO dates
# ---------------------------------------------------------------------------

def is_iso_date_like(value) -> bool:
    """Strict YYYY-MM-DD that is also a real calendar date."""
    s = str(value if value is not None else "").strip()
    if not _ISO_DATE_RE.match(s):
        return False
    try:
        date.fromisoformat(s)
    except ValueError:
        return False
    return True


def parse_iso_date(value) -> date | None:
    """Date part of 'YYYY-MM-DD' or an ISO timestamp, else None."""
    if isinstance(value, date):
        return value
    s = str(value if value is not None else "").strip()
    m = _ISO_PREFIX_RE.match(s)
    if not m:
        return None
    try:
        return date.fromisoformat(m.group(1))
    except ValueError:
        return None


def add_days_iso(iso: str | None, days) -> str:
    """Calendar-correct day addition; '' on a bad date or non-numeric days."""
    d = parse_iso_date(iso)
    if d is None:
        return ""
    try:
        n = int(days)
    except (TypeError, ValueError, OverflowError):
        return ""
    try:
        return (d + timedelta(days=n)).isoformat()
    except OverflowError:
        return ""


def days_diff(from_iso, to_iso=None, today: date | None = None) -> int | None:
    """Whole days from from_iso to to_iso (default: today); None if invalid."""
    a = parse_iso_date(from_iso)
    if to_iso is None:
        b = today or date.today()
    else:
        b = parse_iso_date(to_iso)
    if a is None or b is None:
        return None
    return (b - a).days


# ---------------------------------------------------------------------------
# Rule 4: synthetic hotel ids
# ---------------------------------------------------------------------------

def derive_stable_hotel_id(name: str | None) -> str:
    """Return 'H_<SLUG>_<HASH4>' for a hotel that arrived without an id.

    The slug is the uppercased name with non-alphanumeric runs folded to
    '_' (max 18 chars).  The tail is the first four hex digits of a
    32-bit multiply-by-31 rolling hash of the raw name.  Best-effort
    dedup key only.
    """
    source = name or "HOTEL"
    base = re.sub(r"[^A-Z0-9]+", "_", source.upper()).strip("_")[:18]
    h = 0
    # JS-compatible: hash over UTF-16 code units
    encoded = source.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    tail = (format(h, "X") + "0000")[:4]
    return f"H_{base}_{tail}"


# ---------------------------------------------------------------------------
# Rule 5: status / reward type / genius level
# ---------------------------------------------------------------------------

def match_status(value) -> str | None:
    """Canonical status for a recognizable token, None otherwise."""
    s = safe_lower(value)
    if not s:
        return None
    for prefix, status in _STATUS_PREFIXES:
        if s.startswith(prefix):
            return status
    return None


def normalize_status(value) -> str:
    """Closed vocabulary; anything unrecognized becomes Pending."""
    return match_status(value) or STATUS_PENDING


def normalize_reward_type(value, reward_types=None) -> str:
    """Configured spelling on a match, the trimmed raw token on a miss.

    reward_types is a sequence of objects with a ``name`` attribute (or
    plain strings).  Blank input resolves to 'Booking'.
    """
    s = safe_lower(value)
    if not s:
        return DEFAULT_REWARD_TYPE
    for rt in reward_types or ():
        name = getattr(rt, "name", rt)
        if safe_lower(name) == s:
            return name
    if s == DEFAULT_REWARD_TYPE.lower():
        return DEFAULT_REWARD_TYPE
    return str(value).strip()


def is_known_reward_type(value, reward_types) -> bool:
    s = safe_lower(value)
    return bool(s) and any(safe_lower(getattr(rt, "name", rt)) == s for rt in reward_types or ())


def extract_genius_level(cells) -> str:
    """Return 'Genius Level N' from the first cell that carries it, else ''.

    Falls back to scanning the cells joined with spaces so a label split
    across two cells ('Genius', 'Level 2') is still found.
    """
    cleaned = [str(c).strip() for c in cells or () if c is not None and str(c).strip()]
    if not cleaned:
        return ""
    for cell in cleaned:
        m = _GENIUS_RE.search(cell)
        if m:
            return f"Genius Level {m.group(1)}"
    m = _GENIUS_RE.search(" ".join(cleaned))
    if m:
        return f"Genius Level {m.group(1)}"
    return ""


def mentions_genius_level(value) -> bool:
    return bool(_GENIUS_MENTION_RE.search(str(value or "")))
