"""booking_ops.models

Entity dataclasses and the OpsState aggregate.

Every entity serializes to the camelCase shape of the JSON export
(``manualStatus``, ``hotelNameSnapshot``, ``_raw`` ...).  Money fields
are Decimal in memory and JSON numbers on the wire.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from booking_ops.normalize import (
    DEFAULT_REWARD_TYPE,
    STATUS_PENDING,
    normalize_email,
    normalize_money,
    normalize_status,
    safe_lower,
)
from booking_ops.settings import Settings

ACCOUNT_ACTIVE = "Active"
ACCOUNT_BLOCKED = "Blocked"
HOTEL_OK = "OK"
HOTEL_BLOCK = "BLOCK"

# Older exports stored account status in the operator's locale.
_LEGACY_ACCOUNT_STATUS = {
    "активен": ACCOUNT_ACTIVE,
    "блок": ACCOUNT_BLOCKED,
    "active": ACCOUNT_ACTIVE,
    "blocked": ACCOUNT_BLOCKED,
    "block": ACCOUNT_BLOCKED,
}

AUDIT_LIMIT = 400


def normalize_account_status(value: Any) -> str:
    return _LEGACY_ACCOUNT_STATUS.get(safe_lower(value), ACCOUNT_ACTIVE)


def normalize_hotel_status(value: Any) -> str:
    return HOTEL_BLOCK if safe_lower(value) in ("block", "blocked") else HOTEL_OK


def money_out(value: Decimal) -> int | float:
    """JSON-friendly number for a Decimal amount."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def _s(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    if value is None:
        return default
    return str(value)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Account:
    email: str
    password: str = ""
    manual_status: str = ACCOUNT_ACTIVE
    notes: str = ""
    created_at: str = ""

    @property
    def email_key(self) -> str:
        return safe_lower(self.email)

    @property
    def is_manually_blocked(self) -> bool:
        return self.manual_status == ACCOUNT_BLOCKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "password": self.password,
            "manualStatus": self.manual_status,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Account:
        return cls(
            email=normalize_email(data.get("email")) or "",
            password=_s(data, "password"),
            manual_status=normalize_account_status(data.get("manualStatus")),
            notes=_s(data, "notes"),
            created_at=_s(data, "createdAt"),
        )


@dataclass
class Hotel:
    hotel_id: str
    name: str = ""
    manual_status: str = HOTEL_OK
    notes: str = ""

    @property
    def is_manually_blocked(self) -> bool:
        return self.manual_status == HOTEL_BLOCK

    def to_dict(self) -> dict[str, Any]:
        return {
            "hotelId": self.hotel_id,
            "name": self.name,
            "manualStatus": self.manual_status,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Hotel:
        return cls(
            hotel_id=_s(data, "hotelId"),
            name=_s(data, "name"),
            manual_status=normalize_hotel_status(data.get("manualStatus")),
            notes=_s(data, "notes"),
        )


@dataclass
class Booking:
    booking_id: str
    created_at: str
    email: str
    booking_no: str
    pin: str = ""
    hotel_id: str = ""
    hotel_name_snapshot: str = ""
    cost: Decimal = Decimal("0")
    check_in: str = ""
    check_out: str = ""
    promo_code: str = ""
    reward_amount: Decimal = Decimal("0")
    reward_currency: str = "USD"
    reward_type: str = DEFAULT_REWARD_TYPE
    airline: str = ""
    status: str = STATUS_PENDING
    level: str = ""
    reward_paid_on: str = ""
    note: str = ""
    raw: str = ""

    @property
    def email_key(self) -> str:
        return safe_lower(self.email)

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (safe_lower(self.email), str(self.booking_no))

    def to_dict(self) -> dict[str, Any]:
        return {
            "bookingId": self.booking_id,
            "createdAt": self.created_at,
            "email": self.email,
            "bookingNo": self.booking_no,
            "pin": self.pin,
            "hotelId": self.hotel_id,
            "hotelNameSnapshot": self.hotel_name_snapshot,
            "cost": money_out(self.cost),
            "checkIn": self.check_in,
            "checkOut": self.check_out,
            "promoCode": self.promo_code,
            "rewardAmount": money_out(self.reward_amount),
            "rewardCurrency": self.reward_currency,
            "rewardType": self.reward_type,
            "airline": self.airline,
            "status": self.status,
            "level": self.level,
            "rewardPaidOn": self.reward_paid_on,
            "note": self.note,
            "_raw": self.raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Booking:
        return cls(
            booking_id=_s(data, "bookingId"),
            created_at=_s(data, "createdAt"),
            email=normalize_email(data.get("email")) or "",
            booking_no=_s(data, "bookingNo"),
            pin=_s(data, "pin"),
            hotel_id=_s(data, "hotelId"),
            hotel_name_snapshot=_s(data, "hotelNameSnapshot"),
            cost=normalize_money(data.get("cost")),
            check_in=_s(data, "checkIn"),
            check_out=_s(data, "checkOut"),
            promo_code=_s(data, "promoCode"),
            reward_amount=normalize_money(data.get("rewardAmount")),
            reward_currency=_s(data, "rewardCurrency", "USD") or "USD",
            reward_type=_s(data, "rewardType", DEFAULT_REWARD_TYPE) or DEFAULT_REWARD_TYPE,
            airline=_s(data, "airline"),
            status=normalize_status(data.get("status")),
            level=_s(data, "level"),
            reward_paid_on=_s(data, "rewardPaidOn"),
            note=_s(data, "note"),
            raw=_s(data, "_raw"),
        )


@dataclass
class Sale:
    id: str
    date: str
    email: str
    amount: Decimal = Decimal("0")
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date,
            "email": self.email,
            "amount": money_out(self.amount),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Sale:
        return cls(
            id=_s(data, "id"),
            date=_s(data, "date"),
            email=normalize_email(data.get("email")) or "",
            amount=normalize_money(data.get("amount")),
            note=_s(data, "note"),
        )


@dataclass
class SpecialReward:
    id: str
    email: str
    amount: Decimal
    promo: str = "PROMO"
    created_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "amount": money_out(self.amount),
            "promo": self.promo,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SpecialReward:
        return cls(
            id=_s(data, "id"),
            email=normalize_email(data.get("email")) or "",
            amount=normalize_money(data.get("amount")),
            promo=_s(data, "promo", "PROMO") or "PROMO",
            created_at=_s(data, "createdAt"),
        )


@dataclass(frozen=True)
class AuditEntry:
    id: str
    at: str
    type: str
    msg: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "at": self.at, "type": self.type, "msg": self.msg}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        return cls(
            id=_s(data, "id"), at=_s(data, "at"), type=_s(data, "type"), msg=_s(data, "msg")
        )


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

@dataclass
class OpsState:
    """The whole operator state.  Commands return a new instance."""

    settings: Settings = field(default_factory=Settings)
    accounts: list[Account] = field(default_factory=list)
    hotels: list[Hotel] = field(default_factory=list)
    bookings: list[Booking] = field(default_factory=list)
    sales: list[Sale] = field(default_factory=list)
    special_rewards: list[SpecialReward] = field(default_factory=list)
    audit: list[AuditEntry] = field(default_factory=list)
    last_import: dict[str, Any] | None = None
    version: int = 0

    def evolve(self, **changes: Any) -> OpsState:
        """Copy with the given fields replaced and the version bumped."""
        changes.setdefault("version", self.version + 1)
        return replace(self, **changes)

    def find_account(self, email: str | None) -> Account | None:
        key = safe_lower(email)
        for acc in self.accounts:
            if acc.email_key == key:
                return acc
        return None

    def find_hotel(self, hotel_id: str | None) -> Hotel | None:
        for hotel in self.hotels:
            if hotel.hotel_id == hotel_id:
                return hotel
        return None
