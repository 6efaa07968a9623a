"""booking_ops.derive

Derivation engine: turns accounts, hotels, bookings and sales into the
enriched views operators work from (tiers, block reasons, reliability,
ready accounts, eligible hotels).

derive_model is pure.  It is recomputed wholesale on every state change;
there is no incremental update path.

Usage:
    from booking_ops.derive import derive_model

    model = derive_model(state)
    for acc in model.accounts_ready:
        print(acc.email, acc.net_balance)
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable

from booking_ops.models import Account, Booking, Hotel, OpsState, Sale
from booking_ops.normalize import (
    BOOKING_STATUSES,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    days_diff,
    parse_iso_date,
    safe_lower,
)
from booking_ops.settings import Settings

TIER_STANDARD = "Standard"
TIER_GOLD = "Gold"
TIER_PLATINUM = "Platinum"

BLOCK_REASON_MANUAL = "MANUAL"

ELIGIBLE_MAX_CANCELLED = 2
TOP_N = 10

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class DerivedAccount:
    account: Account
    email_key: str
    total_bookings: int
    confirmed_bookings: int
    cancelled_bookings: int
    positive_bookings: int
    total_bonuses: Decimal
    total_sales: Decimal
    net_balance: Decimal
    progress_to_gold: float
    active_bookings_count: int
    last_booking_at: str
    days_since_last_booking: int | None
    cooldown_ok: bool
    total_cancelled: int
    consecutive_cancelled: int
    tech_blocked: bool
    manual_blocked: bool
    is_blocked: bool
    block_reason: str
    tier: str
    last_bonus_paid_on: str
    days_since_last_bonus: int | None
    can_add_booking: bool

    @property
    def email(self) -> str:
        return self.account.email

    @property
    def password(self) -> str:
        return self.account.password

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.account.to_dict(),
            "emailKey": self.email_key,
            "totalBookings": self.total_bookings,
            "confirmedBookings": self.confirmed_bookings,
            "cancelledBookings": self.cancelled_bookings,
            "positiveBookings": self.positive_bookings,
            "totalBonuses": float(self.total_bonuses),
            "totalSales": float(self.total_sales),
            "netBalance": float(self.net_balance),
            "progressToGold": self.progress_to_gold,
            "activeBookingsCount": self.active_bookings_count,
            "lastBookingAt": self.last_booking_at,
            "daysSinceLastBooking": self.days_since_last_booking,
            "cooldownOk": self.cooldown_ok,
            "totalCancelled": self.total_cancelled,
            "consecutiveCancelled": self.consecutive_cancelled,
            "techBlocked": self.tech_blocked,
            "manualBlocked": self.manual_blocked,
            "isBlocked": self.is_blocked,
            "blockReason": self.block_reason,
            "tier": self.tier,
            "lastBonusPaidOn": self.last_bonus_paid_on,
            "daysSinceLastBonus": self.days_since_last_bonus,
            "canAddBooking": self.can_add_booking,
        }


@dataclass
class DerivedHotel:
    hotel: Hotel
    total_bookings: int
    confirmed: int
    completed: int
    cancelled: int
    spent: Decimal
    last_booking_at: str
    reliability: float
    rank_score: float
    tech_blocked: bool
    manual_blocked: bool
    is_blocked: bool
    block_reason: str

    @property
    def hotel_id(self) -> str:
        return self.hotel.hotel_id

    @property
    def name(self) -> str:
        return self.hotel.name

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.hotel.to_dict(),
            "totalBookings": self.total_bookings,
            "confirmed": self.confirmed,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "spent": float(self.spent),
            "lastBookingAt": self.last_booking_at,
            "reliability": self.reliability,
            "rankScore": self.rank_score,
            "techBlocked": self.tech_blocked,
            "manualBlocked": self.manual_blocked,
            "isBlocked": self.is_blocked,
            "blockReason": self.block_reason,
        }


@dataclass
class DerivedModel:
    accounts: list[DerivedAccount] = field(default_factory=list)
    hotels: list[DerivedHotel] = field(default_factory=list)
    accounts_ready: list[DerivedAccount] = field(default_factory=list)
    hotels_eligible: list[DerivedHotel] = field(default_factory=list)
    premium: list[DerivedAccount] = field(default_factory=list)
    top_hotels: list[DerivedHotel] = field(default_factory=list)
    top_accounts: list[DerivedAccount] = field(default_factory=list)
    status_counts: dict[str, int] = field(default_factory=dict)
    total_spent: Decimal = _ZERO
    total_earned: Decimal = _ZERO
    total_left: Decimal = _ZERO
    total_net: Decimal = _ZERO
    blocked_count: int = 0
    missing_passwords: int = 0

    def account(self, email: str | None) -> DerivedAccount | None:
        key = safe_lower(email)
        return next((a for a in self.accounts if a.email_key == key), None)

    def hotel(self, hotel_id: str | None) -> DerivedHotel | None:
        return next((h for h in self.hotels if h.hotel_id == hotel_id), None)

    def summary(self) -> dict[str, Any]:
        return {
            "accounts": len(self.accounts),
            "hotels": len(self.hotels),
            "accounts_ready": len(self.accounts_ready),
            "hotels_eligible": len(self.hotels_eligible),
            "premium": len(self.premium),
            "blocked": self.blocked_count,
            "missing_passwords": self.missing_passwords,
            "status_counts": dict(self.status_counts),
            "total_spent": float(self.total_spent),
            "total_earned": float(self.total_earned),
            "total_left": float(self.total_left),
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _ordinal(iso: str | None) -> int:
    """Sort key for ISO dates; unparseable dates sort as the oldest."""
    d = parse_iso_date(iso)
    return d.toordinal() if d is not None else 0


def is_bonus_event(booking: Booking) -> bool:
    """Reward counted as earned: completed, or explicitly paid, with an amount."""
    if booking.reward_amount <= 0:
        return False
    return booking.status == STATUS_COMPLETED or bool(booking.reward_paid_on)


def group_bookings_by_email(bookings: Iterable[Booking]) -> dict[str, list[Booking]]:
    """Bookings per lowercased email, newest first (stable on ties)."""
    grouped: dict[str, list[Booking]] = defaultdict(list)
    for b in bookings:
        grouped[b.email_key].append(b)
    for items in grouped.values():
        items.sort(key=lambda b: _ordinal(b.created_at), reverse=True)
    return grouped


def _stable_desc(items: list, key) -> list:
    """Descending sort that keeps insertion order on ties."""
    return sorted(items, key=lambda x: -key(x))


# ---------------------------------------------------------------------------
# Per-entity derivation
# ---------------------------------------------------------------------------

def derive_account(
    account: Account,
    bookings: list[Booking],
    sales: list[Sale],
    settings: Settings,
    today: date,
) -> DerivedAccount:
    """Derive one account.  ``bookings`` must already be newest first."""
    total = len(bookings)
    confirmed = sum(1 for b in bookings if b.status == STATUS_CONFIRMED)
    cancelled = sum(1 for b in bookings if b.status == STATUS_CANCELLED)
    positive = total - cancelled

    bonus_events = [b for b in bookings if is_bonus_event(b)]
    total_bonuses = sum((b.reward_amount for b in bonus_events), _ZERO)
    total_sales = sum((s.amount for s in sales), _ZERO)
    net_balance = total_bonuses - total_sales

    last_booking_at = bookings[0].created_at if bookings else ""
    days_since_last = days_diff(last_booking_at, today=today) if last_booking_at else None
    if last_booking_at:
        cooldown_ok = days_since_last is not None and days_since_last >= settings.cooldown_days
    else:
        cooldown_ok = True
    active = sum(1 for b in bookings if b.status in (STATUS_PENDING, STATUS_CONFIRMED))

    streak = 0
    for b in bookings:
        if b.status != STATUS_CANCELLED:
            break
        streak += 1

    tech_blocked = cancelled >= settings.tech_block_total or streak >= settings.tech_block_consecutive
    manual_blocked = account.is_manually_blocked
    is_blocked = manual_blocked or tech_blocked

    last_bonus_paid_on = ""
    paid_dates = [b.reward_paid_on or b.created_at for b in bonus_events]
    paid_dates = [d for d in paid_dates if d]
    if paid_dates:
        last_bonus_paid_on = sorted(paid_dates, key=_ordinal, reverse=True)[0]
    days_since_bonus = days_diff(last_bonus_paid_on, today=today) if last_bonus_paid_on else None

    gold = Decimal(str(settings.gold_threshold))
    tier = TIER_STANDARD
    if net_balance >= gold and not is_blocked:
        tier = TIER_GOLD
        if days_since_bonus is not None and days_since_bonus > settings.platinum_after_days:
            tier = TIER_PLATINUM

    can_add = not is_blocked and active < settings.max_active_bookings and cooldown_ok

    if manual_blocked:
        block_reason = BLOCK_REASON_MANUAL
    elif tech_blocked:
        block_reason = f"TECH: cancelled (total={cancelled}, streak={streak})"
    else:
        block_reason = ""

    if gold > 0:
        progress = max(0.0, min(1.0, float(net_balance / gold)))
    else:
        progress = 1.0 if net_balance >= 0 else 0.0

    return DerivedAccount(
        account=account,
        email_key=account.email_key,
        total_bookings=total,
        confirmed_bookings=confirmed,
        cancelled_bookings=cancelled,
        positive_bookings=positive,
        total_bonuses=total_bonuses,
        total_sales=total_sales,
        net_balance=net_balance,
        progress_to_gold=progress,
        active_bookings_count=active,
        last_booking_at=last_booking_at,
        days_since_last_booking=days_since_last,
        cooldown_ok=cooldown_ok,
        total_cancelled=cancelled,
        consecutive_cancelled=streak,
        tech_blocked=tech_blocked,
        manual_blocked=manual_blocked,
        is_blocked=is_blocked,
        block_reason=block_reason,
        tier=tier,
        last_bonus_paid_on=last_bonus_paid_on,
        days_since_last_bonus=days_since_bonus,
        can_add_booking=can_add,
    )


def derive_hotel(hotel: Hotel, bookings: list[Booking], settings: Settings) -> DerivedHotel:
    total = len(bookings)
    confirmed = sum(1 for b in bookings if b.status == STATUS_CONFIRMED)
    cancelled = sum(1 for b in bookings if b.status == STATUS_CANCELLED)
    completed = sum(1 for b in bookings if b.status == STATUS_COMPLETED)
    spent = sum((b.cost for b in bookings), _ZERO)

    last_booking_at = ""
    for b in bookings:
        if not last_booking_at or _ordinal(b.created_at) > _ordinal(last_booking_at):
            last_booking_at = b.created_at

    tech_blocked = cancelled >= settings.hotel_tech_block_total
    manual_blocked = hotel.is_manually_blocked
    reliability = (1 - cancelled / total) * 100 if total > 0 else 100.0
    rank_score = reliability * 2 + total * 0.5

    if manual_blocked:
        block_reason = BLOCK_REASON_MANUAL
    elif tech_blocked:
        block_reason = f"TECH: hotel cancelled>={settings.hotel_tech_block_total}"
    else:
        block_reason = ""

    return DerivedHotel(
        hotel=hotel,
        total_bookings=total,
        confirmed=confirmed,
        completed=completed,
        cancelled=cancelled,
        spent=spent,
        last_booking_at=last_booking_at,
        reliability=reliability,
        rank_score=rank_score,
        tech_blocked=tech_blocked,
        manual_blocked=manual_blocked,
        is_blocked=manual_blocked or tech_blocked,
        block_reason=block_reason,
    )


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

def derive_model(
    state: OpsState | None = None,
    *,
    accounts: list[Account] | None = None,
    hotels: list[Hotel] | None = None,
    bookings: list[Booking] | None = None,
    sales: list[Sale] | None = None,
    settings: Settings | None = None,
    today: date | None = None,
) -> DerivedModel:
    """Compute the full derived view.

    Pass either an OpsState or the individual collections; explicit
    keyword collections override the ones on ``state``.
    """
    if state is not None:
        accounts = state.accounts if accounts is None else accounts
        hotels = state.hotels if hotels is None else hotels
        bookings = state.bookings if bookings is None else bookings
        sales = state.sales if sales is None else sales
        settings = settings or state.settings
    accounts = accounts or []
    hotels = hotels or []
    bookings = bookings or []
    sales = sales or []
    settings = settings or Settings()
    today = today or date.today()

    by_email = group_bookings_by_email(bookings)
    sales_by_email: dict[str, list[Sale]] = defaultdict(list)
    for s in sales:
        sales_by_email[safe_lower(s.email)].append(s)
    by_hotel: dict[str, list[Booking]] = defaultdict(list)
    for b in bookings:
        if b.hotel_id:
            by_hotel[b.hotel_id].append(b)

    derived_hotels = _stable_desc(
        [derive_hotel(h, by_hotel.get(h.hotel_id, []), settings) for h in hotels],
        key=lambda h: h.rank_score,
    )
    derived_accounts = [
        derive_account(
            acc,
            by_email.get(acc.email_key, []),
            sales_by_email.get(acc.email_key, []),
            settings,
            today,
        )
        for acc in accounts
    ]

    status_counts = {status: 0 for status in BOOKING_STATUSES}
    for b in bookings:
        status_counts[b.status] = status_counts.get(b.status, 0) + 1

    total_spent = sum((s.amount for s in sales), _ZERO)
    total_earned = sum((a.total_bonuses for a in derived_accounts), _ZERO)

    return DerivedModel(
        accounts=derived_accounts,
        hotels=derived_hotels,
        accounts_ready=_stable_desc(
            [a for a in derived_accounts if a.can_add_booking], key=lambda a: a.net_balance
        ),
        hotels_eligible=_stable_desc(
            [
                h for h in derived_hotels
                if not h.is_blocked and h.cancelled <= ELIGIBLE_MAX_CANCELLED and h.confirmed > 0
            ],
            key=lambda h: h.confirmed,
        ),
        premium=[a for a in derived_accounts if a.tier in (TIER_GOLD, TIER_PLATINUM)],
        top_hotels=_stable_desc(derived_hotels, key=lambda h: h.total_bookings)[:TOP_N],
        top_accounts=_stable_desc(derived_accounts, key=lambda a: a.total_bookings)[:TOP_N],
        status_counts=status_counts,
        total_spent=total_spent,
        total_earned=total_earned,
        total_left=total_earned - total_spent,
        total_net=sum((a.net_balance for a in derived_accounts), _ZERO),
        blocked_count=sum(1 for a in derived_accounts if a.is_blocked),
        missing_passwords=sum(1 for a in derived_accounts if not (a.password or "").strip()),
    )
