"""booking_ops.rewards

Reward ops views: payout ETAs, pending rewards, per-account reward
summary with display medals, and the daily money-flow trend.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable

from booking_ops.derive import DerivedAccount, DerivedModel, is_bonus_event
from booking_ops.models import Booking, OpsState
from booking_ops.normalize import add_days_iso, days_diff, parse_iso_date, safe_lower
from booking_ops.settings import Settings

MEDAL_NONE = "—"

_ZERO = Decimal("0")


def compute_reward_eta(booking: Booking, settings: Settings) -> str:
    """check_out + reward-type days; '' when check_out is blank."""
    check_out = (booking.check_out or "").strip()
    if not check_out:
        return ""
    return add_days_iso(check_out, settings.reward_days_for(booking.reward_type))


@dataclass
class PendingReward:
    booking: Booking
    eta: str

    @property
    def amount(self) -> Decimal:
        return self.booking.reward_amount


def pending_rewards(
    bookings: Iterable[Booking],
    settings: Settings,
    email: str | None = None,
) -> list[PendingReward]:
    """Bookings carrying a reward that has not been paid yet."""
    key = safe_lower(email) if email is not None else None
    out = []
    for b in bookings:
        if key is not None and b.email_key != key:
            continue
        if b.reward_amount > 0 and not b.reward_paid_on:
            out.append(PendingReward(b, compute_reward_eta(b, settings)))
    return out


def future_balance(account: DerivedAccount | None, pending: Iterable[PendingReward]) -> Decimal:
    """Net balance once every pending reward lands."""
    pending_total = sum((p.amount for p in pending), _ZERO)
    if account is None:
        return pending_total
    return account.net_balance + pending_total


def medal_for(paid_total: Decimal, pending_total: Decimal, days_since_last: int | None) -> str:
    if paid_total > 300 and pending_total == 0 and days_since_last is not None:
        if days_since_last >= 40:
            return "Platinum"
        if days_since_last >= 20:
            return "Gold"
        return MEDAL_NONE
    if 200 <= paid_total <= 300 and days_since_last is not None:
        return "Bronze/Silver" if days_since_last <= 20 else "Silver"
    if 50 <= paid_total < 200:
        return "Bronze"
    return MEDAL_NONE


@dataclass
class RewardSummaryRow:
    email: str
    email_key: str
    paid_total: Decimal
    pending_total: Decimal
    promo_total: Decimal
    spent_total: Decimal
    last_paid_on: str
    days_since_last: int | None
    medal: str
    current_balance: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.email,
            "paidTotal": float(self.paid_total),
            "pendingTotal": float(self.pending_total),
            "promoTotal": float(self.promo_total),
            "spentTotal": float(self.spent_total),
            "lastPaidOn": self.last_paid_on,
            "daysSinceLast": self.days_since_last,
            "medal": self.medal,
            "currentBalance": float(self.current_balance),
        }


def reward_summary(
    state: OpsState,
    model: DerivedModel,
    today: date | None = None,
) -> list[RewardSummaryRow]:
    """Per-account paid/pending/promo/spent totals.  All-zero rows are omitted."""
    today = today or date.today()
    rewarded = [b for b in state.bookings if b.reward_amount > 0 or b.reward_paid_on]

    def totals_by_email(items, amount_of) -> dict[str, Decimal]:
        out: dict[str, Decimal] = {}
        for item in items:
            key = safe_lower(item.email)
            out[key] = out.get(key, _ZERO) + amount_of(item)
        return out

    spent = totals_by_email(state.sales, lambda s: s.amount)
    promo = totals_by_email(state.special_rewards, lambda r: r.amount)

    rows = []
    for acc in model.accounts:
        paid = [b for b in rewarded if b.email_key == acc.email_key and b.reward_paid_on]
        pending = [b for b in rewarded if b.email_key == acc.email_key and not b.reward_paid_on]
        paid_total = sum((b.reward_amount for b in paid), _ZERO)
        pending_total = sum((b.reward_amount for b in pending), _ZERO)
        paid_dates = sorted(
            (b.reward_paid_on for b in paid if parse_iso_date(b.reward_paid_on)),
            key=lambda d: parse_iso_date(d),
            reverse=True,
        )
        last_paid_on = paid_dates[0] if paid_dates else ""
        since = days_diff(last_paid_on, today=today) if last_paid_on else None
        row = RewardSummaryRow(
            email=acc.email,
            email_key=acc.email_key,
            paid_total=paid_total,
            pending_total=pending_total,
            promo_total=promo.get(acc.email_key, _ZERO),
            spent_total=spent.get(acc.email_key, _ZERO),
            last_paid_on=last_paid_on,
            days_since_last=since,
            medal=medal_for(paid_total, pending_total, since),
            current_balance=acc.net_balance,
        )
        if row.paid_total > 0 or row.pending_total > 0 or row.spent_total > 0 or row.promo_total > 0:
            rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Money flow
# ---------------------------------------------------------------------------

@dataclass
class TrendPoint:
    date: str
    earned: Decimal = _ZERO
    spent: Decimal = _ZERO
    acc: Decimal = _ZERO

    @property
    def net(self) -> Decimal:
        return self.earned - self.spent


def net_trend(state: OpsState, days: int = 30, today: date | None = None) -> list[TrendPoint]:
    """One point per day for the last ``days`` days, oldest first."""
    today = today or date.today()
    points: dict[str, TrendPoint] = {}
    for offset in range(days - 1, -1, -1):
        key = (today - timedelta(days=offset)).isoformat()
        points[key] = TrendPoint(date=key)
    for b in state.bookings:
        key = (b.reward_paid_on or b.created_at or "")[:10]
        if key in points and is_bonus_event(b):
            points[key].earned += b.reward_amount
    for s in state.sales:
        key = (s.date or "")[:10]
        if key in points:
            points[key].spent += s.amount
    return list(points.values())


def reward_accumulation(trend: list[TrendPoint]) -> list[TrendPoint]:
    """Fill ``acc`` with the running total of earned rewards."""
    running = _ZERO
    for point in trend:
        running += point.earned
        point.acc = running
    return trend
