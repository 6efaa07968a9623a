"""Unit tests for booking_ops.normalize."""

from datetime import date
from decimal import Decimal

import pytest

from booking_ops.normalize import (
    add_days_iso,
    days_diff,
    derive_stable_hotel_id,
    extract_genius_level,
    is_iso_date_like,
    is_numeric_like,
    normalize_email,
    normalize_money,
    normalize_reward_type,
    normalize_space,
    normalize_status,
    parse_iso_date,
    safe_lower,
    trim,
)
from booking_ops.settings import default_reward_types


# ---------------------------------------------------------------------------
# trim / case
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestSafeLower:
    def test_lowercases_and_trims(self):
        assert safe_lower("  A@B.COM ") == "a@b.com"

    def test_none_is_empty(self):
        assert safe_lower(None) == ""


class TestNormalizeSpace:
    def test_collapses_tabs(self):
        assert normalize_space("hello\t\tworld") == "hello world"


class TestNormalizeEmail:
    def test_lowercases(self):
        assert normalize_email("User@Example.COM") == "user@example.com"

    def test_empty(self):
        assert normalize_email("") is None


# ---------------------------------------------------------------------------
# money
# ---------------------------------------------------------------------------

class TestNormalizeMoney:
    def test_dollar_and_thousands(self):
        assert normalize_money("$1,234.50") == Decimal("1234.50")
        assert normalize_money("$1,234.50") == 1234.5

    def test_empty_is_zero(self):
        assert normalize_money("") == 0

    def test_garbage_is_zero(self):
        assert normalize_money("abc") == 0

    def test_none_is_zero(self):
        assert normalize_money(None) == 0

    def test_underscore_and_non_ascii_digits_are_zero(self):
        assert normalize_money("1_000") == 0
        assert normalize_money("٣٠") == 0

    def test_exponent(self):
        assert normalize_money("1e3") == Decimal("1000")

    def test_nan_is_zero(self):
        assert normalize_money("NaN") == 0

    def test_plain_number(self):
        assert normalize_money(42) == Decimal("42")

    def test_negative(self):
        assert normalize_money("-15.25") == Decimal("-15.25")


class TestIsNumericLike:
    @pytest.mark.parametrize("value", ["120.00", "$1,000", "0", "-5"])
    def test_numeric(self, value):
        assert is_numeric_like(value) is True

    @pytest.mark.parametrize("value", ["", "  ", "abc", "PROMO10", None, "Infinity", "1_000", "\u0663", "1e"])
    def test_not_numeric(self, value):
        assert is_numeric_like(value) is False


# ---------------------------------------------------------------------------
# dates
# ---------------------------------------------------------------------------

class TestIsIsoDateLike:
    def test_valid(self):
        assert is_iso_date_like("2026-05-20") is True

    def test_impossible_calendar_date(self):
        assert is_iso_date_like("2025-13-40") is False

    def test_feb_30(self):
        assert is_iso_date_like("2025-02-30") is False

    def test_wrong_shape(self):
        assert is_iso_date_like("2026-5-20") is False
        assert is_iso_date_like("20/05/2026") is False

    def test_timestamp_is_not_strict_date(self):
        assert is_iso_date_like("2026-05-20T10:00:00Z") is False


class TestParseIsoDate:
    def test_timestamp_prefix(self):
        assert parse_iso_date("2026-05-20T10:00:00.000Z") == date(2026, 5, 20)

    def test_invalid(self):
        assert parse_iso_date("nope") is None


class TestAddDaysIso:
    def test_booking_window(self):
        assert add_days_iso("2026-01-01", 14) == "2026-01-15"

    def test_crosses_month_end(self):
        assert add_days_iso("2026-01-01", 64) == "2026-03-06"

    def test_leap_year(self):
        assert add_days_iso("2024-02-28", 1) == "2024-02-29"

    def test_invalid_date_is_empty(self):
        assert add_days_iso("not-a-date", 5) == ""

    def test_non_numeric_days_is_empty(self):
        assert add_days_iso("2026-01-01", "x") == ""


class TestDaysDiff:
    def test_forward(self):
        assert days_diff("2026-01-01", "2026-01-31") == 30

    def test_backward_is_negative(self):
        assert days_diff("2026-01-31", "2026-01-01") == -30

    def test_default_today(self):
        assert days_diff("2026-01-01", today=date(2026, 1, 11)) == 10

    def test_invalid_is_none(self):
        assert days_diff("", "2026-01-01") is None
        assert days_diff("2026-01-01", "garbage") is None


# ---------------------------------------------------------------------------
# synthetic hotel ids
# ---------------------------------------------------------------------------

class TestDeriveStableHotelId:
    def test_single_char(self):
        # hash('A') = 65 = 0x41, padded to 4 hex digits
        assert derive_stable_hotel_id("A") == "H_A_4100"

    def test_empty_name_uses_placeholder(self):
        assert derive_stable_hotel_id("") == "H_HOTEL_41BC"
        assert derive_stable_hotel_id(None) == "H_HOTEL_41BC"

    def test_slug_capped_at_18(self):
        hid = derive_stable_hotel_id("Hyatt Regency JFK Airport")
        assert hid.startswith("H_HYATT_REGENCY_JFK__")
        assert len(hid) == len("H_") + 18 + len("_") + 4

    def test_deterministic(self):
        assert derive_stable_hotel_id("The Bower") == derive_stable_hotel_id("The Bower")

    def test_case_only_differences_share_slug(self):
        a = derive_stable_hotel_id("the bower")
        b = derive_stable_hotel_id("THE BOWER")
        assert a[:-4] == b[:-4]


# ---------------------------------------------------------------------------
# status / reward type / genius level
# ---------------------------------------------------------------------------

class TestNormalizeStatus:
    def test_empty_defaults_to_pending(self):
        assert normalize_status("") == "Pending"

    def test_unknown_defaults_to_pending(self):
        assert normalize_status("weirdtoken") == "Pending"

    def test_case_insensitive(self):
        assert normalize_status("CONFIRMED") == "Confirmed"

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("conf", "Confirmed"),
            ("Pending", "Pending"),
            ("completed", "Completed"),
            ("Canceled", "Cancelled"),
            ("cancelled", "Cancelled"),
        ],
    )
    def test_prefixes(self, raw, expected):
        assert normalize_status(raw) == expected


class TestNormalizeRewardType:
    def test_configured_spelling_wins(self):
        assert normalize_reward_type("copa", default_reward_types()) == "Copa"

    def test_blank_is_booking(self):
        assert normalize_reward_type("  ", default_reward_types()) == "Booking"

    def test_unknown_is_preserved(self):
        # Unlike status, a miss keeps the raw token
        assert normalize_reward_type(" Delta ", default_reward_types()) == "Delta"

    def test_booking_without_config(self):
        assert normalize_reward_type("BOOKING", []) == "Booking"


class TestExtractGeniusLevel:
    def test_single_cell(self):
        assert extract_genius_level(["Genius Level 2"]) == "Genius Level 2"

    def test_tolerates_spacing_and_case(self):
        assert extract_genius_level(["geniuslevel   3"]) == "Genius Level 3"

    def test_split_across_cells(self):
        assert extract_genius_level(["Genius", "Level 1"]) == "Genius Level 1"

    def test_absent(self):
        assert extract_genius_level(["Copa Airlines"]) == ""

    def test_level_out_of_range(self):
        assert extract_genius_level(["Genius Level 7"]) == ""
