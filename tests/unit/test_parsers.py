"""Unit tests for booking_ops.parsers."""

from __future__ import annotations

from decimal import Decimal

import pytest

from booking_ops.models import Account
from booking_ops.parsers import (
    LineError,
    accounts_to_tsv,
    parse_accounts_paste,
    parse_blocked_paste,
    parse_booking_line,
    parse_paste,
    parse_spent_paste,
    split_delimited,
)
from booking_ops.settings import RewardType, default_reward_types


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

HEAD = "2025-12-15\ta@b.com\t5051780387\t6635\t\tHyatt Regency JFK Airport\t6,066.89\t2026-03-12\t2026-03-13"
GOLDEN = HEAD + "\t120.00\tconfirmed\tGenius Level 1"


def _line(*tail: str) -> str:
    return "\t".join([HEAD, *tail])


# ---------------------------------------------------------------------------
# parse_booking_line
# ---------------------------------------------------------------------------

class TestParseBookingLine:
    def test_golden_line(self):
        row = parse_booking_line(GOLDEN)
        assert row is not None
        assert row.email == "a@b.com"
        assert row.status == "Confirmed"
        assert row.reward_amount == Decimal("120.00")
        assert row.cost == Decimal("6066.89")
        assert row.level == "Genius Level 1"
        assert row.reward_type == "Booking"
        assert row.airline == ""
        assert row.raw == GOLDEN

    def test_fixed_fields(self):
        row = parse_booking_line(GOLDEN)
        assert row.created_at == "2025-12-15"
        assert row.booking_no == "5051780387"
        assert row.pin == "6635"
        assert row.hotel_id == ""
        assert row.hotel_name == "Hyatt Regency JFK Airport"
        assert row.check_in == "2026-03-12"
        assert row.check_out == "2026-03-13"

    def test_tail_is_order_independent(self):
        row = parse_booking_line(_line("0", "cancelled", "Genius Level 2", "Copa", "2026-05-20"))
        assert row.status == "Cancelled"
        assert row.reward_type == "Copa"
        assert row.reward_paid_on == "2026-05-20"
        assert row.level == "Genius Level 2"
        assert row.airline == ""

    def test_tail_in_other_order(self):
        row = parse_booking_line(_line("0", "cancelled", "2026-05-20", "copa", "Genius Level 2"))
        assert row.reward_type == "Copa"
        assert row.reward_paid_on == "2026-05-20"
        assert row.level == "Genius Level 2"

    def test_airline_is_first_unclassified_token(self):
        row = parse_booking_line(_line("55", "completed", "Genius Level 3", "Copa Airlines", "United"))
        assert row.airline == "Copa Airlines"
        assert row.level == "Genius Level 3"
        assert row.reward_type == "Booking"

    def test_unknown_reward_type_becomes_airline(self):
        # Only configured reward types are recognized in the tail
        row = parse_booking_line(_line("55", "completed", "Delta"))
        assert row.reward_type == "Booking"
        assert row.airline == "Delta"

    def test_custom_reward_types(self):
        types = [RewardType("Booking", 14), RewardType("Delta", 30)]
        row = parse_booking_line(_line("55", "completed", "Delta"), types)
        assert row.reward_type == "Delta"
        assert row.airline == ""

    def test_promo_code_and_reward(self):
        row = parse_booking_line(_line("SPRING10", "75", "pending"))
        assert row.promo_code == "SPRING10"
        assert row.reward_amount == Decimal("75")
        assert row.status == "Pending"

    def test_single_non_numeric_between_is_not_promo(self):
        row = parse_booking_line(_line("SPRING10", "pending"))
        assert row.promo_code == ""
        assert row.reward_amount == 0

    def test_no_between_fields(self):
        row = parse_booking_line(_line("confirmed"))
        assert row is not None
        assert row.reward_amount == 0
        assert row.promo_code == ""

    def test_extra_middle_tokens_are_dropped(self):
        # Known limitation: only the first (promo) and last (reward) tokens are read
        row = parse_booking_line(_line("PROMO", "note text", "ignored", "10", "confirmed"))
        assert row.promo_code == "PROMO"
        assert row.reward_amount == Decimal("10")

    def test_status_prefix_match(self):
        row = parse_booking_line(_line("10", "CANCELED"))
        assert row.status == "Cancelled"

    def test_pin_zero_padded(self):
        line = GOLDEN.replace("\t6635\t", "\t35\t")
        assert parse_booking_line(line).pin == "0035"

    def test_email_lowercased(self):
        line = GOLDEN.replace("a@b.com", "A@B.Com")
        assert parse_booking_line(line).email == "a@b.com"

    def test_malformed_short_line(self):
        assert parse_booking_line("not\ta\tvalid") is None

    def test_no_status_token(self):
        assert parse_booking_line(_line("10", "whatever", "Genius Level 1")) is None

    def test_status_in_hotel_name_is_not_an_anchor(self):
        line = GOLDEN.replace("Hyatt Regency JFK Airport", "Compass Inn")
        row = parse_booking_line(line)
        assert row.status == "Confirmed"
        assert row.hotel_name == "Compass Inn"

    def test_missing_booking_no_rejected(self):
        line = GOLDEN.replace("\t5051780387\t", "\t\t")
        assert parse_booking_line(line) is None

    def test_blank_line(self):
        assert parse_booking_line("   ") is None
        assert parse_booking_line(None) is None


# ---------------------------------------------------------------------------
# parse_paste
# ---------------------------------------------------------------------------

class TestParsePaste:
    def test_collects_rows_and_errors(self):
        text = "\n".join([GOLDEN, "garbage line", "", _line("5", "pending")])
        result = parse_paste(text)
        assert len(result.rows) == 2
        assert result.errors == [LineError(2, "garbage line")]

    def test_crlf(self):
        result = parse_paste(GOLDEN + "\r\n" + GOLDEN)
        assert len(result.rows) == 2
        assert result.errors == []

    def test_empty(self):
        result = parse_paste("")
        assert result.rows == []
        assert result.errors == []

    def test_default_reward_types_used(self):
        result = parse_paste(_line("5", "completed", "aa"), default_reward_types())
        assert result.rows[0].reward_type == "AA"


# ---------------------------------------------------------------------------
# accounts / spend / block list
# ---------------------------------------------------------------------------

class TestSplitDelimited:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("a@b.com\tpw", ["a@b.com", "pw"]),
            ("a@b.com;pw", ["a@b.com", "pw"]),
            ("a@b.com,pw", ["a@b.com", "pw"]),
            ("a@b.com   pw", ["a@b.com", "pw"]),
        ],
    )
    def test_delimiters(self, raw, expected):
        assert split_delimited(raw) == expected

    def test_tab_beats_comma(self):
        assert split_delimited("a,b\tc") == ["a,b", "c"]


class TestParseAccountsPaste:
    def test_rows(self):
        result = parse_accounts_paste("One@Mail.com\tsecret\ntwo@mail.com;pw2\nthree@mail.com")
        assert [(r.email, r.password) for r in result.rows] == [
            ("one@mail.com", "secret"),
            ("two@mail.com", "pw2"),
            ("three@mail.com", ""),
        ]
        assert result.errors == []

    def test_missing_at_is_error(self):
        result = parse_accounts_paste("not-an-email\tpw\nok@mail.com pw")
        assert result.errors == [LineError(1, "not-an-email\tpw")]
        assert len(result.rows) == 1


class TestParseSpentPaste:
    def test_row_with_note(self):
        result = parse_spent_paste("2026-01-05\tA@mail.com\t$1,200.50\tTaxi\tairport run")
        row = result.rows[0]
        assert row.date == "2026-01-05"
        assert row.email == "a@mail.com"
        assert row.amount == Decimal("1200.50")
        assert row.note == "Taxi airport run"

    def test_whitespace_delimited(self):
        result = parse_spent_paste("2026-01-05 a@mail.com 15 SIM card")
        assert result.rows[0].note == "SIM card"

    def test_note_whitespace_collapsed(self):
        result = parse_spent_paste("2026-01-05\t a@mail.com \t15\tTaxi  to\t  airport ")
        assert result.rows[0].email == "a@mail.com"
        assert result.rows[0].note == "Taxi to airport"

    def test_underscore_amount_rejected(self):
        result = parse_spent_paste("2026-01-05\ta@mail.com\t1_000")
        assert result.rows == []

    @pytest.mark.parametrize(
        "line",
        [
            "05/01/2026\ta@mail.com\t15",
            "2026-01-05\tnot-email\t15",
            "2026-01-05\ta@mail.com\tfifteen",
            "2026-01-05\ta@mail.com",
        ],
    )
    def test_invalid_rows_are_errors(self, line):
        result = parse_spent_paste(line)
        assert result.rows == []
        assert result.errors == [LineError(1, line)]


class TestParseBlockedPaste:
    def test_emails(self):
        result = parse_blocked_paste("A@mail.com\n\nnope\nb@mail.com ")
        assert result.rows == ["a@mail.com", "b@mail.com"]
        assert result.errors == [LineError(2, "nope")]


class TestAccountsToTsv:
    def test_round_trips_through_parser(self):
        accounts = [Account(email="a@mail.com", password="pw"), Account(email="b@mail.com")]
        tsv = accounts_to_tsv(accounts)
        assert tsv == "a@mail.com\tpw\nb@mail.com\t"
        parsed = parse_accounts_paste(tsv)
        assert [r.email for r in parsed.rows] == ["a@mail.com", "b@mail.com"]
