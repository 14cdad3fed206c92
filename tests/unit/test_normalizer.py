"""Tests for normalizer functions."""

from datetime import date, datetime

import pytest

from grant_tracker.core.normalizer import (
    build_external_id,
    cleanup_text,
    format_currency,
    format_range,
    normalise_list,
    normalise_sectors,
    parse_amount,
    parse_currency_range,
    parse_deadline,
    parse_uk_date,
    slugify,
)


class TestParseAmount:
    """Tests for parse_amount function."""

    def test_plain_amount(self):
        assert parse_amount("£600,000") == 600_000

    def test_thousands_suffix(self):
        """Test k suffix with decimals."""
        assert parse_amount("up to £7.5k") == 7_500

    def test_million_word(self):
        assert parse_amount("£1.5 million") == 1_500_000

    def test_no_amount(self):
        assert parse_amount("not specified") is None

    def test_none_input(self):
        assert parse_amount(None) is None


class TestParseCurrencyRange:
    """Tests for parse_currency_range function."""

    def test_range(self):
        """Test two amounts give min and max."""
        assert parse_currency_range("£5,000 to £10,000") == (5_000, 10_000)

    def test_single_amount(self):
        """Test a single amount is both min and max."""
        assert parse_currency_range("£10,000") == (10_000, 10_000)

    def test_empty(self):
        assert parse_currency_range("") == (None, None)

    def test_no_currency_symbol(self):
        """Test numbers without £ are not amounts."""
        assert parse_currency_range("Up to 5000 people") == (None, None)

    def test_reversed_range_is_swapped(self):
        assert parse_currency_range("£20,000 - £5,000") == (5_000, 20_000)

    def test_small_range(self):
        assert parse_currency_range("£300 to £20,000") == (300, 20_000)

    def test_only_first_two_amounts_used(self):
        assert parse_currency_range("£1,000 to £5,000, total pot £2 million") == (1_000, 5_000)


class TestParseUkDate:
    """Tests for parse_uk_date function."""

    def test_day_month_year_with_time(self):
        assert parse_uk_date("14 May 2026 4:00pm UK time") == date(2026, 5, 14)

    def test_ordinal_with_weekday(self):
        assert parse_uk_date("Friday 14th May 2026") == date(2026, 5, 14)

    def test_abbreviated_month(self):
        assert parse_uk_date("3 Sept 2026") == date(2026, 9, 3)

    def test_month_first(self):
        assert parse_uk_date("May 14, 2026") == date(2026, 5, 14)

    def test_numeric_day_first(self):
        """Test 01/02 is read as 1 February, not 2 January."""
        assert parse_uk_date("01/02/2026") == date(2026, 2, 1)

    def test_iso_with_time(self):
        assert parse_uk_date("2026-05-14T16:00:00Z") == date(2026, 5, 14)

    def test_invalid_date(self):
        assert parse_uk_date("31/02/2026") is None

    def test_no_date(self):
        assert parse_uk_date("Closes when funds run out") is None

    def test_none_input(self):
        assert parse_uk_date(None) is None


class TestParseDeadline:
    """Tests for parse_deadline function."""

    def test_future_date_kept(self):
        assert parse_deadline("14 May 2026", date(2026, 3, 1)) == date(2026, 5, 14)

    def test_past_date_dropped(self):
        """Test past deadlines are treated as absent."""
        assert parse_deadline("1 January 2020", date(2026, 3, 1)) is None

    def test_today_is_kept(self):
        assert parse_deadline("2026-03-01", date(2026, 3, 1)) == date(2026, 3, 1)

    def test_datetime_input(self):
        assert parse_deadline(datetime(2026, 6, 30, 12, 0), date(2026, 3, 1)) == date(2026, 6, 30)

    def test_empty(self):
        assert parse_deadline("", date(2026, 3, 1)) is None
        assert parse_deadline(None, date(2026, 3, 1)) is None


class TestBuildExternalId:
    """Tests for build_external_id function."""

    def test_native_id(self):
        assert build_external_id("gov_uk", "community-ownership-fund") == "gov_uk_community-ownership-fund"

    def test_detail_url_uses_last_segment(self):
        result = build_external_id(
            "heritage_fund",
            "https://www.heritagefund.org.uk/funding/national-lottery-grants-heritage-10k-250k",
        )
        assert result == "heritage_fund_national-lottery-grants-heritage-10k-250k"

    def test_trailing_slash_and_extension(self):
        assert build_external_id("x", "https://example.org/grants/small-grants.html") == "x_small-grants"
        assert build_external_id("x", "https://example.org/grants/small-grants/") == "x_small-grants"

    def test_title(self):
        assert build_external_id("listing", "Awards for All England") == "listing_awards-for-all-england"

    def test_deterministic(self):
        """Test same key always gives the same id."""
        first = build_external_id("360giving", "360G-CR-12345")
        second = build_external_id("360giving", "360G-CR-12345")
        assert first == second == "360giving_360g-cr-12345"

    def test_unsluggable_key_falls_back_to_hash(self):
        first = build_external_id("x", "£££")
        assert first == build_external_id("x", "£££")
        assert first.startswith("x_")
        assert len(first) == len("x_") + 16


class TestTextHelpers:
    """Tests for slug, list and text helpers."""

    def test_slugify(self):
        assert slugify("  Reaching Communities: England!  ") == "reaching-communities-england"

    def test_slugify_empty(self):
        assert slugify(None) == ""

    def test_normalise_sectors_from_string(self):
        assert normalise_sectors("Arts, Heritage , arts,") == ["arts", "heritage"]

    def test_normalise_list_dedupes(self):
        assert normalise_list(["Charities", " Charities ", "CICs"]) == ["Charities", "CICs"]

    def test_normalise_list_rejects_other_types(self):
        assert normalise_list(None) == []

    def test_cleanup_text(self):
        assert cleanup_text("Funding for   groups &amp; clubs") == "Funding for groups & clubs"


class TestFormatting:
    """Tests for display formatting."""

    @pytest.mark.parametrize("amount,expected", [
        (1_500_000, "£1.5m"),
        (750_000, "£750k"),
        (900, "£900"),
        (None, "Not specified"),
    ])
    def test_format_currency(self, amount, expected):
        assert format_currency(amount) == expected

    def test_format_range(self):
        assert format_range(None, None) == "Amount TBC"
        assert format_range(None, 10_000) == "Up to £10k"
        assert format_range(5_000, 10_000) == "£5k to £10k"
        assert format_range(10_000, 10_000) == "£10k"
