from datetime import date

import pytest

from whiteboard.dates import (
    display_time,
    parse_hhmm,
    parse_iso_date,
    resolve_as_of,
    sheet_name_for,
    today_in,
    window_dates,
)
from whiteboard.errors import InvalidDateInput


class TestResolveAsOf:
    """Request override, then simulated default, then the real clock"""

    def test_override_wins(self):
        assert resolve_as_of("2024-12-15", "2025-01-01", "America/Chicago") == (date(2024, 12, 15), True)

    def test_simulated_default(self):
        assert resolve_as_of(None, "2025-01-01", "America/Chicago") == (date(2025, 1, 1), True)

    def test_real_date(self):
        as_of, test_mode = resolve_as_of("", "", "America/Chicago")
        assert not test_mode
        assert as_of == today_in("America/Chicago")

    def test_invalid_override_is_rejected(self):
        with pytest.raises(InvalidDateInput):
            resolve_as_of("2024-13-01", "", "America/Chicago")
        with pytest.raises(InvalidDateInput):
            resolve_as_of("15/12/2024", "", "America/Chicago")

    def test_parse_iso_date_reports_field(self):
        with pytest.raises(InvalidDateInput) as excinfo:
            parse_iso_date("2024-02-30")
        assert excinfo.value.details["field"] == "testDate"

    def test_parse_iso_date_rejects_non_ascii_digits(self):
        with pytest.raises(InvalidDateInput):
            parse_iso_date("\uff12\uff10\uff12\uff14-12-15")

    def test_unknown_timezone_falls_back_to_utc(self):
        assert isinstance(today_in("Mars/Olympus"), date)


class TestSheetNames:
    def test_default_format(self):
        assert sheet_name_for(date(2025, 12, 15)) == "Mon 15 Dec"
        assert sheet_name_for(date(2024, 12, 5)) == "Thu 5 Dec"

    def test_custom_format(self):
        assert sheet_name_for(date(2024, 12, 5), "{day2} {month} {yy}") == "05 Dec 24"

    def test_window_dates(self):
        assert window_dates(date(2024, 12, 30), (0, 1, 2)) == [
            date(2024, 12, 30),
            date(2024, 12, 31),
            date(2025, 1, 1),
        ]


class TestClockTimes:
    def test_parse_hhmm_is_strict(self):
        assert parse_hhmm("0730") == "0730"
        assert parse_hhmm(" 2359 ") == "2359"
        assert parse_hhmm("730") is None
        assert parse_hhmm("7:30") is None
        assert parse_hhmm("2400") is None
        assert parse_hhmm("1260") is None
        assert parse_hhmm("") is None

    def test_only_ascii_digits_are_clock_times(self):
        assert parse_hhmm("\uff10\uff17\uff10\uff10") is None
        assert parse_hhmm("\u0660\u0667\u0663\u0660") is None

    def test_display_time(self):
        assert display_time("0730") == "7:30 AM"
        assert display_time("0000") == "12:00 AM"
        assert display_time("1200") == "12:00 PM"
        assert display_time("1330") == "1:30 PM"
        assert display_time(None) == ""
