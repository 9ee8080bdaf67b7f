"""Date and clock-time helpers.

"Today" is resolved exactly once per request or batch run through
:func:`resolve_as_of` and passed down explicitly from there.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Tuple

import pytz

from .errors import InvalidDateInput

log = logging.getLogger(__name__)

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

HHMM_RE = re.compile(r"^([0-9]{2})([0-9]{2})$")


def get_timezone(tz_name: str):
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        log.warning("Invalid timezone '%s'; defaulting to UTC", tz_name)
        return pytz.UTC


def today_in(tz_name: str) -> date:
    return datetime.now(get_timezone(tz_name)).date()


def parse_iso_date(value: str, field_name: str = "testDate") -> date:
    text = (value or "").strip()
    if not re.fullmatch(r"[0-9]{4}-[0-9]{2}-[0-9]{2}", text):
        raise InvalidDateInput(
            f"{field_name} must be formatted YYYY-MM-DD", {"field": field_name, "value": value}
        )
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise InvalidDateInput(
            f"{field_name} is not a real calendar date", {"field": field_name, "value": value}
        ) from exc


def resolve_as_of(
    override: Optional[str],
    simulated_default: Optional[str],
    tz_name: str,
) -> Tuple[date, bool]:
    """Return ``(as_of, test_mode)``.

    Precedence: explicit request override, then the configured simulation
    default, then the real current date in ``tz_name``.  ``test_mode`` is
    true whenever the date did not come from the real clock.
    """

    if override:
        return parse_iso_date(override, "testDate"), True
    if simulated_default:
        return parse_iso_date(simulated_default, "SIMULATED_TODAY"), True
    return today_in(tz_name), False


def window_dates(as_of: date, offsets: Iterable[int]) -> List[date]:
    return [as_of + timedelta(days=offset) for offset in offsets]


def sheet_name_for(day: date, fmt: str = "{weekday} {day} {month}") -> str:
    """Render the whiteboard tab name for ``day`` (``Mon 15 Dec`` by default)."""

    return fmt.format(
        weekday=WEEKDAYS[day.weekday()],
        day=day.day,
        day2=f"{day.day:02d}",
        month=MONTHS[day.month - 1],
        year=day.year,
        yy=f"{day.year % 100:02d}",
    )


# ---------------------------------------------------------------------------
# HHMM clock times
# ---------------------------------------------------------------------------


def parse_hhmm(value) -> Optional[str]:
    """Return the strict zero-padded ``HHMM`` string, or ``None``."""

    text = str(value or "").strip()
    m = HHMM_RE.match(text)
    if not m:
        return None
    hours, minutes = int(m.group(1)), int(m.group(2))
    if hours > 23 or minutes > 59:
        return None
    return text


def minutes_since_midnight(hhmm: Optional[str]) -> Optional[int]:
    if not hhmm:
        return None
    return int(hhmm[:2]) * 60 + int(hhmm[2:])


def display_time(hhmm: Optional[str]) -> str:
    """``"0730"`` -> ``"7:30 AM"``."""

    if not hhmm:
        return ""
    hours, minutes = int(hhmm[:2]), int(hhmm[2:])
    suffix = "PM" if hours >= 12 else "AM"
    display_hour = hours - 12 if hours > 12 else (hours or 12)
    return f"{display_hour}:{minutes:02d} {suffix}"
