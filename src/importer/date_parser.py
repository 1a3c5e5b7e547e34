"""
Normalization of DataCite (RKMS-ISO8601) date strings to calendar dates.

Partial dates are widened to a full date: the start of the period for
single dates and range starts, the end of the period for range ends
("2020" -> "2020-12-31", "2020-02" -> "2020-02-29").
"""

import calendar
import logging
import re
from datetime import date, datetime
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


_FULL_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})$')
_YEAR_MONTH = re.compile(r'^(\d{4})-(\d{2})$')
_YEAR = re.compile(r'^(\d{4})$')
_LEADING_DATE = re.compile(r'^(\d{4})-(\d{2})-(\d{2})[T\s]')


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _calendar_date(year: int, month: int, day: int) -> Optional[str]:
    """
    Validate a date, clamping an out-of-range day to the end of its month.

    "2021-02-30" becomes "2021-02-28"; an invalid month yields None.
    """
    if not 1 <= month <= 12 or day < 1:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        corrected = date(year, month, _last_day(year, month)).isoformat()
        logger.warning(f"Invalid date {year:04d}-{month:02d}-{day:02d} corrected to {corrected}")
        return corrected


def parse_date(value: Optional[str], period_end: bool = False) -> Optional[str]:
    """
    Normalize a date string to YYYY-MM-DD.

    Args:
        value: YYYY, YYYY-MM, YYYY-MM-DD or an ISO datetime
        period_end: Widen partial dates to the end of the period

    Returns:
        ISO date string, or None if nothing usable could be parsed
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = _FULL_DATE.match(text)
    if match:
        return _calendar_date(*(int(part) for part in match.groups()))

    match = _YEAR_MONTH.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            return None
        day = _last_day(year, month) if period_end else 1
        return date(year, month, day).isoformat()

    match = _YEAR.match(text)
    if match:
        year = int(match.group(1))
        return f"{year:04d}-12-31" if period_end else f"{year:04d}-01-01"

    match = _LEADING_DATE.match(text)
    if match:
        return _calendar_date(*(int(part) for part in match.groups()))

    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        logger.warning(f"Could not parse date: {text}")
        return None


def parse_date_range(value: Optional[str]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Split a DataCite date into (date_value, start_date, end_date).

    "start/end" is a closed range, "start/" an open-ended range; anything
    else is a single date.
    """
    if value is None:
        return None, None, None
    text = str(value).strip()
    if '/' in text:
        start, end = text.split('/', 1)
        start_date = parse_date(start)
        end_date = parse_date(end, period_end=True) if end.strip() else None
        return None, start_date, end_date
    return parse_date(text), None, None
