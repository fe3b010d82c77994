"""Publish date normalization.

Feeds carry dates in many shapes: RFC 822, ISO 8601, dotted or slashed
numeric dates, and CJK "2024年10月1日" forms. Everything is reduced to a
zero-padded ``YYYY-MM-DD`` string; unparseable input falls back to today.
"""

import logging
import re
from datetime import datetime
from typing import Optional

import pendulum
from dateutil.parser import parse as parse_date

logger = logging.getLogger(__name__)

MIN_PLAUSIBLE_YEAR = 1990

_WEEKDAY_PREFIX = re.compile(r"^(Mon|Tue|Wed|Thu|Fri|Sat|Sun),?\s*", re.IGNORECASE)
_CLOCK_SUFFIX = re.compile(r"\d{1,2}:\d{2}(:\d{2})?.*$")
_YMD = re.compile(r"(\d{4})[-./](\d{1,2})[-./](\d{1,2})")
_DMY = re.compile(r"(\d{1,2})[-./](\d{1,2})[-./](\d{4})")
_CJK = re.compile(r"(\d{4})年(\d{1,2})月(\d{1,2})日")

# Two fill-in dates differing only in the day
_FILL_DATES = (datetime(2000, 1, 1), datetime(2000, 1, 2))


def today_str() -> str:
    """Current local date as YYYY-MM-DD."""
    return pendulum.today().to_date_string()


def _format(year: str, month: str, day: str) -> str:
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def _general_parse(text: str) -> Optional[pendulum.Date]:
    """Lenient parse; None when the text is not a calendar date."""
    if not text:
        return None
    try:
        parsed = pendulum.parse(text, strict=False)
    except (ValueError, OverflowError, TypeError):
        return None
    # Durations and bare times are not dates
    if not hasattr(parsed, "year") or not hasattr(parsed, "day"):
        return None
    if _lacks_day(text):
        parsed = parsed.replace(day=1)
    return parsed


def _lacks_day(text: str) -> bool:
    """True for month-only dates such as "Oct 2024"."""
    try:
        first, second = (parse_date(text, default=d) for d in _FILL_DATES)
    except (ValueError, OverflowError):
        return False
    return first.day != second.day


def normalize_publish_date(value: Optional[str]) -> str:
    """Normalize a feed date string to YYYY-MM-DD."""
    if not value or not value.strip():
        return today_str()

    original = value.strip()
    cleaned = _WEEKDAY_PREFIX.sub("", original)
    cleaned = _CLOCK_SUFFIX.sub("", cleaned).strip()

    parsed = _general_parse(cleaned)
    if parsed is not None and parsed.year > MIN_PLAUSIBLE_YEAR:
        return parsed.to_date_string()

    match = _YMD.search(original)
    if match:
        return _format(*match.groups())

    match = _DMY.search(original)
    if match:
        day, month, year = match.groups()
        return _format(year, month, day)

    match = _CJK.search(original)
    if match:
        return _format(*match.groups())

    parsed = _general_parse(original)
    if parsed is not None:
        return parsed.to_date_string()

    logger.debug("Unparseable publish date %r, using today", original)
    return today_str()
