import re
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from config import get_settings

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
_MONTH_RE = re.compile(MONTH_PATTERN)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def parse_month(month: str) -> tuple[int, int]:
    if not _MONTH_RE.match(month):
        raise ValueError(f"Invalid month {month!r}, expected YYYY-MM")
    year_str, month_str = month.split("-", 1)
    return int(year_str), int(month_str)


def format_month(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def next_month(month: str) -> str:
    year, mon = parse_month(month)
    if mon == 12:
        return format_month(year + 1, 1)
    return format_month(year, mon + 1)


def month_period(month: str) -> Period:
    """Calendar bounds of a ``YYYY-MM`` month, last day included."""
    year, mon = parse_month(month)
    first = date(year, mon, 1)
    if mon == 12:
        following = date(year + 1, 1, 1)
    else:
        following = date(year, mon + 1, 1)
    return Period(month, first, following - date.resolution)


def year_period(year: int) -> Period:
    return Period(str(year), date(year, 1, 1), date(year, 12, 31))
