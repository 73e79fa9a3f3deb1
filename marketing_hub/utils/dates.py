"""
Date range helpers shared by the resolver, the sync jobs and the API
"""
from datetime import date, datetime, timedelta
from typing import Iterator, List, Tuple, Union

from dateutil import parser as date_parser

DateLike = Union[date, datetime, str]


def to_date(value: DateLike) -> date:
    """
    Coerce a date, datetime or ISO-ish string to a date.

    Raises ValueError for anything that cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date_parser.parse(value).date()
        except (ValueError, OverflowError) as e:
            raise ValueError(f"Invalid date: {value!r}") from e
    raise ValueError(f"Invalid date: {value!r}")


def iso(value: date) -> str:
    return value.isoformat()


def previous_period(start: date, end: date) -> Tuple[date, date]:
    """
    Equal-length range immediately before [start, end].

    2025-01-08..2025-01-14 -> 2025-01-01..2025-01-07
    """
    length = (end - start).days + 1
    prev_end = start - timedelta(days=1)
    prev_start = prev_end - timedelta(days=length - 1)
    return prev_start, prev_end


def default_range(today: date, days: int = 30) -> Tuple[date, date]:
    """
    Dashboard default: `today - days` through today, both ends included.

    That spans days + 1 calendar days; 2025-03-01 -> 2025-01-30..2025-03-01.
    """
    return today - timedelta(days=days), today


def standard_ranges(yesterday: date, lengths=(7, 30, 90)) -> List[Tuple[date, date]]:
    """Ranges the dashboard presets ask for, all ending yesterday"""
    return [(yesterday - timedelta(days=n), yesterday) for n in lengths]


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
