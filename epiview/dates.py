"""
Date helpers
============

Count series are keyed by ISO date strings (YYYY-MM-DD). ISO strings sort
lexicographically in calendar order, so the table compares keys as plain
strings; these helpers cover parsing and day arithmetic.
"""

from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Iterator, Union

from .errors import InvalidArgument

DateLike = Union[date, str]


def parse_date(value: DateLike) -> date:
    """Parse an ISO date string (or pass a date through).

    datetimes (including pandas Timestamps) are truncated to their day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InvalidArgument(f"Invalid ISO date: {value!r}") from e


def iso(value: DateLike) -> str:
    return parse_date(value).isoformat()


def add_days(value: DateLike, days: int) -> date:
    return parse_date(value) + timedelta(days=days)


def days_descending(start: DateLike, stop: DateLike) -> Iterator[date]:
    """Yield every day from `start` down to `stop`, both inclusive."""
    d = parse_date(start)
    end = parse_date(stop)
    while d >= end:
        yield d
        d -= timedelta(days=1)
