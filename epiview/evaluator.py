"""
Formula evaluator
=================

Pure functions over an `Entry` and a `Formula`. Nothing here mutates the
entry (`EntryStore` sorts each entry's date keys when a merge pass ends),
so evaluation is safe to run for many regions at once.

Missing data is not an error: an incomplete entry, or a date before the
first record, evaluates to 0. Unknown terms raise `InvalidArgument`.
"""

from __future__ import annotations
from typing import List

from .dates import DateLike, add_days, days_descending, parse_date
from .errors import InvalidArgument
from .formula import Formula, normalize_denominator, normalize_numerator
from .models import Entry, SQ_KM_PER_SQ_MILE


def evaluate_basic(entry: Entry, numerator: str, denominator: str, on: DateLike) -> float:
    """Evaluate numerator / denominator at the effective date for `on`.

    The effective date is the latest recorded date on or before `on`; with no
    such date the result is 0. A zero denominator also gives 0.
    """
    num = normalize_numerator(numerator)
    den = normalize_denominator(denominator)
    on = parse_date(on)

    date_key = entry.effective_date(on)
    if date_key is None:
        return 0.0
    count = entry.counts[date_key]

    if num == "cases":
        nval = count.cases
    elif num == "deaths":
        nval = count.deaths
    else:
        # "new ..." subtracts the value effective on the previous day, if any.
        # With no earlier record this is the cumulative total.
        nval = count.cases if num == "new cases" else count.deaths
        prev_key = entry.effective_date(add_days(on, -1))
        if prev_key is not None:
            prev = entry.counts[prev_key]
            nval -= prev.cases if num == "new cases" else prev.deaths

    if den == "total":
        dval = 1.0
    elif den == "per case":
        dval = count.cases
    elif den == "per 1000 cap.":
        dval = entry.population / 1000
    elif den == "per sq. mi.":
        dval = entry.area
    else:
        dval = entry.area * SQ_KM_PER_SQ_MILE

    if dval == 0:
        return 0.0
    return nval / dval


def evaluate(entry: Entry, formula: Formula) -> float:
    """Evaluate a full formula (basic formula + temporal mode) on one entry."""
    if not entry.complete():
        return 0.0
    n, d = formula.numerator, formula.denominator
    if formula.mode == "on":
        return evaluate_basic(entry, n, d, formula.date)
    if formula.mode == "differenced between":
        return evaluate_basic(entry, n, d, formula.date) - evaluate_basic(entry, n, d, formula.ref_date)
    if formula.mode == "averaged":
        values: List[float] = [evaluate_basic(entry, n, d, day)
                               for day in days_descending(formula.date, formula.ref_date)]
        if not values:
            raise InvalidArgument(
                f"Averaging range is empty: {formula.ref_date} is after {formula.date}")
        return sum(values) / len(values)
    raise InvalidArgument(f"Invalid mode: {formula.mode!r}")
