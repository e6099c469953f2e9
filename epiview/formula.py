"""
Formula descriptors
===================

A formula is "numerator over denominator, in a temporal mode", for example:

    new cases per 1000 cap. averaged between 2020-04-01 and 2020-03-25

Only the fixed set of terms below is supported. `Formula` validates its terms
on construction so a bad configuration fails before any region is evaluated.

This file provides:
- The enumerated terms (NUMERATORS / DENOMINATORS / MODES)
- The `Formula` record
- A tokenizer + parser for the text form (`parse_formula`)
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
import re

from .dates import DateLike, parse_date
from .errors import InvalidArgument

NUMERATORS = ("cases", "deaths", "new cases", "new deaths")
DENOMINATORS = ("total", "per case", "per 1000 cap.", "per sq. mi.", "per sq. km.")
MODES = ("on", "differenced between", "averaged")

# Modes that need a reference date
RANGE_MODES = ("differenced between", "averaged")

# "cases (L.A.)" -> "cases": pickers may label a numerator with its dataset
_LABEL_SUFFIX_RE = re.compile(r"\s*\(.*\)\s*$")


def normalize_numerator(value: str) -> str:
    n = " ".join(_LABEL_SUFFIX_RE.sub("", str(value)).split()).lower()
    if n not in NUMERATORS:
        raise InvalidArgument(f"Invalid numerator: {value!r}. Expected one of {NUMERATORS}")
    return n


def normalize_denominator(value: str) -> str:
    d = " ".join(str(value).split()).lower()
    if d not in DENOMINATORS:
        raise InvalidArgument(f"Invalid denominator: {value!r}. Expected one of {DENOMINATORS}")
    return d


def normalize_mode(value: str) -> str:
    m = " ".join(str(value).split()).lower()
    if m == "averaged between":
        m = "averaged"
    if m not in MODES:
        raise InvalidArgument(f"Invalid mode: {value!r}. Expected one of {MODES}")
    return m


@dataclass(frozen=True)
class Formula:
    """A validated formula descriptor.

    `date` is the evaluation date. `ref_date` is required by the range modes:
    the other end of a difference, or the earliest day of an average.
    """
    numerator: str
    denominator: str
    mode: str
    date: date
    ref_date: Optional[date] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "numerator", normalize_numerator(self.numerator))
        object.__setattr__(self, "denominator", normalize_denominator(self.denominator))
        object.__setattr__(self, "mode", normalize_mode(self.mode))
        object.__setattr__(self, "date", parse_date(self.date))
        if self.ref_date is not None:
            object.__setattr__(self, "ref_date", parse_date(self.ref_date))
        if self.mode in RANGE_MODES and self.ref_date is None:
            raise InvalidArgument(f"Mode {self.mode!r} requires a reference date")
        if self.mode == "averaged" and self.ref_date > self.date:
            raise InvalidArgument(
                f"Averaging range is empty: ref_date {self.ref_date} is after date {self.date}")

    def describe(self) -> str:
        """One-line, human readable form (also accepted by `parse_formula`)."""
        head = self.numerator if self.denominator == "total" else f"{self.numerator} {self.denominator}"
        if self.mode == "on":
            return f"{head} on {self.date.isoformat()}"
        mode = "averaged between" if self.mode == "averaged" else self.mode
        return f"{head} {mode} {self.date.isoformat()} and {self.ref_date.isoformat()}"

    def with_changes(self, **changes) -> "Formula":
        fields = dict(numerator=self.numerator, denominator=self.denominator,
                      mode=self.mode, date=self.date, ref_date=self.ref_date)
        fields.update(changes)
        return Formula(**fields)


def make_formula(numerator: str, denominator: str, mode: str,
                 on: DateLike, ref: Optional[DateLike] = None) -> Formula:
    return Formula(numerator, denominator, mode, parse_date(on),
                   parse_date(ref) if ref is not None else None)


# -----------------------------
# Text form
# -----------------------------
# formula := NUMERATOR [DENOMINATOR] MODE DATE [AND DATE]
# The "on" mode takes one date, the range modes take two.

def _alt(words) -> str:
    # Longest first so "new cases" wins over "cases"
    parts = sorted(words, key=len, reverse=True)
    return "|".join(r"\s+".join(re.escape(w) for w in p.split()) for p in parts)


_TOKEN_RE = re.compile(
    rf"""
    \s*(?:
        (?P<NUMERATOR>(?:{_alt(NUMERATORS)})(?:\s*\([^)]*\))?) |
        (?P<DENOMINATOR>{_alt(DENOMINATORS)}) |
        (?P<MODE>differenced\s+between|averaged(?:\s+between)?|on) |
        (?P<DATE>\d{{4}}-\d{{2}}-\d{{2}}) |
        (?P<AND>and)
    )(?=\s|$)\s*
    """,
    re.VERBOSE | re.IGNORECASE,
)


def tokenize(text: str) -> List[tuple]:
    pos = 0
    out: List[tuple] = []
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m:
            raise InvalidArgument(f"Unexpected formula text near: {text[pos:pos+20]!r}")
        pos = m.end()
        kind = m.lastgroup
        out.append((kind, m.group(kind)))
    return out


def parse_formula(text: str) -> Formula:
    """Parse the text form of a formula.

    Examples:
        parse_formula("cases per 1000 cap. on 2020-04-01")
        parse_formula("deaths differenced between 2020-04-01 and 2020-03-01")
    """
    toks = tokenize(text)
    kinds = [k for k, _ in toks]
    i = 0

    def take(kind: str) -> str:
        nonlocal i
        if i >= len(toks) or kinds[i] != kind:
            got = kinds[i] if i < len(toks) else "end of input"
            raise InvalidArgument(f"Expected {kind.lower()} in formula, got {got}")
        i += 1
        return toks[i - 1][1]

    numerator = take("NUMERATOR")
    denominator = take("DENOMINATOR") if i < len(toks) and kinds[i] == "DENOMINATOR" else "total"
    mode = normalize_mode(take("MODE"))
    on = take("DATE")
    ref = None
    if mode in RANGE_MODES:
        take("AND")
        ref = take("DATE")
    if i != len(toks):
        raise InvalidArgument(f"Unexpected token in formula: {toks[i][1]!r}")
    return make_formula(numerator, denominator, mode, on, ref)
