"""
Source adapters (raw rows/features -> merge records)
====================================================

Each dataset variant decodes its own column names and key scheme, but the
join itself is generic. An adapter turns one raw row (or GeoJSON feature)
into a small record for `EntryStore`, or raises `MalformedRecord` when the
row is unusable. The store skips those and keeps going.

Key ideas:
- Conversion helpers (_to_int/_to_float/_to_str) treat blanks/NaN as missing.
- Required fields that are missing make the whole row malformed.
- Adapters are selected per deployment with `make_adapter(variant)`.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol
import math

import pandas as pd

from .dates import iso
from .errors import InvalidArgument, MalformedRecord
from .models import Polygon, outer_rings


# -----------------------------
# Merge records
# -----------------------------

@dataclass(frozen=True)
class PopulationRecord:
    key: str
    name: str
    region: str
    population: int
    # Some datasets carry land area with the population table (sq mi)
    area: Optional[float] = None


@dataclass(frozen=True)
class BoundsRecord:
    key: str
    name: str
    region: str
    land_area_sq_m: float
    polygons: List[Polygon] = field(default_factory=list)


@dataclass(frozen=True)
class CountRecord:
    key: str
    name: str
    region: str
    date: str
    cases: int
    deaths: int


class SourceAdapter(Protocol):
    """What `EntryStore` needs from a dataset variant."""
    name: str

    def population_record(self, row: Mapping[str, Any]) -> PopulationRecord: ...

    def bounds_record(self, feature: Mapping[str, Any]) -> BoundsRecord: ...

    def count_record(self, row: Mapping[str, Any]) -> CountRecord: ...


# -----------------------------
# Conversion helpers
# -----------------------------

def _missing(x) -> bool:
    if x is None:
        return True
    if isinstance(x, str):
        return x.strip() == ""
    try:
        return bool(pd.isna(x))
    except (TypeError, ValueError):
        return False


def _to_int(x) -> Optional[int]:
    """Convert a cell to int, returning None if missing/invalid."""
    value = _to_float(x)
    if value is None: return None
    return int(value)


def _to_float(x) -> Optional[float]:
    """Convert a cell to a finite float, returning None if missing/invalid."""
    if _missing(x): return None
    try: value = float(x)
    except Exception: return None
    return value if math.isfinite(value) else None


def _to_str(x) -> str:
    if _missing(x): return ""
    return str(x).strip()


def _require(row: Mapping[str, Any], column: str, convert):
    value = convert(row.get(column))
    if value is None or value == "":
        raise MalformedRecord(f"Missing or invalid {column!r} in row: {dict(row)!r}")
    return value


def _properties(feature: Mapping[str, Any]) -> Mapping[str, Any]:
    props = feature.get("properties")
    if not isinstance(props, Mapping):
        raise MalformedRecord("Feature has no properties")
    return props


def _geometry(feature: Mapping[str, Any]) -> List[Polygon]:
    geometry = feature.get("geometry")
    if not isinstance(geometry, Mapping):
        raise MalformedRecord("Feature has no geometry")
    try:
        return outer_rings(geometry)
    except MalformedRecord:
        raise
    except (TypeError, ValueError, IndexError) as e:
        raise MalformedRecord(f"Bad coordinates: {e}") from e


def _count(row: Mapping[str, Any], column: str) -> int:
    value = _require(row, column, _to_int)
    if value < 0:
        raise MalformedRecord(f"Negative {column!r} in row: {dict(row)!r}")
    return value


def _date_key(value) -> str:
    try:
        return iso(_to_str(value))
    except InvalidArgument as e:
        raise MalformedRecord(str(e)) from e


def _fips(value, width: int) -> Optional[str]:
    n = _to_int(value)
    if n is None or n < 0:
        return None
    return str(n).zfill(width)


# -----------------------------
# United States (county level)
# -----------------------------

class UnitedStatesCounties:
    """US counties keyed by 5-digit FIPS code.

    - Population: census county estimates (STATE, COUNTY, CTYNAME, STNAME).
    - Boundaries: census cartographic boundary GeoJSON (GEOID, NAME, ALAND).
    - Counts: NYT county CSV (date, county, state, fips, cases, deaths).

    NYT reports the five NYC boroughs as one "New York City" row without a
    FIPS code; `special_counties` maps such names to a fixed key.
    """
    name = "united-states"

    def __init__(self, population_column: str = "POPESTIMATE2018",
                 special_counties: Optional[Dict[str, str]] = None) -> None:
        self.population_column = population_column
        self.special_counties = dict(special_counties or {})

    def population_record(self, row: Mapping[str, Any]) -> PopulationRecord:
        state = _fips(row.get("STATE"), 2)
        county = _fips(row.get("COUNTY"), 3)
        if state is None or county is None:
            raise MalformedRecord(f"Missing STATE/COUNTY in row: {dict(row)!r}")
        if county == "000":
            # state summary row, not a county
            raise MalformedRecord(f"State summary row for {_to_str(row.get('STNAME'))!r}")
        return PopulationRecord(
            key=state + county,
            name=_require(row, "CTYNAME", _to_str),
            region=_to_str(row.get("STNAME")),
            population=_count(row, self.population_column),
        )

    def bounds_record(self, feature: Mapping[str, Any]) -> BoundsRecord:
        props = _properties(feature)
        key = _to_str(props.get("GEOID"))
        if not key:
            raise MalformedRecord("Feature has no GEOID")
        return BoundsRecord(
            key=key,
            name=_to_str(props.get("NAME")),
            region=f"State {_to_str(props.get('STATEFP'))}",
            land_area_sq_m=_to_float(props.get("ALAND")) or 0.0,
            polygons=_geometry(feature),
        )

    def count_record(self, row: Mapping[str, Any]) -> CountRecord:
        county = _to_str(row.get("county"))
        key = self.special_counties.get(county) or _fips(row.get("fips"), 5)
        if not key:
            raise MalformedRecord(f"No FIPS code for county {county!r}")
        return CountRecord(
            key=key,
            name=f"{county} County",
            region=_to_str(row.get("state")),
            date=_date_key(row.get("date")),
            cases=_count(row, "cases"),
            deaths=_count(row, "deaths"),
        )


# -----------------------------
# Los Angeles (neighborhood level)
# -----------------------------

class LosAngelesNeighborhoods:
    """L.A. County neighborhoods keyed by neighborhood name.

    The population table also carries land area (`area_sqmi`); the boundary
    features carry no area of their own.
    """
    name = "los-angeles"
    region = "Los Angeles, California"

    def population_record(self, row: Mapping[str, Any]) -> PopulationRecord:
        return PopulationRecord(
            key=_require(row, "name", _to_str),
            name=_to_str(row.get("name")),
            region=self.region,
            population=_count(row, "population"),
            area=_to_float(row.get("area_sqmi")),
        )

    def bounds_record(self, feature: Mapping[str, Any]) -> BoundsRecord:
        props = _properties(feature)
        key = _to_str(props.get("name"))
        if not key:
            raise MalformedRecord("Feature has no name")
        return BoundsRecord(key=key, name=key, region=self.region,
                            land_area_sq_m=0.0, polygons=_geometry(feature))

    def count_record(self, row: Mapping[str, Any]) -> CountRecord:
        key = _require(row, "name", _to_str)
        return CountRecord(
            key=key,
            name=key,
            region=self.region,
            date=_date_key(row.get("date")),
            cases=_count(row, "cases"),
            deaths=_count(row, "deaths"),
        )


VARIANTS = ("united-states", "los-angeles")


def make_adapter(variant: str, **kwargs) -> SourceAdapter:
    """Build the adapter for a dataset variant."""
    v = variant.strip().lower().replace(" ", "-")
    if v == "united-states":
        return UnitedStatesCounties(**kwargs)
    if v == "los-angeles":
        return LosAngelesNeighborhoods()
    raise InvalidArgument(f"Unknown dataset variant: {variant!r}. Expected one of {VARIANTS}")
