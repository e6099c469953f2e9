"""
Data model (Entry)
==================

One `Entry` holds everything known about a region: display labels,
population, land area, boundary polygons and a sparse series of cumulative
case/death counts keyed by ISO date string.

Entries are built up by the merge passes in `epiview.table` and are only
usable once `complete()` is true. After ingestion the table (and so every
Entry) is treated as read-only.
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .dates import DateLike, iso
from .errors import MalformedRecord, MissingData

# A square mile is defined as exactly 2589988.110336 square meters.
SQ_METERS_PER_SQ_MILE = 2589988.110336
SQ_KM_PER_SQ_MILE = SQ_METERS_PER_SQ_MILE / 1e6

# Label precedence: population rows > boundary features > count rows
LABELS_FROM_COUNTS = 1
LABELS_FROM_BOUNDS = 2
LABELS_FROM_POPULATION = 3
LABELS_FIXED = 4


@dataclass(frozen=True)
class LatLng:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Count:
    """Cumulative totals as of one date."""
    cases: int
    deaths: int


Polygon = List[LatLng]


@dataclass
class Entry:
    """Epidemic and related information about one region.

    `population` uses 0 as its "unset" value. `area` is in square miles.
    `bounds` holds the outer ring of every polygon; holes are dropped.
    """
    name: str
    region: str
    population: int = 0
    area: float = 0.0
    bounds: List[Polygon] = field(default_factory=list)
    counts: Dict[str, Count] = field(default_factory=dict)

    # bookkeeping, not part of the record's value
    label_rank: int = field(default=0, compare=False, repr=False)
    _dates: Optional[List[str]] = field(default=None, compare=False, repr=False)

    def complete(self) -> bool:
        """Whether all four required fields are populated."""
        return (self.population > 0 and self.area > 0
                and len(self.bounds) != 0 and len(self.counts) != 0)

    @property
    def label(self) -> str:
        return f"{self.name}, {self.region}" if self.region else self.name

    def set_labels(self, name: str, region: str, rank: int) -> None:
        """Set display labels unless a higher-precedence source already did."""
        if rank >= self.label_rank:
            self.name = name
            self.region = region
            self.label_rank = rank

    # ---------------- Counts ----------------
    def record_count(self, date_key: str, cases: int, deaths: int) -> None:
        """Upsert the cumulative totals for one date."""
        if cases < 0 or deaths < 0:
            raise MalformedRecord(f"Negative count on {date_key}: cases={cases} deaths={deaths}")
        if date_key not in self.counts:
            self._dates = None
        self.counts[date_key] = Count(cases=cases, deaths=deaths)

    def replace_counts(self, counts: Mapping[str, Count]) -> None:
        self.counts = dict(counts)
        self._dates = None

    def dates(self) -> List[str]:
        """Date keys in chronological order."""
        if self._dates is None:
            self._dates = sorted(self.counts)
        return self._dates

    def effective_date(self, on: DateLike, strict: bool = False) -> Optional[str]:
        """Return the latest date key on or before `on`.

        Returns None when there is none, or raises MissingData if `strict`.
        """
        target = iso(on)
        keys = self.dates()
        i = bisect_right(keys, target)
        if i == 0:
            if strict:
                raise MissingData(f"No counts for {self.label} on or before {target}")
            return None
        return keys[i - 1]

    # ---------------- Evaluation ----------------
    def evaluate_basic(self, numerator: str, denominator: str, on: DateLike) -> float:
        from .evaluator import evaluate_basic
        return evaluate_basic(self, numerator, denominator, on)

    def evaluate(self, formula) -> float:
        from .evaluator import evaluate
        return evaluate(self, formula)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "region": self.region,
            "population": self.population,
            "area": self.area,
            "bounds": [[(p.latitude, p.longitude) for p in ring] for ring in self.bounds],
            "counts": {d: {"cases": c.cases, "deaths": c.deaths} for d, c in self.counts.items()},
        }


def parse_coord(coord) -> LatLng:
    """Convert a GeoJSON [longitude, latitude] pair to a LatLng."""
    return LatLng(latitude=float(coord[1]), longitude=float(coord[0]))


def outer_rings(geometry: Mapping) -> List[Polygon]:
    """Outer ring of each polygon in a GeoJSON Polygon/MultiPolygon geometry."""
    gtype = geometry.get("type")
    coords = geometry.get("coordinates")
    if not coords:
        raise MalformedRecord(f"Geometry has no coordinates (type={gtype!r})")
    if gtype == "Polygon":
        return [[parse_coord(c) for c in coords[0]]]
    if gtype == "MultiPolygon":
        return [[parse_coord(c) for c in poly[0]] for poly in coords]
    raise MalformedRecord(f"Unsupported geometry type: {gtype!r}")


def sq_meters_to_sq_miles(value: float) -> float:
    return value / SQ_METERS_PER_SQ_MILE


def sum_counts(series: List[Mapping[str, Count]]) -> Dict[str, Count]:
    """Per-date sum of several count series; a missing date contributes 0."""
    totals: Dict[str, Tuple[int, int]] = {}
    for counts in series:
        for d, c in counts.items():
            cases, deaths = totals.get(d, (0, 0))
            totals[d] = (cases + c.cases, deaths + c.deaths)
    return {d: Count(cases=v[0], deaths=v[1]) for d, v in sorted(totals.items())}
