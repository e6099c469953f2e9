"""
Join engine (EntryStore)
========================

`EntryStore` joins three independently sourced datasets into one `Entry`
per region key:

1) add_population(rows)   -> population (+ labels, optional area)
2) add_bounds(features)   -> land area (summed) + outer-ring polygons
3) add_counts(rows)       -> sparse date -> {cases, deaths} series

Each pass creates an Entry the first time it sees a key, so the passes can
arrive in any order. A malformed row is logged and skipped; it never aborts
the pass. Composite regions (`CompositeRule`) are recomputed at the end of
every pass so they follow whichever constituents are populated so far.

The passes mutate the store and must run on one thread, one after another.
Once ingestion is done the store is read-only.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from .dates import parse_date
from .errors import InvalidArgument, MalformedRecord
from .logging_config import get_logger
from .models import (Entry, LABELS_FIXED, LABELS_FROM_BOUNDS, LABELS_FROM_COUNTS,
                     LABELS_FROM_POPULATION, sq_meters_to_sq_miles, sum_counts)
from .sources import SourceAdapter

logger = get_logger(__name__)

COMPOSITE_COUNT_POLICIES = ("sum", "none")


@dataclass(frozen=True)
class CompositeRule:
    """A synthetic region built from a fixed, ordered list of constituents.

    Example: New York City (36000) from its five boroughs.
    """
    key: str
    name: str
    region: str
    constituents: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "constituents", tuple(str(k) for k in self.constituents))
        if self.key in self.constituents:
            raise InvalidArgument(f"Composite {self.key!r} lists itself as a constituent")


@dataclass(frozen=True)
class MergeSummary:
    """Outcome of one merge pass."""
    accepted: int
    skipped: int


@dataclass
class EntryStore:
    """Keyed collection of Entries plus the observed date range.

    `min_date` / `max_date` are the smallest / largest ISO date keys seen by
    `add_counts` (None until the first count row).
    """
    adapter: SourceAdapter
    composites: Sequence[CompositeRule] = ()
    composite_counts: str = "sum"
    data: Dict[str, Entry] = field(default_factory=dict)
    min_date: Optional[str] = None
    max_date: Optional[str] = None

    def __post_init__(self) -> None:
        if self.composite_counts not in COMPOSITE_COUNT_POLICIES:
            raise InvalidArgument(
                f"composite_counts must be one of {COMPOSITE_COUNT_POLICIES}, got {self.composite_counts!r}")
        self.composites = tuple(self.composites)

    # ---------------- Mapping-style access ----------------
    def __len__(self) -> int:
        return len(self.data)

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def __getitem__(self, key: str) -> Entry:
        return self.data[key]

    def get(self, key: str) -> Optional[Entry]:
        return self.data.get(key)

    def complete_items(self) -> Iterator[Tuple[str, Entry]]:
        """(key, entry) pairs for entries usable by the evaluator."""
        for key, entry in self.data.items():
            if entry.complete():
                yield key, entry

    @property
    def date_range(self) -> Optional[Tuple[date, date]]:
        if self.min_date is None:
            return None
        return parse_date(self.min_date), parse_date(self.max_date)

    def _entry(self, key: str, name: str, region: str, rank: int) -> Entry:
        entry = self.data.get(key)
        if entry is None:
            entry = self.data[key] = Entry(name=name, region=region)
        entry.set_labels(name, region, rank)
        return entry

    # ---------------- Merge passes ----------------
    def add_population(self, rows: Iterable[Mapping[str, Any]]) -> MergeSummary:
        """Set population (last write wins) and display labels per row."""
        def merge(row):
            rec = self.adapter.population_record(row)
            entry = self._entry(rec.key, rec.name, rec.region, LABELS_FROM_POPULATION)
            entry.population = rec.population
            if rec.area is not None:
                entry.area = rec.area
        return self._run_pass("population", rows, merge)

    def add_bounds(self, features: Iterable[Mapping[str, Any]]) -> MergeSummary:
        """Accumulate land area and outer-ring polygons per feature.

        Accepts a GeoJSON FeatureCollection or an iterable of features.
        """
        if isinstance(features, Mapping):
            features = features.get("features", [])

        def merge(feature):
            rec = self.adapter.bounds_record(feature)
            entry = self._entry(rec.key, rec.name, rec.region, LABELS_FROM_BOUNDS)
            entry.area += sq_meters_to_sq_miles(rec.land_area_sq_m)
            entry.bounds.extend(rec.polygons)
        return self._run_pass("bounds", features, merge)

    def add_counts(self, rows: Iterable[Mapping[str, Any]]) -> MergeSummary:
        """Upsert cumulative counts per row and widen the observed date range."""
        def merge(row):
            rec = self.adapter.count_record(row)
            entry = self._entry(rec.key, rec.name, rec.region, LABELS_FROM_COUNTS)
            entry.record_count(rec.date, rec.cases, rec.deaths)
            if self.min_date is None or rec.date < self.min_date:
                self.min_date = rec.date
            if self.max_date is None or rec.date > self.max_date:
                self.max_date = rec.date
        return self._run_pass("counts", rows, merge)

    def _run_pass(self, label: str, items: Iterable[Any], merge) -> MergeSummary:
        accepted = skipped = 0
        for item in items:
            try:
                if not isinstance(item, Mapping):
                    raise MalformedRecord(f"Expected a mapping, got {type(item).__name__}")
                merge(item)
            except MalformedRecord as e:
                skipped += 1
                logger.debug("Skipping malformed %s record: %s", label, e)
                continue
            accepted += 1
        self.recompute_composites()
        # sort date keys now so evaluation never writes to entries
        for entry in self.data.values():
            entry.dates()
        logger.info("Merged %s: %d accepted, %d skipped (%d entries)",
                    label, accepted, skipped, len(self.data))
        return MergeSummary(accepted=accepted, skipped=skipped)

    # ---------------- Composite regions ----------------
    def recompute_composites(self) -> None:
        for rule in self.composites:
            self._apply_composite(rule)

    def _apply_composite(self, rule: CompositeRule) -> None:
        parts: List[Entry] = [self.data[k] for k in rule.constituents if k in self.data]
        if not parts:
            return
        entry = self._entry(rule.key, rule.name, rule.region, LABELS_FIXED)
        entry.population = sum(p.population for p in parts)
        entry.area = sum(p.area for p in parts)
        entry.bounds = [ring for p in parts for ring in p.bounds]
        if self.composite_counts == "sum" and any(p.counts for p in parts):
            entry.replace_counts(sum_counts([p.counts for p in parts]))


def build_store(adapter: SourceAdapter, *, composites: Sequence[CompositeRule] = (),
                composite_counts: str = "sum",
                population: Optional[Iterable[Mapping[str, Any]]] = None,
                bounds: Optional[Any] = None,
                counts: Optional[Iterable[Mapping[str, Any]]] = None) -> EntryStore:
    """Create a store and run whichever passes have data, in the usual order."""
    store = EntryStore(adapter=adapter, composites=composites, composite_counts=composite_counts)
    if population is not None:
        store.add_population(population)
    if bounds is not None:
        store.add_bounds(bounds)
    if counts is not None:
        store.add_counts(counts)
    return store
