"""
Core engine (EpiView)
=====================

The engine drives one session over a compiled, read-only `EntryStore`:

1) Compile the table (loader) -> EntryStore
2) Hold the selected formula
3) Recompute one value per complete region for that formula
4) Rank, describe and export the current results

Recompute is last-request-wins: every call takes a generation number and a
result computed under an older generation is dropped instead of replacing
newer results.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple
import heapq
import threading

from .dates import DateLike, days_descending, parse_date
from .errors import InvalidArgument
from .evaluator import evaluate, evaluate_basic
from .formula import Formula
from .logging_config import get_logger
from .table import EntryStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RegionResult:
    """One evaluated region, ready for display."""
    key: str
    label: str
    value: float

    @property
    def display(self) -> str:
        return f"{self.label}: {format_value(self.value)}"


@dataclass
class EpiView:
    """Evaluates formulas over a compiled table.

    The engine stores:
    - table: the joined per-region data (read-only after ingestion)
    - formula: the formula behind `results`
    - results: region key -> value for every complete region
    """
    table: EntryStore
    formula: Optional[Formula] = None
    results: Dict[str, float] = field(default_factory=dict)

    _generation: int = field(default=0, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    # ---------------- Evaluation ----------------
    def evaluate_all(self, formula: Formula) -> Dict[str, float]:
        """Evaluate `formula` for every complete region (pure, no state change)."""
        return {key: evaluate(entry, formula) for key, entry in self.table.complete_items()}

    def recompute(self, formula: Formula) -> bool:
        """Recompute results for `formula`.

        Returns False when a newer recompute started while this one was
        running; its results are then discarded.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
        results = self.evaluate_all(formula)
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping superseded recompute %d (latest %d)", generation, self._generation)
                return False
            self.formula = formula
            self.results = results
        logger.info("Recomputed %d regions: %s", len(results), formula.describe())
        return True

    def _require_results(self) -> None:
        if self.formula is None:
            raise InvalidArgument("No formula evaluated yet")

    # ---------------- Output operations ----------------
    def result(self, key: str) -> RegionResult:
        self._require_results()
        if key not in self.results:
            raise KeyError(f"No result for region {key!r} (unknown or incomplete)")
        return RegionResult(key=key, label=self.table[key].label, value=self.results[key])

    def describe(self, key: str) -> str:
        """Display string for one region, e.g. "Kings County, New York: 1,234"."""
        return self.result(key).display

    def sort(self, reverse: bool = True) -> List[RegionResult]:
        self._require_results()
        keys = sorted(self.results, key=lambda k: (self.results[k], k), reverse=reverse)
        return [self.result(k) for k in keys]

    def topk(self, k: int) -> List[RegionResult]:
        """Top-k regions by current value (heap based)."""
        self._require_results()
        heap: List[Tuple[float, str]] = []
        for key, v in self.results.items():
            if len(heap) < k:
                heapq.heappush(heap, (v, key))
            elif (v, key) > heap[0]:
                heapq.heapreplace(heap, (v, key))
        heap.sort(reverse=True)
        return [self.result(key) for _, key in heap]

    def series(self, key: str, numerator: str, denominator: str,
               start: Optional[DateLike] = None, end: Optional[DateLike] = None) -> List[Tuple[date, float]]:
        """Daily basic values for one region, oldest first."""
        entry = self.table[key]
        span = self.table.date_range
        if span is None:
            return []
        lo = parse_date(start) if start is not None else span[0]
        hi = parse_date(end) if end is not None else span[1]
        out = [(d, evaluate_basic(entry, numerator, denominator, d)) for d in days_descending(hi, lo)]
        out.reverse()
        return out

    def export_csv(self, path: str) -> None:
        import csv
        rows = self.sort()
        with open(path, "w", newline="", encoding="utf-8") as f:
            w = csv.writer(f)
            w.writerow(["key", "name", "region", "value"])
            for r in rows:
                entry = self.table[r.key]
                w.writerow([r.key, entry.name, entry.region, r.value])

    def export_json(self, path: str) -> None:
        """Export the current results (and the formula behind them) to JSON."""
        import json
        payload = {
            "formula": self.formula.describe() if self.formula else None,
            "results": [
                {
                    "key": r.key,
                    "name": self.table[r.key].name,
                    "region": self.table[r.key].region,
                    "value": r.value,
                }
                for r in self.sort()
            ],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)


# ---------------- Helpers ----------------
def format_value(value: float) -> str:
    """Thousands separators; up to two decimals for fractional values."""
    if float(value).is_integer():
        return f"{int(value):,}"
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return text
