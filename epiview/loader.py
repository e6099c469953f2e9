"""
Dataset loader (files/URLs -> rows and features)
================================================

This module reads the three datasets and hands already-decoded rows and
features to `EntryStore`.

Key ideas:
- Tables (population, counts) are read with pandas as strings; the source
  adapters do the numeric coercion, so a bad cell only drops its own row.
- Boundaries are GeoJSON FeatureCollections read with `json`.
- The counts feed may be an HTTP(S) URL; it is downloaded with `requests`.
- The three reads run concurrently; the merge passes then run in order on
  the calling thread.
- Any read failure raises `IngestionError`. There is no retry.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import io
import json

import pandas as pd
import requests

from .config import DatasetConfig
from .errors import IngestionError
from .logging_config import get_logger
from .sources import make_adapter
from .table import EntryStore, build_store

logger = get_logger(__name__)

Rows = List[Dict[str, Any]]
PathLike = Union[str, Path]


@dataclass
class Sources:
    """Decoded inputs for one ingestion session (None = not configured)."""
    population: Optional[Rows] = None
    bounds: Optional[Dict[str, Any]] = None
    counts: Optional[Rows] = None


def _records(df: pd.DataFrame) -> Rows:
    df.rename(columns={c: str(c).strip() for c in df.columns}, inplace=True)
    return df.to_dict(orient="records")


def _is_url(location: PathLike) -> bool:
    return str(location).lower().startswith(("http://", "https://"))


def read_population(path: PathLike, encoding: str = "latin-1") -> Rows:
    """Read population rows from a JSON list or a CSV table.

    Census CSV exports are latin-1 encoded, hence the default.
    """
    path = Path(path)
    try:
        if path.suffix.lower() == ".json":
            with open(path, "r", encoding="utf-8") as f:
                rows = json.load(f)
            if not isinstance(rows, list):
                raise IngestionError(f"{path}: expected a JSON list of rows")
            return rows
        return _records(pd.read_csv(path, dtype=str, keep_default_na=False, encoding=encoding))
    except (OSError, ValueError) as e:
        raise IngestionError(f"Could not read population data from {path}: {e}") from e


def read_bounds(path: PathLike) -> Dict[str, Any]:
    """Read a GeoJSON FeatureCollection."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise IngestionError(f"Could not read boundary data from {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("features"), list):
        raise IngestionError(f"{path}: expected a GeoJSON FeatureCollection")
    return data


def read_counts(location: PathLike, timeout: float = 60.0) -> Rows:
    """Read the case count CSV (header row first) from a URL or a local path."""
    try:
        if _is_url(location):
            logger.info("Downloading case counts from %s", location)
            response = requests.get(str(location), timeout=timeout)
            response.raise_for_status()
            df = pd.read_csv(io.StringIO(response.text), dtype=str, keep_default_na=False)
        else:
            df = pd.read_csv(location, dtype=str, keep_default_na=False)
    except requests.RequestException as e:
        raise IngestionError(f"Could not download case counts from {location}: {e}") from e
    except (OSError, ValueError) as e:
        raise IngestionError(f"Could not read case counts from {location}: {e}") from e
    return _records(df)


def fetch_sources(config: DatasetConfig) -> Sources:
    """Read all configured datasets concurrently."""
    jobs = {}
    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="epiview-fetch") as pool:
        if config.population_path is not None:
            jobs["population"] = pool.submit(read_population, config.population_path)
        if config.bounds_path is not None:
            jobs["bounds"] = pool.submit(read_bounds, config.bounds_path)
        if config.counts_url:
            jobs["counts"] = pool.submit(read_counts, config.counts_url, config.http_timeout)
        # .result() re-raises the worker's IngestionError
        results = {name: fut.result() for name, fut in jobs.items()}
    for name, value in results.items():
        size = len(value["features"]) if name == "bounds" else len(value)
        logger.info("Read %s: %d records", name, size)
    return Sources(**results)


def compile_table(config: DatasetConfig, sources: Optional[Sources] = None) -> EntryStore:
    """Read (unless given) and join the datasets into one EntryStore.

    Passes run population -> bounds -> counts; composites are recomputed
    after each one.
    """
    if sources is None:
        sources = fetch_sources(config)
    defaults = config.defaults
    if config.variant == "united-states":
        adapter = make_adapter(config.variant, special_counties=defaults.special_counties)
    else:
        adapter = make_adapter(config.variant)
    store = build_store(adapter, composites=defaults.composites,
                        composite_counts=config.composite_counts,
                        population=sources.population,
                        bounds=sources.bounds,
                        counts=sources.counts)
    complete = sum(1 for _ in store.complete_items())
    logger.info("Compiled %s table: %d entries, %d complete, dates %s..%s",
                config.variant, len(store), complete, store.min_date, store.max_date)
    return store
