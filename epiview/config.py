"""
Configuration for dataset loading.

Handles:
- Dataset locations (population, boundaries, case counts)
- Dataset variant (which source adapter to use)
- Composite regions and their counts policy

Values come from environment variables (EPIVIEW_*), optionally via a .env
file, or are passed directly.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

from .errors import InvalidArgument
from .sources import VARIANTS
from .table import COMPOSITE_COUNT_POLICIES, CompositeRule

# NYT county-level case counts
NYT_COUNTIES_URL = "https://raw.githubusercontent.com/nytimes/covid-19-data/master/us-counties.csv"

# FIPS codes for the boroughs of NYC, in display order
NYC_BOROUGHS = (
    "36061",  # New York
    "36047",  # Kings
    "36081",  # Queens
    "36005",  # Bronx
    "36085",  # Richmond
)

NEW_YORK_CITY = CompositeRule(key="36000", name="New York City", region="New York",
                              constituents=NYC_BOROUGHS)


@dataclass(frozen=True)
class VariantDefaults:
    counts_url: str = ""
    composites: Tuple[CompositeRule, ...] = ()
    # county label in the counts feed -> composite key
    special_counties: Dict[str, str] = field(default_factory=dict)


def variant_defaults(variant: str) -> VariantDefaults:
    if variant == "united-states":
        return VariantDefaults(counts_url=NYT_COUNTIES_URL,
                               composites=(NEW_YORK_CITY,),
                               special_counties={"New York City": NEW_YORK_CITY.key})
    if variant == "los-angeles":
        return VariantDefaults()
    raise InvalidArgument(f"Unknown dataset variant: {variant!r}. Expected one of {VARIANTS}")


@dataclass
class DatasetConfig:
    """Where to find the three datasets and how to join them."""

    variant: str = "united-states"
    population_path: Optional[Path] = None
    bounds_path: Optional[Path] = None
    # HTTP(S) URL or local path; defaults to the variant's feed
    counts_url: str = ""
    composite_counts: str = "sum"
    http_timeout: float = 60.0

    def __post_init__(self):
        self.variant = self.variant.strip().lower().replace(" ", "-")
        if self.variant not in VARIANTS:
            raise InvalidArgument(f"Unknown dataset variant: {self.variant!r}. Expected one of {VARIANTS}")
        if self.composite_counts not in COMPOSITE_COUNT_POLICIES:
            raise InvalidArgument(
                f"composite_counts must be one of {COMPOSITE_COUNT_POLICIES}, got {self.composite_counts!r}")
        if self.population_path is not None:
            self.population_path = Path(self.population_path)
        if self.bounds_path is not None:
            self.bounds_path = Path(self.bounds_path)
        if not self.counts_url:
            self.counts_url = self.defaults.counts_url

    @property
    def defaults(self) -> VariantDefaults:
        return variant_defaults(self.variant)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "DatasetConfig":
        """
        Load configuration from environment variables.

        Reads EPIVIEW_VARIANT, EPIVIEW_POPULATION, EPIVIEW_BOUNDS,
        EPIVIEW_COUNTS_URL, EPIVIEW_COMPOSITE_COUNTS and EPIVIEW_HTTP_TIMEOUT.
        Keyword overrides win over the environment.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values = dict(
            variant=os.environ.get("EPIVIEW_VARIANT", "united-states"),
            population_path=os.environ.get("EPIVIEW_POPULATION") or None,
            bounds_path=os.environ.get("EPIVIEW_BOUNDS") or None,
            counts_url=os.environ.get("EPIVIEW_COUNTS_URL", ""),
            composite_counts=os.environ.get("EPIVIEW_COMPOSITE_COUNTS", "sum"),
        )
        timeout = os.environ.get("EPIVIEW_HTTP_TIMEOUT")
        if timeout:
            try:
                values["http_timeout"] = float(timeout)
            except ValueError as e:
                raise InvalidArgument(f"EPIVIEW_HTTP_TIMEOUT must be a number, got {timeout!r}") from e
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
