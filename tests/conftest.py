"""Shared fixtures: small synthetic census / boundary / NYT-style inputs."""

from typing import Dict, List

import pytest

from epiview.models import SQ_METERS_PER_SQ_MILE
from epiview.sources import UnitedStatesCounties
from epiview.table import CompositeRule


def square(lon: float, lat: float, size: float = 1.0) -> List[List[float]]:
    """Closed GeoJSON ring ([lon, lat] pairs)."""
    return [[lon, lat], [lon + size, lat], [lon + size, lat + size], [lon, lat + size], [lon, lat]]


def county_feature(geoid: str, sq_miles: float = 1.0, *, multi: bool = False,
                   name: str = "Somewhere", lon: float = -74.0, lat: float = 40.0) -> Dict:
    if multi:
        geometry = {"type": "MultiPolygon",
                    "coordinates": [[square(lon, lat)], [square(lon + 2, lat)]]}
    else:
        geometry = {"type": "Polygon", "coordinates": [square(lon, lat)]}
    return {
        "type": "Feature",
        "properties": {"GEOID": geoid, "NAME": name, "STATEFP": geoid[:2],
                       "ALAND": sq_miles * SQ_METERS_PER_SQ_MILE},
        "geometry": geometry,
    }


def population_row(fips: str, population: int, name: str = "Somewhere County",
                   state: str = "New York") -> Dict[str, str]:
    # census files store unpadded numeric codes
    return {"STATE": str(int(fips[:2])), "COUNTY": str(int(fips[2:])), "CTYNAME": name,
            "STNAME": state, "POPESTIMATE2018": str(population)}


def count_row(fips: str, date: str, cases: int, deaths: int = 0,
              county: str = "Somewhere", state: str = "New York") -> Dict[str, str]:
    return {"date": date, "county": county, "state": state, "fips": fips,
            "cases": str(cases), "deaths": str(deaths)}


@pytest.fixture
def us_adapter() -> UnitedStatesCounties:
    return UnitedStatesCounties(special_counties={"New York City": "36000"})


@pytest.fixture
def nyc_rule() -> CompositeRule:
    return CompositeRule(key="36000", name="New York City", region="New York",
                         constituents=("36061", "36047"))


@pytest.fixture
def three_counties():
    """Population rows, boundary features and count rows for three counties.

    06037 and 17031 end up complete; 48201 has no counts.
    """
    population = [
        population_row("06037", 10_000, "Los Angeles County", "California"),
        population_row("17031", 5_000, "Cook County", "Illinois"),
        population_row("48201", 4_000, "Harris County", "Texas"),
    ]
    features = [
        county_feature("06037", 4.0, name="Los Angeles"),
        county_feature("17031", 2.0, name="Cook", multi=True),
        county_feature("48201", 1.0, name="Harris"),
    ]
    counts = [
        count_row("06037", "2020-03-01", 10, 1, "Los Angeles", "California"),
        count_row("17031", "2020-03-01", 20, 2, "Cook", "Illinois"),
        count_row("06037", "2020-03-03", 40, 2, "Los Angeles", "California"),
        count_row("17031", "2020-03-02", 25, 2, "Cook", "Illinois"),
    ]
    return population, features, counts
