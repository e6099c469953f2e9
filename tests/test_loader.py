import json

import pytest
import requests

from conftest import count_row, county_feature, population_row
from epiview import loader
from epiview.config import NYT_COUNTIES_URL, DatasetConfig, variant_defaults
from epiview.errors import IngestionError, InvalidArgument
from epiview.loader import (Sources, compile_table, fetch_sources, read_bounds, read_counts,
                            read_population)


def write_csv(path, rows):
    header = list(rows[0])
    lines = [",".join(header)] + [",".join(str(r[h]) for h in header) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def dataset_files(tmp_path, three_counties):
    population, features, counts = three_counties
    pop_path = write_csv(tmp_path / "population.csv", population)
    bounds_path = tmp_path / "bounds.json"
    bounds_path.write_text(json.dumps({"type": "FeatureCollection", "features": features}),
                           encoding="utf-8")
    counts_path = write_csv(tmp_path / "counts.csv", counts)
    return pop_path, bounds_path, counts_path


class FakeResponse:
    def __init__(self, text, status=200):
        self.text = text
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


# =============================================================================
# Readers
# =============================================================================

class TestReaders:

    def test_population_csv_is_read_as_strings(self, dataset_files):
        rows = read_population(dataset_files[0])
        assert rows[0]["STATE"] == "6"
        assert rows[0]["POPESTIMATE2018"] == "10000"

    def test_population_json(self, tmp_path):
        path = tmp_path / "population.json"
        path.write_text(json.dumps([{"name": "Echo Park", "population": 1}]), encoding="utf-8")
        assert read_population(path) == [{"name": "Echo Park", "population": 1}]

    def test_population_json_must_be_a_list(self, tmp_path):
        path = tmp_path / "population.json"
        path.write_text("{}", encoding="utf-8")
        with pytest.raises(IngestionError):
            read_population(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(IngestionError):
            read_population(tmp_path / "nope.csv")
        with pytest.raises(IngestionError):
            read_bounds(tmp_path / "nope.json")

    def test_bounds_must_be_feature_collection(self, tmp_path):
        path = tmp_path / "bounds.json"
        path.write_text(json.dumps({"type": "Feature"}), encoding="utf-8")
        with pytest.raises(IngestionError):
            read_bounds(path)

    def test_counts_from_local_csv(self, dataset_files):
        rows = read_counts(dataset_files[2])
        assert rows[0] == {"date": "2020-03-01", "county": "Los Angeles", "state": "California",
                           "fips": "06037", "cases": "10", "deaths": "1"}

    def test_counts_from_url(self, monkeypatch):
        seen = {}

        def fake_get(url, timeout):
            seen["url"], seen["timeout"] = url, timeout
            return FakeResponse("date,county,state,fips,cases,deaths\n"
                                "2020-03-01,New York City,New York,,5,0\n")

        monkeypatch.setattr(loader.requests, "get", fake_get)
        rows = read_counts("https://example.org/us-counties.csv", timeout=5)
        assert seen == {"url": "https://example.org/us-counties.csv", "timeout": 5}
        assert rows[0]["fips"] == ""
        assert rows[0]["county"] == "New York City"

    def test_counts_http_error(self, monkeypatch):
        monkeypatch.setattr(loader.requests, "get", lambda url, timeout: FakeResponse("", 503))
        with pytest.raises(IngestionError):
            read_counts("https://example.org/us-counties.csv")

    def test_counts_connection_error(self, monkeypatch):
        def fail(url, timeout):
            raise requests.ConnectionError("offline")

        monkeypatch.setattr(loader.requests, "get", fail)
        with pytest.raises(IngestionError):
            read_counts("https://example.org/us-counties.csv")


# =============================================================================
# Compile
# =============================================================================

class TestCompileTable:

    def test_from_files(self, dataset_files):
        pop_path, bounds_path, counts_path = dataset_files
        config = DatasetConfig(population_path=pop_path, bounds_path=bounds_path,
                               counts_url=str(counts_path))
        sources = fetch_sources(config)
        assert len(sources.population) == 3
        assert len(sources.bounds["features"]) == 3
        table = compile_table(config, sources)
        assert sorted(k for k, _ in table.complete_items()) == ["06037", "17031"]
        assert (table.min_date, table.max_date) == ("2020-03-01", "2020-03-03")

    def test_fetch_failure_propagates(self, dataset_files, tmp_path):
        config = DatasetConfig(population_path=dataset_files[0], bounds_path=dataset_files[1],
                               counts_url=str(tmp_path / "missing.csv"))
        with pytest.raises(IngestionError):
            compile_table(config)

    def test_united_states_defaults_build_new_york_city(self):
        sources = Sources(
            population=[population_row("36061", 10), population_row("36047", 20),
                        population_row("36081", 30), population_row("36005", 40),
                        population_row("36085", 50)],
            bounds={"features": [county_feature("36061", 1.0)]},
            counts=[count_row("", "2020-03-01", 150, county="New York City")],
        )
        table = compile_table(DatasetConfig(), sources)
        nyc = table["36000"]
        assert nyc.population == 150
        assert nyc.complete()
        assert nyc.evaluate_basic("cases", "per 1000 cap.", "2020-03-01") == pytest.approx(1000.0)

    def test_los_angeles_variant(self):
        feature = county_feature("x")
        feature["properties"] = {"name": "Echo Park"}
        sources = Sources(population=[{"name": "Echo Park", "population": "100", "area_sqmi": "2"}],
                          bounds={"features": [feature]},
                          counts=[{"name": "Echo Park", "date": "2020-05-02", "cases": "1", "deaths": "0"}])
        table = compile_table(DatasetConfig(variant="los-angeles"), sources)
        assert table["Echo Park"].complete()


# =============================================================================
# Configuration
# =============================================================================

class TestDatasetConfig:

    def test_defaults(self):
        config = DatasetConfig()
        assert config.counts_url == NYT_COUNTIES_URL
        assert [r.key for r in config.defaults.composites] == ["36000"]

    def test_los_angeles_has_no_composites(self):
        assert variant_defaults("los-angeles").composites == ()

    @pytest.mark.parametrize("kwargs", [{"variant": "mars"}, {"composite_counts": "max"}])
    def test_rejects_bad_values(self, kwargs):
        with pytest.raises(InvalidArgument):
            DatasetConfig(**kwargs)

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EPIVIEW_VARIANT", "Los Angeles")
        monkeypatch.setenv("EPIVIEW_POPULATION", str(tmp_path / "pop.json"))
        monkeypatch.setenv("EPIVIEW_COMPOSITE_COUNTS", "none")
        monkeypatch.setenv("EPIVIEW_HTTP_TIMEOUT", "12.5")
        config = DatasetConfig.from_env(env_file=str(tmp_path / "missing.env"))
        assert config.variant == "los-angeles"
        assert config.population_path == tmp_path / "pop.json"
        assert config.composite_counts == "none"
        assert config.http_timeout == 12.5
        assert config.counts_url == ""

    def test_from_env_reads_dotenv_file(self, monkeypatch, tmp_path):
        # registered so monkeypatch removes what load_dotenv sets
        monkeypatch.setenv("EPIVIEW_BOUNDS", "placeholder")
        monkeypatch.delenv("EPIVIEW_BOUNDS")
        env = tmp_path / ".env"
        env.write_text(f"EPIVIEW_BOUNDS={tmp_path / 'bounds.json'}\n", encoding="utf-8")
        config = DatasetConfig.from_env(env_file=str(env))
        assert config.bounds_path == tmp_path / "bounds.json"

    def test_overrides_win(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EPIVIEW_COUNTS_URL", "https://example.org/a.csv")
        config = DatasetConfig.from_env(env_file=str(tmp_path / "missing.env"),
                                        counts_url="https://example.org/b.csv", variant=None)
        assert config.counts_url == "https://example.org/b.csv"

    def test_bad_timeout(self, monkeypatch, tmp_path):
        monkeypatch.setenv("EPIVIEW_HTTP_TIMEOUT", "soon")
        with pytest.raises(InvalidArgument):
            DatasetConfig.from_env(env_file=str(tmp_path / "missing.env"))
