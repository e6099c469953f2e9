import csv
import json
from datetime import date

import pytest

from epiview.engine import EpiView, format_value
from epiview.errors import InvalidArgument
from epiview.formula import make_formula
from epiview.table import build_store


@pytest.fixture
def engine(us_adapter, three_counties) -> EpiView:
    population, features, counts = three_counties
    table = build_store(us_adapter, population=population, bounds=features, counts=counts)
    return EpiView(table=table)


@pytest.fixture
def cases_on_0303():
    return make_formula("cases", "total", "on", "2020-03-03")


class TestRecompute:

    def test_evaluates_complete_regions_only(self, engine, cases_on_0303):
        assert engine.evaluate_all(cases_on_0303) == {"06037": 40, "17031": 25}

    def test_recompute_stores_formula_and_results(self, engine, cases_on_0303):
        assert engine.recompute(cases_on_0303)
        assert engine.formula == cases_on_0303
        assert engine.results == {"06037": 40, "17031": 25}

    def test_latest_request_wins(self, engine, cases_on_0303, monkeypatch):
        newer = make_formula("deaths", "total", "on", "2020-03-03")
        original = engine.evaluate_all
        calls = []

        def evaluate_all(formula):
            calls.append(formula)
            if len(calls) == 1:
                # a second recompute starts while the first is still running
                assert engine.recompute(newer)
            return original(formula)

        monkeypatch.setattr(engine, "evaluate_all", evaluate_all)
        assert engine.recompute(cases_on_0303) is False
        assert engine.formula == newer
        assert engine.results == {"06037": 2, "17031": 2}

    def test_outputs_need_a_formula(self, engine):
        with pytest.raises(InvalidArgument):
            engine.topk(3)


class TestOutputs:

    def test_sort_and_topk(self, engine, cases_on_0303):
        engine.recompute(cases_on_0303)
        assert [r.key for r in engine.sort()] == ["06037", "17031"]
        assert [r.key for r in engine.sort(reverse=False)] == ["17031", "06037"]
        assert [r.key for r in engine.topk(1)] == ["06037"]
        assert [r.key for r in engine.topk(10)] == ["06037", "17031"]

    def test_describe(self, engine):
        engine.recompute(make_formula("cases", "per sq. mi.", "on", "2020-03-03"))
        assert engine.describe("06037") == "Los Angeles County, California: 10"
        assert engine.describe("17031") == "Cook County, Illinois: 12.5"

    def test_describe_incomplete_region(self, engine, cases_on_0303):
        engine.recompute(cases_on_0303)
        with pytest.raises(KeyError):
            engine.describe("48201")

    def test_series(self, engine):
        pts = engine.series("06037", "new cases", "total")
        assert pts == [(date(2020, 3, 1), 10), (date(2020, 3, 2), 0), (date(2020, 3, 3), 30)]

    def test_export_csv(self, engine, cases_on_0303, tmp_path):
        engine.recompute(cases_on_0303)
        out = tmp_path / "out.csv"
        engine.export_csv(str(out))
        with open(out, newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert [r["key"] for r in rows] == ["06037", "17031"]
        assert float(rows[0]["value"]) == 40

    def test_export_json(self, engine, cases_on_0303, tmp_path):
        engine.recompute(cases_on_0303)
        out = tmp_path / "out.json"
        engine.export_json(str(out))
        payload = json.loads(out.read_text(encoding="utf-8"))
        assert payload["formula"] == "cases on 2020-03-03"
        assert payload["results"][1] == {"key": "17031", "name": "Cook County",
                                         "region": "Illinois", "value": 25}


@pytest.mark.parametrize("value,text", [
    (0, "0"), (1234, "1,234"), (1234.5, "1,234.5"), (0.125, "0.12"), (2.0, "2"), (-3.25, "-3.25"),
])
def test_format_value(value, text):
    assert format_value(value) == text
