# tests/test_chart_normalizer.py
from __future__ import annotations

from types import SimpleNamespace
from urllib.parse import parse_qs, urlsplit

import pytest

from ziwei_api.core.chart import build_success_payload, build_viewer_url, normalize_chart
from ziwei_api.core.constants import Gender
from ziwei_api.core.time_kernel import NormalizedInput

from conftest import fake_chart

TOP_LEVEL = {
    "gender", "solar_date", "lunar_date", "chinese_date", "time", "time_range", "sign",
    "zodiac", "five_elements_class", "soul_palace_branch", "body_palace_branch", "soul", "body",
    "palaces", "decades",
}
PALACE_KEYS = {
    "index", "name", "heavenly_stem", "earthly_branch", "is_body_palace", "is_original_palace",
    "major_stars", "minor_stars", "adjective_stars", "hidden_stars", "ages",
    "changsheng12", "boshi12", "jiangqian12", "suiqian12", "decadal",
}


def _assert_complete(out: dict) -> None:
    assert set(out) == TOP_LEVEL
    assert len(out["palaces"]) == 12
    for i, p in enumerate(out["palaces"]):
        assert set(p) == PALACE_KEYS
        for k in ("major_stars", "minor_stars", "adjective_stars", "hidden_stars", "ages"):
            assert isinstance(p[k], list)
        for k in ("name", "heavenly_stem", "earthly_branch", "changsheng12", "boshi12", "jiangqian12", "suiqian12"):
            assert isinstance(p[k], str)
        assert isinstance(p["is_body_palace"], bool)
        assert set(p["decadal"]) == {"range", "heavenly_stem", "earthly_branch"}
    assert isinstance(out["decades"], list)


def test_full_engine_chart() -> None:
    out = normalize_chart(fake_chart("1990-05-20", 13, "男"))
    _assert_complete(out)
    assert out["solar_date"] == "1990-05-20"
    assert out["zodiac"] == "马"
    assert out["five_elements_class"] == "木三局"
    assert out["soul_palace_branch"] == "寅"
    p0 = out["palaces"][0]
    assert p0["name"] == "命宫"
    assert p0["is_original_palace"] is True
    assert p0["major_stars"][0] == {"name": "紫微", "type": "major", "scope": "origin", "brightness": "庙", "mutagen": ""}
    assert p0["adjective_stars"][0]["brightness"] == ""
    assert p0["hidden_stars"] == []
    starts = [d["start_age"] for d in out["decades"]]
    assert starts == sorted(starts) and len(starts) == 12

@pytest.mark.parametrize("raw", [None, {}, [], "chart", 42, {"palaces": "nope"}, {"palaces": [None, 1, "x"]}])
def test_garbage_still_complete(raw) -> None:
    out = normalize_chart(raw)
    _assert_complete(out)
    assert out["zodiac"] is None
    assert out["decades"] == []

def test_missing_fields_get_defaults() -> None:
    raw = fake_chart("1990-05-20", 13, "男")
    del raw["zodiac"]
    raw["palaces"][3] = {"name": "子女", "majorStars": None, "minorStars": "bad", "decadal": {"range": [1]}}
    out = normalize_chart(raw)
    _assert_complete(out)
    assert out["zodiac"] is None
    p3 = out["palaces"][3]
    assert p3["index"] == 3
    assert p3["major_stars"] == [] and p3["minor_stars"] == []
    assert p3["decadal"]["range"] == []
    assert p3["is_body_palace"] is False
    assert len(out["decades"]) == 11

def test_short_palace_list_is_padded_and_long_is_cut() -> None:
    raw = fake_chart("1990-05-20", 13, "男")
    raw["palaces"] = raw["palaces"][:5]
    out = normalize_chart(raw)
    assert len(out["palaces"]) == 12
    assert out["palaces"][11]["index"] == 11 and out["palaces"][11]["name"] == ""
    raw["palaces"] = fake_chart("1990-05-20", 13, "男")["palaces"] * 2
    assert len(normalize_chart(raw)["palaces"]) == 12

def test_snake_case_and_attribute_objects() -> None:
    palace = SimpleNamespace(
        index=0, name="命宫", heavenly_stem="甲", earthly_branch="寅",
        major_stars=[SimpleNamespace(name="天机", type="major", scope="origin", brightness="旺", mutagen="禄")],
        decadal=SimpleNamespace(range=(4, 13), heavenly_stem="戊", earthly_branch="寅"),
    )
    raw = SimpleNamespace(solar_date="2000-08-16", five_elements_class="金四局", palaces=[palace])
    out = normalize_chart(raw)
    _assert_complete(out)
    assert out["solar_date"] == "2000-08-16"
    assert out["palaces"][0]["major_stars"][0]["mutagen"] == "禄"
    assert out["decades"] == [{
        "palace_index": 0, "palace_name": "命宫", "start_age": 4, "end_age": 13,
        "heavenly_stem": "戊", "earthly_branch": "寅",
    }]

def test_pydantic_like_model_is_dumped() -> None:
    class Model:
        def model_dump(self, by_alias=False):
            return {"zodiac": "龙", "palaces": []}
    assert normalize_chart(Model())["zodiac"] == "龙"

def test_raising_accessors_are_swallowed() -> None:
    class Hostile:
        def __getattr__(self, name):
            raise RuntimeError("boom")
    _assert_complete(normalize_chart(Hostile()))

def test_top_level_decadals_preferred() -> None:
    raw = {"palaces": [], "decadals": [
        {"range": [15, 24], "heavenlyStem": "乙", "earthlyBranch": "丑", "palaceIndex": 1, "palaceName": "父母"},
        {"range": [5, 14], "heavenlyStem": "甲", "earthlyBranch": "子", "palaceIndex": 0, "palaceName": "命宫"},
    ]}
    out = normalize_chart(raw)
    assert [d["start_age"] for d in out["decades"]] == [5, 15]
    assert out["decades"][0]["palace_name"] == "命宫"


# ─────────────────────────────────────────────────────────────────────────────
# Viewer link
# ─────────────────────────────────────────────────────────────────────────────
def test_viewer_url_encodes_every_value() -> None:
    url = build_viewer_url("https://viewer.example/chart", "1990-05-20", 13, "male", "ziwei")
    parts = urlsplit(url)
    assert parts.path == "/chart"
    assert parse_qs(parts.query) == {"date": ["1990-05-20"], "hour": ["13"], "gender": ["male"], "type": ["ziwei"]}
    odd = build_viewer_url("https://viewer.example/chart", "1990/05 20", 1, "女", "z w")
    assert "date=1990%2F05%2020" in odd
    assert "gender=%E5%A5%B3" in odd
    assert " " not in odd

def test_viewer_url_appends_to_existing_query() -> None:
    url = build_viewer_url("https://viewer.example/?lang=zh", "1990-05-20", 0, "female", "ziwei")
    assert url.startswith("https://viewer.example/?lang=zh&date=")

def test_payload_uses_original_date_in_link() -> None:
    ni = NormalizedInput(
        source_date="1999-12-31", calendar_date="2000-01-01", hour_of_day=0,
        day_offset=1, gender=Gender.FEMALE, fix_leap=True,
    )
    body = build_success_payload(fake_chart("2000-01-01", 0, "女"), ni, viewer_base_url="https://v.example/", chart_type="ziwei")
    assert body["status"] == "success"
    assert "date=1999-12-31" in body["viewer_url"]
    assert body["input"] == {
        "date": "1999-12-31", "calendar_date": "2000-01-01", "hour": 0, "day_offset": 1, "gender": "female",
    }

def test_non_finite_numbers_are_dropped() -> None:
    raw = fake_chart("1990-05-20", 13, "男")
    raw["palaces"][0]["ages"] = [float("inf"), 5, float("nan")]
    raw["palaces"][1]["index"] = float("nan")
    raw["palaces"][2]["decadal"]["range"] = [float("-inf"), 31]
    out = normalize_chart(raw)
    _assert_complete(out)
    assert out["palaces"][0]["ages"] == [5]
    assert out["palaces"][1]["index"] == 1
    assert out["palaces"][2]["decadal"]["range"] == []
    assert len(out["decades"]) == 11

def test_non_finite_top_level_decadal_is_skipped() -> None:
    raw = {"decadals": [{"range": [float("nan"), 11]}, {"range": [12, 21], "palaceIndex": 3}]}
    out = normalize_chart(raw)
    assert [d["start_age"] for d in out["decades"]] == [12]

def test_lunar_payload_links_engine_solar_date() -> None:
    ni = NormalizedInput(
        source_date="2000-08-16", calendar_date="2000-08-16", hour_of_day=23, day_offset=0,
        gender=Gender.MALE, fix_leap=True, calendar="lunar", is_leap_month=False,
    )
    body = build_success_payload(fake_chart("2000-09-13", 23, "男"), ni, viewer_base_url="https://v.example/", chart_type="ziwei")
    assert "date=2000-09-13" in body["viewer_url"]
    assert body["input"]["calendar"] == "lunar"
    assert body["input"]["is_leap_month"] is False
    no_solar = build_success_payload({}, ni, viewer_base_url="https://v.example/", chart_type="ziwei")
    assert "date=2000-08-16" in no_solar["viewer_url"]
