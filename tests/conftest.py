# tests/conftest.py
from __future__ import annotations

"""
Pytest configuration for the Ziwei chart API suite.

- Registers Hypothesis profiles for local dev and CI.
- Provides a counting fake chart engine (no py-iztro needed) and a manual
  clock so cache expiry can be driven deterministically.
- Builds Flask apps with explicit settings so nothing depends on the
  caller's environment.
"""

import datetime as dt
import os
from typing import Any, Dict, List

import pytest
from hypothesis import settings, HealthCheck

from ziwei_api.main import create_app
from ziwei_api.utils.cache import ChartCache


# ──────────────────────────────────────────────────────────────────────────────
# Hypothesis profiles
# ──────────────────────────────────────────────────────────────────────────────
settings.register_profile(
    "dev",
    settings(
        deadline=None,
        max_examples=60,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)
settings.register_profile(
    "ci",
    settings(
        deadline=None,
        max_examples=200,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    ),
)

_profile = (
    "ci"
    if (os.getenv("CI") or os.getenv("GITHUB_ACTIONS"))
    else os.getenv("HYPOTHESIS_PROFILE", "dev")
)
settings.load_profile(_profile)


def pytest_report_header(config: pytest.Config) -> str:
    return f"Hypothesis profile: '{_profile}'"


# ──────────────────────────────────────────────────────────────────────────────
# Test doubles
# ──────────────────────────────────────────────────────────────────────────────
BRANCHES = ["寅", "卯", "辰", "巳", "午", "未", "申", "酉", "戌", "亥", "子", "丑"]
PALACE_NAMES = ["命宫", "兄弟", "夫妻", "子女", "财帛", "疾厄", "迁移", "仆役", "官禄", "田宅", "福德", "父母"]


def fake_chart(calendar_date: str, hour: int, gender_token: str) -> Dict[str, Any]:
    """Engine-shaped (camelCase) chart with twelve palaces."""
    palaces = []
    for i in range(12):
        start = 2 + 10 * i
        palaces.append({
            "index": i,
            "name": PALACE_NAMES[i],
            "isBodyPalace": i == 4,
            "isOriginalPalace": i == 0,
            "heavenlyStem": "甲",
            "earthlyBranch": BRANCHES[i],
            "majorStars": [{"name": "紫微", "type": "major", "scope": "origin", "brightness": "庙", "mutagen": ""}] if i == 0 else [],
            "minorStars": [],
            "adjectiveStars": [{"name": "天刑", "type": "adjective", "scope": "origin"}],
            "changsheng12": "长生",
            "boshi12": "博士",
            "jiangqian12": "将星",
            "suiqian12": "岁建",
            "decadal": {"range": [start, start + 9], "heavenlyStem": "丙", "earthlyBranch": BRANCHES[i]},
            "ages": [1 + i, 13 + i],
        })
    return {
        "gender": gender_token,
        "solarDate": calendar_date,
        "lunarDate": "一九九〇年四月廿六",
        "chineseDate": "庚午 辛巳 丙子 乙未",
        "time": f"h{hour}",
        "timeRange": "",
        "sign": "金牛座",
        "zodiac": "马",
        "earthlyBranchOfSoulPalace": "寅",
        "earthlyBranchOfBodyPalace": "午",
        "soul": "贪狼",
        "body": "天相",
        "fiveElementsClass": "木三局",
        "palaces": palaces,
    }


LUNAR_SOLAR_DATE = "2000-09-13"


class FakeEngine:
    """Counts calls; rejects like the real engine on bad hours/dates."""

    def __init__(self, error: Exception | None = None):
        self.calls: List[tuple] = []
        self.lunar_calls: List[tuple] = []
        self.error = error

    def compute_chart(self, calendar_date, hour_of_day, gender_token, fix_leap, locale):
        self.calls.append((calendar_date, hour_of_day, gender_token, fix_leap, locale))
        if self.error is not None:
            raise self.error
        if not (0 <= hour_of_day <= 23):
            raise ValueError(f"wrong hour {hour_of_day}")
        try:
            dt.date.fromisoformat(calendar_date)
        except ValueError:
            raise ValueError(f"invalid date {calendar_date}")
        return fake_chart(calendar_date, hour_of_day, gender_token)

    def compute_lunar_chart(self, lunar_date, hour_of_day, gender_token, is_leap_month, fix_leap, locale):
        self.lunar_calls.append((lunar_date, hour_of_day, gender_token, is_leap_month, fix_leap, locale))
        if self.error is not None:
            raise self.error
        if not (0 <= hour_of_day <= 23):
            raise ValueError(f"wrong hour {hour_of_day}")
        chart = fake_chart(LUNAR_SOLAR_DATE, hour_of_day, gender_token)
        chart["lunarDate"] = lunar_date
        return chart


class ManualClock:
    def __init__(self, t: float = 1000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


# ──────────────────────────────────────────────────────────────────────────────
# Fixtures
# ──────────────────────────────────────────────────────────────────────────────
BASE_SETTINGS = {
    "time_input": "hour",
    "late_slot_policy": "next_day",
    "locale": "zh-CN",
    "fix_leap": True,
    "debug_verbose": False,
}


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def make_client(engine, clock):
    """make_client(**settings) -> Flask test client wired to the fake engine and clock."""
    def _make(**overrides):
        app = create_app(
            config={**BASE_SETTINGS, **overrides},
            engine=engine,
            cache=ChartCache(clock=clock),
        )
        app.testing = True
        return app.test_client()
    return _make


@pytest.fixture
def client(make_client):
    return make_client()
