# ziwei_api/core/constants.py
# -*- coding: utf-8 -*-
"""
Ziwei API: core constants

Purpose
-------
Single source of truth for:
- the 13-slot double-hour (shichen) partition of the day
- accepted gender tokens
- time-input forms, late-slot rollover policies and input calendars
- machine-readable error codes and their HTTP status

Design
------
- Pure-Python, no external dependencies.
- Safe to import from any core module.
- Constants are immutable by convention.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Final, Tuple

__all__ = [
    # time slots
    "SLOT_COUNT", "LATE_SLOT", "SLOT_TO_HOUR", "SLOT_MINUTE_BOUNDS", "MINUTES_PER_DAY",
    # policies / forms
    "TIME_INPUT_HOUR", "TIME_INPUT_TIME_INDEX", "TIME_INPUT_CLOCK", "TIME_INPUTS",
    "TIME_FIELDS", "LATE_SLOT_NEXT_DAY", "LATE_SLOT_SAME_DAY", "LATE_SLOT_POLICIES",
    # calendars
    "CALENDAR_SOLAR", "CALENDAR_LUNAR", "LEAP_MONTH_FIELDS",
    # gender
    "Gender", "GENDER_ALIASES",
    # errors
    "ErrorCode", "ERROR_HTTP_STATUS",
    # cache
    "CACHE_TTL_SECONDS",
]

# ───────────────────────── double-hour slots ─────────────────────────
SLOT_COUNT: Final[int] = 13
LATE_SLOT: Final[int] = 12          # 23:00–24:00, ambiguous day membership
MINUTES_PER_DAY: Final[int] = 1440

# slot -> wall-clock hour sent to the engine (slot 12 depends on policy)
SLOT_TO_HOUR: Final[Dict[int, int]] = {
    0: 0, 1: 1, 2: 3, 3: 5, 4: 7, 5: 9, 6: 11,
    7: 13, 8: 15, 9: 17, 10: 19, 11: 21,
}

# [start, end) minute-of-day bounds per slot; contiguous over [0, 1440)
SLOT_MINUTE_BOUNDS: Final[Tuple[Tuple[int, int], ...]] = (
    (0, 60),
    (60, 180),
    (180, 300),
    (300, 420),
    (420, 540),
    (540, 660),
    (660, 780),
    (780, 900),
    (900, 1020),
    (1020, 1140),
    (1140, 1260),
    (1260, 1380),
    (1380, 1440),
)

# ───────────────────────── deployment choices ─────────────────────────
TIME_INPUT_HOUR: Final[str] = "hour"
TIME_INPUT_TIME_INDEX: Final[str] = "time_index"
TIME_INPUT_CLOCK: Final[str] = "clock"
TIME_INPUTS: Final[Tuple[str, ...]] = (TIME_INPUT_HOUR, TIME_INPUT_TIME_INDEX, TIME_INPUT_CLOCK)

# request field name per form, canonical name first
TIME_FIELDS: Final[Dict[str, Tuple[str, ...]]] = {
    TIME_INPUT_HOUR: ("hour", "hourOfDay"),
    TIME_INPUT_TIME_INDEX: ("timeIndex", "time_index"),
    TIME_INPUT_CLOCK: ("time",),
}

LATE_SLOT_NEXT_DAY: Final[str] = "next_day"   # slot 12 -> 00:00 of the following date
LATE_SLOT_SAME_DAY: Final[str] = "same_day"   # slot 12 -> 23:00 of the same date
LATE_SLOT_POLICIES: Final[Tuple[str, ...]] = (LATE_SLOT_NEXT_DAY, LATE_SLOT_SAME_DAY)

CALENDAR_SOLAR: Final[str] = "solar"
CALENDAR_LUNAR: Final[str] = "lunar"
LEAP_MONTH_FIELDS: Final[Tuple[str, ...]] = ("isLeapMonth", "is_leap_month")


# ───────────────────────── gender ─────────────────────────
class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


GENDER_ALIASES: Final[Dict[str, Gender]] = {
    "m": Gender.MALE,
    "male": Gender.MALE,
    "男": Gender.MALE,
    "f": Gender.FEMALE,
    "female": Gender.FEMALE,
    "女": Gender.FEMALE,
}


# ───────────────────────── errors ─────────────────────────
class ErrorCode(str, Enum):
    MISSING_PARAMS = "MISSING_PARAMS"
    INVALID_PARAMS = "INVALID_PARAMS"
    INVALID_GENDER = "INVALID_GENDER"
    INVALID_DATE_FORMAT = "INVALID_DATE_FORMAT"
    INVALID_HOUR = "INVALID_HOUR"
    INVALID_TIME_INDEX = "INVALID_TIME_INDEX"
    INVALID_TIME_FORMAT = "INVALID_TIME_FORMAT"
    HOUR_INVALID = "HOUR_INVALID"
    DATE_INVALID = "DATE_INVALID"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_HTTP_STATUS: Final[Dict[ErrorCode, int]] = {
    code: (500 if code is ErrorCode.INTERNAL_ERROR else 400) for code in ErrorCode
}

# ───────────────────────── cache ─────────────────────────
CACHE_TTL_SECONDS: Final[float] = 10 * 60.0
