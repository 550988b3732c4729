# ziwei_api/core/time_kernel.py
"""
Time normalization: any accepted birth-time representation -> (hour_of_day, day_offset).

Three input forms are supported, one per deployment (config ``time_input``):

- ``hour``        explicit wall-clock hour, 0..23
- ``time_index``  traditional double-hour slot, 0..12 (0 = early Zi, 12 = late Zi)
- ``clock``       'H', 'H:MM' (up to '24:00') or a fractional hour such as 13.5

Slot 12 (23:00–24:00) is resolved by the late-slot policy:

- ``next_day``  -> (0, +1): hour 0 of the following calendar date
- ``same_day``  -> (23, 0)
"""
from __future__ import annotations

import datetime as _dt
import math
import re
from dataclasses import dataclass
from typing import Any, Optional

from ziwei_api.core.constants import (
    CALENDAR_LUNAR,
    CALENDAR_SOLAR,
    ErrorCode,
    Gender,
    LATE_SLOT,
    LATE_SLOT_NEXT_DAY,
    LATE_SLOT_POLICIES,
    MINUTES_PER_DAY,
    SLOT_MINUTE_BOUNDS,
    SLOT_TO_HOUR,
    TIME_INPUT_CLOCK,
    TIME_INPUT_HOUR,
    TIME_INPUT_TIME_INDEX,
)
from ziwei_api.core.errors import ValidationError

__all__ = [
    "NormalizedTime",
    "normalize_time",
    "normalize_hour",
    "normalize_time_index",
    "normalize_clock",
    "hour_for_slot",
    "slot_for_minutes",
    "parse_clock_minutes",
    "NormalizedInput",
    "apply_day_offset",
    "resolve_input",
    "resolve_lunar_input",
]


@dataclass(frozen=True)
class NormalizedTime:
    hour_of_day: int
    day_offset: int
    slot: Optional[int] = None

    @property
    def key_value(self) -> int:
        """Value that identifies this time in cache keys (slot when known, else hour)."""
        return self.slot if self.slot is not None else self.hour_of_day


# ───────────────────────── integer coercion ─────────────────────────
_INT_RE = re.compile(r"^\s*\d+\s*$")


def _as_int(value: Any) -> Optional[int]:
    """Accept ints and decimal digit strings; never bools or floats."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.match(value):
        try:
            return int(value)
        except ValueError:  # beyond the interpreter's digit limit
            return None
    return None


def _check_policy(policy: str) -> None:
    if policy not in LATE_SLOT_POLICIES:
        raise ValueError(f"unknown late-slot policy: {policy!r}")


# ───────────────────────── slot table ─────────────────────────
def hour_for_slot(slot: int, policy: str = LATE_SLOT_NEXT_DAY) -> NormalizedTime:
    _check_policy(policy)
    if slot == LATE_SLOT:
        if policy == LATE_SLOT_NEXT_DAY:
            return NormalizedTime(hour_of_day=0, day_offset=1, slot=slot)
        return NormalizedTime(hour_of_day=23, day_offset=0, slot=slot)
    return NormalizedTime(hour_of_day=SLOT_TO_HOUR[slot], day_offset=0, slot=slot)


def slot_for_minutes(minutes: int) -> int:
    """Bucket a minute-of-day in [0, 1440) into its double-hour slot."""
    for slot, (lo, hi) in enumerate(SLOT_MINUTE_BOUNDS):
        if lo <= minutes < hi:
            return slot
    raise ValueError(f"minute of day out of range: {minutes}")


# ───────────────────────── form 1: explicit hour ─────────────────────────
def normalize_hour(value: Any) -> NormalizedTime:
    h = _as_int(value)
    if h is None or not (0 <= h <= 23):
        raise ValidationError(ErrorCode.INVALID_HOUR, "hour must be an integer between 0 and 23", loc="hour")
    return NormalizedTime(hour_of_day=h, day_offset=0)


# ───────────────────────── form 2: double-hour slot ─────────────────────────
def normalize_time_index(value: Any, policy: str = LATE_SLOT_NEXT_DAY) -> NormalizedTime:
    if isinstance(value, str) and not value.strip():
        raise ValidationError(ErrorCode.INVALID_TIME_INDEX, "timeIndex must not be empty", loc="timeIndex")
    slot = _as_int(value)
    if slot is None or not (0 <= slot <= LATE_SLOT):
        raise ValidationError(ErrorCode.INVALID_TIME_INDEX, "timeIndex must be an integer between 0 and 12", loc="timeIndex")
    return hour_for_slot(slot, policy)


# ───────────────────────── form 3: clock string ─────────────────────────
_CLOCK_RE = re.compile(r"^\s*(?P<h>\d{1,2})(?::(?P<m>\d{2}))?\s*$")
_FRACTION_RE = re.compile(r"^\s*\d{1,2}\.\d+\s*$")


def _bad_clock(msg: str) -> ValidationError:
    return ValidationError(ErrorCode.INVALID_TIME_FORMAT, msg, loc="time")


def parse_clock_minutes(value: Any) -> int:
    """
    Minutes since midnight for 'H', 'H:MM' or a fractional hour.
    - hour in [0, 24], minute in [0, 59]; '24' takes no minutes
    - fractional hours are floored to whole minutes
    - 24:00 (1440) folds to 0
    """
    if isinstance(value, bool):
        raise _bad_clock("time must be 'H', 'H:MM' or a fractional hour")

    if isinstance(value, (int, float)) or (isinstance(value, str) and _FRACTION_RE.match(value)):
        try:
            hours = float(value)
        except (OverflowError, ValueError):
            raise _bad_clock("hour must be between 0 and 24") from None
    elif isinstance(value, str):
        m = _CLOCK_RE.match(value)
        if not m:
            raise _bad_clock("time must be 'H', 'H:MM' or a fractional hour")
        hh = int(m.group("h"))
        has_minutes = m.group("m") is not None
        mm = int(m.group("m") or 0)
        if not (0 <= hh <= 24):
            raise _bad_clock("hour must be between 0 and 24")
        if not (0 <= mm <= 59):
            raise _bad_clock("minute must be between 0 and 59")
        if hh == 24 and has_minutes and mm != 0:
            raise _bad_clock("24:00 is the only time allowed at hour 24")
        total = hh * 60 + mm
        return 0 if total == MINUTES_PER_DAY else total
    else:
        raise _bad_clock("time must be 'H', 'H:MM' or a fractional hour")

    if not math.isfinite(hours) or not (0.0 <= hours <= 24.0):
        raise _bad_clock("hour must be between 0 and 24")
    total = int(math.floor(hours * 60.0))
    return 0 if total >= MINUTES_PER_DAY else total


def normalize_clock(value: Any, policy: str = LATE_SLOT_NEXT_DAY) -> NormalizedTime:
    return hour_for_slot(slot_for_minutes(parse_clock_minutes(value)), policy)


# ───────────────────────── dispatcher ─────────────────────────
def normalize_time(value: Any, form: str, policy: str = LATE_SLOT_NEXT_DAY) -> NormalizedTime:
    if form == TIME_INPUT_HOUR:
        return normalize_hour(value)
    if form == TIME_INPUT_TIME_INDEX:
        return normalize_time_index(value, policy)
    if form == TIME_INPUT_CLOCK:
        return normalize_clock(value, policy)
    raise ValueError(f"unknown time input form: {form!r}")


# ───────────────────────── date rollover ─────────────────────────
@dataclass(frozen=True)
class NormalizedInput:
    source_date: str       # date as received
    calendar_date: str     # date sent to the engine (day_offset applied)
    hour_of_day: int
    day_offset: int
    gender: Gender
    fix_leap: bool
    calendar: str = CALENDAR_SOLAR
    is_leap_month: bool = False


def apply_day_offset(date_str: str, day_offset: int) -> str:
    """
    Shift an ISO date by day_offset. Offset 0 passes the string through
    untouched so calendar validity stays the engine's decision.
    Raises ValueError for an impossible calendar date and OverflowError
    past 9999-12-31.
    """
    if not day_offset:
        return date_str
    return (_dt.date.fromisoformat(date_str) + _dt.timedelta(days=day_offset)).isoformat()


def resolve_input(date_str: str, t: NormalizedTime, gender: Gender, fix_leap: bool = True) -> NormalizedInput:
    return NormalizedInput(
        source_date=date_str,
        calendar_date=apply_day_offset(date_str, t.day_offset),
        hour_of_day=t.hour_of_day,
        day_offset=t.day_offset,
        gender=gender,
        fix_leap=fix_leap,
    )


def resolve_lunar_input(
    date_str: str,
    t: NormalizedTime,
    gender: Gender,
    fix_leap: bool = True,
    is_leap_month: bool = False,
) -> NormalizedInput:
    """
    Lunar dates are never shifted here: the day after a lunar date depends on
    month lengths only the engine knows. A rolled-over late slot goes to the
    engine as hour 23 of the date as sent, which the engine reads as late Zi.
    """
    hour = 23 if t.day_offset else t.hour_of_day
    return NormalizedInput(
        source_date=date_str,
        calendar_date=date_str,
        hour_of_day=hour,
        day_offset=0,
        gender=gender,
        fix_leap=fix_leap,
        calendar=CALENDAR_LUNAR,
        is_leap_month=is_leap_month,
    )
