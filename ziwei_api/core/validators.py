# ziwei_api/core/validators.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from ziwei_api.core.constants import (
    CALENDAR_LUNAR,
    CALENDAR_SOLAR,
    ErrorCode,
    GENDER_ALIASES,
    Gender,
    LATE_SLOT_NEXT_DAY,
    LEAP_MONTH_FIELDS,
    TIME_FIELDS,
    TIME_INPUT_TIME_INDEX,
)
from ziwei_api.core.errors import ValidationError
from ziwei_api.core.time_kernel import NormalizedTime, normalize_time

__all__ = [
    "ValidatedRequest",
    "validate_birth_request",
    "parse_date_str",
    "parse_lunar_date_str",
    "parse_gender",
    "parse_fix_leap",
    "parse_leap_month",
]


@dataclass(frozen=True)
class ValidatedRequest:
    date: str
    time: NormalizedTime
    gender: Gender
    fix_leap: bool
    calendar: str = CALENDAR_SOLAR
    is_leap_month: bool = False


# ───────────────────────── helpers ─────────────────────────
def _missing(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def _truthy(val: Any) -> Optional[bool]:
    if isinstance(val, bool):
        return val
    if val is None:
        return None
    if isinstance(val, int):
        return {1: True, 0: False}.get(val)
    if not isinstance(val, str):
        return None
    s = val.strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None


def _time_field(body: Mapping[str, Any], form: str) -> Tuple[str, Any]:
    """Return (canonical field name, first non-missing value among its aliases)."""
    names = TIME_FIELDS[form]
    for name in names:
        if name in body and not _missing(body[name]):
            return names[0], body[name]
    return names[0], None


# ───────────────────────── atomic parsers ─────────────────────────
# Month 01-12, day 01-31 for every month: calendar validity is the engine's job.
_DATE_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>0[1-9]|1[0-2])-(?P<d>0[1-9]|[12]\d|3[01])$")


def parse_date_str(s: Any) -> str:
    if not isinstance(s, str) or not _DATE_RE.match(s.strip()):
        raise ValidationError(ErrorCode.INVALID_DATE_FORMAT, "date must be 'YYYY-MM-DD'", loc="date")
    return s.strip()


# Lunar months never run past day 30.
_LUNAR_DATE_RE = re.compile(r"^(?P<y>\d{4})-(?P<m>0[1-9]|1[0-2])-(?P<d>0[1-9]|[12]\d|30)$")


def parse_lunar_date_str(s: Any) -> str:
    if not isinstance(s, str) or not _LUNAR_DATE_RE.match(s.strip()):
        raise ValidationError(ErrorCode.INVALID_DATE_FORMAT, "lunar date must be 'YYYY-MM-DD' with day 01-30", loc="date")
    return s.strip()


def parse_gender(v: Any) -> Gender:
    g = GENDER_ALIASES.get(str(v).strip().lower()) if isinstance(v, str) else None
    if g is None:
        raise ValidationError(ErrorCode.INVALID_GENDER, "gender must be 'M' or 'F'", loc="gender")
    return g


def parse_fix_leap(v: Any, default: bool = True) -> bool:
    if v is None:
        return default
    b = _truthy(v)
    if b is None:
        raise ValidationError(ErrorCode.INVALID_PARAMS, "fix_leap must be a boolean", loc="fix_leap")
    return b


def parse_leap_month(v: Any) -> bool:
    if v is None:
        return False
    b = _truthy(v)
    if b is None:
        raise ValidationError(ErrorCode.INVALID_PARAMS, "isLeapMonth must be a boolean", loc="isLeapMonth")
    return b


def _first(body: Mapping[str, Any], names: Tuple[str, ...]) -> Any:
    for name in names:
        if body.get(name) is not None:
            return body[name]
    return None


# ───────────────────────── request ─────────────────────────
def validate_birth_request(
    body: Any,
    *,
    time_input: str = TIME_INPUT_TIME_INDEX,
    late_slot_policy: str = LATE_SLOT_NEXT_DAY,
    fix_leap_default: bool = True,
    calendar: str = CALENDAR_SOLAR,
) -> ValidatedRequest:
    """
    Validate a raw birth request without any I/O.

    Order is presence -> gender -> date -> time, each failing fast with
    its own code. Time validation is delegated to the time kernel.
    Lunar requests take a day 01-30 and an optional isLeapMonth flag.
    """
    if not isinstance(body, Mapping):
        body = {}

    time_name, time_value = _time_field(body, time_input)
    missing: List[str] = []
    if _missing(body.get("date")):
        missing.append("date")
    if _missing(time_value):
        missing.append(time_name)
    if _missing(body.get("gender")):
        missing.append("gender")
    if missing:
        raise ValidationError(
            ErrorCode.MISSING_PARAMS,
            "missing required parameters: " + ", ".join(missing),
            loc=missing,
            missing=missing,
        )

    gender = parse_gender(body["gender"])
    lunar = calendar == CALENDAR_LUNAR
    date = parse_lunar_date_str(body["date"]) if lunar else parse_date_str(body["date"])
    time = normalize_time(time_value, time_input, late_slot_policy)
    fix_leap = parse_fix_leap(_first(body, ("fix_leap", "fixLeap")), fix_leap_default)
    is_leap_month = parse_leap_month(_first(body, LEAP_MONTH_FIELDS)) if lunar else False
    return ValidatedRequest(
        date=date,
        time=time,
        gender=gender,
        fix_leap=fix_leap,
        calendar=calendar,
        is_leap_month=is_leap_month,
    )
