# ziwei_api/core/engine.py
"""
Boundary to the external chart-computation engine.

The engine is treated as a pair of pure, synchronous functions:

    compute_chart(calendar_date, hour_of_day, gender_token, fix_leap, locale) -> chart
    compute_lunar_chart(lunar_date, hour_of_day, gender_token, is_leap_month, fix_leap, locale) -> chart

It raises on inputs it cannot place; classify_engine_error() maps those
failures onto the API error taxonomy. Nothing here retries or times out.
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Any, Optional, Protocol

from ziwei_api.core.constants import ErrorCode
from ziwei_api.core.errors import ChartError

log = logging.getLogger(__name__)

__all__ = ["ChartEngine", "IztroEngine", "classify_engine_error", "slot_for_hour"]


class ChartEngine(Protocol):
    def compute_chart(
        self,
        calendar_date: str,
        hour_of_day: int,
        gender_token: str,
        fix_leap: bool,
        locale: str,
    ) -> Any: ...

    def compute_lunar_chart(
        self,
        lunar_date: str,
        hour_of_day: int,
        gender_token: str,
        is_leap_month: bool,
        fix_leap: bool,
        locale: str,
    ) -> Any: ...


def slot_for_hour(hour: int) -> int:
    """Wall-clock hour -> iztro time index (0 early Zi, 12 late Zi)."""
    if hour == 0:
        return 0
    if hour == 23:
        return 12
    return (hour + 1) // 2


class IztroEngine:
    """
    Adapter over the ``py-iztro`` binding.

    The binding is imported on first use so the app boots (and tests run)
    without it; an import failure surfaces as an engine error on the
    first request.
    """

    def __init__(self) -> None:
        self._astro: Any = None
        self._lock = threading.Lock()

    def _get_astro(self) -> Any:
        with self._lock:
            if self._astro is None:
                from py_iztro import Astro  # type: ignore
                self._astro = Astro()
                log.info("py_iztro engine loaded")
            return self._astro

    def compute_chart(
        self,
        calendar_date: str,
        hour_of_day: int,
        gender_token: str,
        fix_leap: bool,
        locale: str,
    ) -> Any:
        slot = _engine_slot(hour_of_day)
        return _dump(self._get_astro().by_solar(calendar_date, slot, gender_token, fix_leap, locale))

    def compute_lunar_chart(
        self,
        lunar_date: str,
        hour_of_day: int,
        gender_token: str,
        is_leap_month: bool,
        fix_leap: bool,
        locale: str,
    ) -> Any:
        slot = _engine_slot(hour_of_day)
        return _dump(self._get_astro().by_lunar(lunar_date, slot, gender_token, is_leap_month, fix_leap, locale))


def _engine_slot(hour_of_day: int) -> int:
    if not (0 <= int(hour_of_day) <= 23):
        raise ValueError(f"wrong hour {hour_of_day}")
    return slot_for_hour(int(hour_of_day))


def _dump(result: Any) -> Any:
    dump = getattr(result, "model_dump", None)
    if callable(dump):
        return dump(by_alias=True)
    return result


# ───────────────────────── error classification ─────────────────────────
_HOUR_MARKER = "wrong hour"
_DATE_RE = re.compile(r"\b(date|month|day|year|invalid)\b|日期", re.IGNORECASE)


def classify_engine_error(
    exc: BaseException,
    *,
    hour_of_day: Optional[int] = None,
    calendar_date: Optional[str] = None,
    debug: bool = False,
) -> ChartError:
    """Map an engine exception onto HOUR_INVALID / DATE_INVALID / INTERNAL_ERROR."""
    raw = str(exc) or type(exc).__name__
    detail = raw if debug else None
    if raw.strip().lower().startswith(_HOUR_MARKER):
        return ChartError(
            ErrorCode.HOUR_INVALID,
            f"hour value {hour_of_day} is invalid (expected 0-23)",
            detail=detail,
        )
    if _DATE_RE.search(raw):
        return ChartError(
            ErrorCode.DATE_INVALID,
            f"date {calendar_date} was rejected by the chart engine",
            detail=detail,
        )
    return ChartError(ErrorCode.INTERNAL_ERROR, "chart computation failed", detail=detail)
