# ziwei_api/core/pipeline.py
"""
Birth-chart request pipeline.

    validate -> normalize (date rollover) -> cache lookup
             -> compute (engine) -> reshape -> serialize -> cache store -> respond

Any step may end the request with a classified error; handle() never raises.
Only the compute step crosses into the external engine, and only on a
cache miss. Concurrent misses for one key may both compute; the last
store wins.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Hashable, Mapping, Tuple

from ziwei_api.core.chart import build_success_payload
from ziwei_api.core.constants import CALENDAR_LUNAR, CALENDAR_SOLAR, ErrorCode
from ziwei_api.core.engine import ChartEngine, classify_engine_error
from ziwei_api.core.errors import ChartError
from ziwei_api.core.time_kernel import NormalizedInput, resolve_input, resolve_lunar_input
from ziwei_api.core.validators import ValidatedRequest, validate_birth_request
from ziwei_api.utils.cache import ChartCache
from ziwei_api.utils.metrics import ENGINE_LATENCY, GAUGE_CACHE_SIZE, MET_CACHE, MET_ENGINE, MET_ERRORS

log = logging.getLogger(__name__)

__all__ = ["ChartResult", "ChartService", "cache_key", "dumps"]


@dataclass(frozen=True)
class ChartResult:
    http_status: int
    body: str
    cache_hit: bool = False

    @property
    def ok(self) -> bool:
        return self.http_status == 200


def dumps(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), allow_nan=False)


def cache_key(req: ValidatedRequest, time_input: str) -> Tuple[Hashable, ...]:
    """Built from the date as received, never the rolled-over one."""
    return (
        req.calendar,
        req.date,
        time_input,
        req.time.key_value,
        req.gender.value,
        req.fix_leap,
        req.is_leap_month,
    )


class ChartService:
    def __init__(self, engine: ChartEngine, cache: ChartCache, settings: Mapping[str, Any]):
        self.engine = engine
        self.cache = cache
        self.settings = settings

    @property
    def debug(self) -> bool:
        return bool(self.settings.get("debug_verbose"))

    # ───────────── steps ─────────────
    def _validate(self, body: Any, calendar: str) -> ValidatedRequest:
        return validate_birth_request(
            body,
            time_input=self.settings["time_input"],
            late_slot_policy=self.settings["late_slot_policy"],
            fix_leap_default=bool(self.settings["fix_leap"]),
            calendar=calendar,
        )

    def _normalize(self, req: ValidatedRequest) -> NormalizedInput:
        if req.calendar == CALENDAR_LUNAR:
            return resolve_lunar_input(req.date, req.time, req.gender, req.fix_leap, req.is_leap_month)
        try:
            return resolve_input(req.date, req.time, req.gender, req.fix_leap)
        except (ValueError, OverflowError) as e:
            raise ChartError(
                ErrorCode.DATE_INVALID,
                f"date {req.date} is not a valid calendar date",
                detail=str(e) if self.debug else None,
            ) from e

    def _call_engine(self, ni: NormalizedInput) -> Any:
        token = self.settings["gender_tokens"][ni.gender.value]
        locale = self.settings["locale"]
        if ni.calendar == CALENDAR_LUNAR:
            return self.engine.compute_lunar_chart(
                ni.calendar_date, ni.hour_of_day, token, ni.is_leap_month, ni.fix_leap, locale
            )
        return self.engine.compute_chart(ni.calendar_date, ni.hour_of_day, token, ni.fix_leap, locale)

    def _compute(self, ni: NormalizedInput) -> Any:
        t0 = time.perf_counter()
        try:
            raw = self._call_engine(ni)
        except Exception as e:
            err = classify_engine_error(
                e,
                hour_of_day=ni.hour_of_day,
                calendar_date=ni.calendar_date,
                debug=self.debug,
            )
            MET_ENGINE.labels(outcome=err.code.value).inc()
            if err.code is ErrorCode.INTERNAL_ERROR:
                log.exception("chart engine failed for %s %s h=%s", ni.calendar, ni.calendar_date, ni.hour_of_day)
            else:
                log.warning("chart engine rejected %s %s h=%s: %s", ni.calendar, ni.calendar_date, ni.hour_of_day, e)
            raise err from e
        finally:
            ENGINE_LATENCY.observe(time.perf_counter() - t0)
        MET_ENGINE.labels(outcome="ok").inc()
        return raw

    def _render(self, raw: Any, ni: NormalizedInput) -> str:
        viewer = self.settings["viewer"]
        payload = build_success_payload(
            raw, ni, viewer_base_url=viewer["base_url"], chart_type=viewer["chart_type"]
        )
        try:
            return dumps(payload)
        except (TypeError, ValueError) as e:
            log.exception("failed to serialize chart for %s", ni.calendar_date)
            raise ChartError(
                ErrorCode.INTERNAL_ERROR,
                "failed to serialize chart response",
                detail=str(e) if self.debug else None,
            ) from e

    # ───────────── orchestration ─────────────
    def handle(self, body: Any, calendar: str = CALENDAR_SOLAR) -> ChartResult:
        try:
            req = self._validate(body, calendar)
            ni = self._normalize(req)

            key = cache_key(req, self.settings["time_input"])
            hit = self.cache.lookup(key)
            if hit is not None:
                MET_CACHE.labels(result="hit").inc()
                log.debug("chart cache hit %s", key)
                return ChartResult(200, hit, cache_hit=True)
            MET_CACHE.labels(result="miss").inc()
            log.debug("chart cache miss %s", key)

            raw = self._compute(ni)
            text = self._render(raw, ni)
            self.cache.store(key, text)
            GAUGE_CACHE_SIZE.set(len(self.cache))
            return ChartResult(200, text)
        except ChartError as e:
            return self._error(e)
        except Exception as e:
            log.exception("unhandled failure in chart pipeline")
            return self._error(ChartError(
                ErrorCode.INTERNAL_ERROR,
                "chart request failed",
                detail=str(e) if self.debug else None,
            ))

    def _error(self, err: ChartError) -> ChartResult:
        MET_ERRORS.labels(code=err.code.value).inc()
        return ChartResult(err.http_status, dumps(err.to_dict()))
