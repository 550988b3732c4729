from __future__ import annotations
import time
from functools import wraps
from typing import Callable, Final

from prometheus_client import Counter, Gauge, Histogram

# Keep names stable: dashboards scrape these.
MET_REQUESTS: Final = Counter("ziwei_api_requests_total", "API requests", ["route"])
MET_ERRORS: Final = Counter("ziwei_api_errors_total", "Error responses by code", ["code"])
MET_CACHE: Final = Counter("ziwei_chart_cache_lookups_total", "Chart cache lookups", ["result"])
MET_ENGINE: Final = Counter("ziwei_engine_calls_total", "Chart engine invocations", ["outcome"])
ENGINE_LATENCY: Final = Histogram("ziwei_engine_seconds", "Chart engine latency")
REQ_LATENCY: Final = Histogram("ziwei_request_seconds", "API request latency", ["route"])
GAUGE_APP_UP: Final = Gauge("ziwei_app_up", "1 if app is running")
GAUGE_CACHE_SIZE: Final = Gauge("ziwei_chart_cache_entries", "Entries held by the chart cache (stale included)")


def timed(route: str) -> Callable:
    """Count and time a view under `route`."""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            MET_REQUESTS.labels(route=route).inc()
            t0 = time.perf_counter()
            try:
                return fn(*args, **kwargs)
            finally:
                REQ_LATENCY.labels(route=route).observe(time.perf_counter() - t0)
        return wrapper
    return deco
