# ziwei_api/api/helpers.py
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import Response, jsonify

from ziwei_api.core.pipeline import ChartResult

JSON_MIMETYPE = "application/json"


def json_error(code: str, message: str, http: int = 400, details: Any = None):
    """Error body in the same shape the chart pipeline emits."""
    out: Dict[str, Any] = {"status": "error", "code": code, "error": message}
    if details is not None:
        out["details"] = details
    return jsonify(out), http


def result_response(result: ChartResult, headers: Optional[Dict[str, str]] = None) -> Response:
    """Chart bodies are pre-serialized (and cached) text; send them as-is."""
    resp = Response(result.body, status=result.http_status, mimetype=JSON_MIMETYPE)
    if result.ok:
        resp.headers["X-Cache"] = "HIT" if result.cache_hit else "MISS"
    for k, v in (headers or {}).items():
        resp.headers[k] = v
    return resp
