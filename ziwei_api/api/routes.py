# ziwei_api/api/routes.py
"""
Ziwei API: chart routes

- POST /api/chart   birth chart from date + time + gender
- POST /api/solar   alias kept for clients of the first release
- POST /api/lunar   birth chart from a lunar date (+ optional isLeapMonth)
- GET  /api/health

The accepted time field (hour / timeIndex / time) is fixed per deployment
by the `time_input` config key, not negotiated per request.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from ziwei_api.api.helpers import result_response
from ziwei_api.core.constants import CALENDAR_LUNAR, CALENDAR_SOLAR
from ziwei_api.core.pipeline import ChartService
from ziwei_api.utils.metrics import timed
from ziwei_api.version import VERSION

log = logging.getLogger(__name__)
api = Blueprint("api", __name__)

SERVICE_EXT = "ziwei_chart_service"


def chart_service() -> ChartService:
    return current_app.extensions[SERVICE_EXT]


@api.get("/api/health")
def health():
    svc = chart_service()
    return jsonify({
        "status": "ok",
        "version": VERSION,
        "time_input": svc.settings["time_input"],
        "late_slot_policy": svc.settings["late_slot_policy"],
    }), 200


def _handle(calendar: str):
    # Non-object or unparseable bodies validate as "all fields missing".
    body = request.get_json(silent=True)
    return result_response(chart_service().handle(body if isinstance(body, dict) else {}, calendar=calendar))


def _solar_handler():
    return _handle(CALENDAR_SOLAR)


def _lunar_handler():
    return _handle(CALENDAR_LUNAR)


api.add_url_rule("/api/chart", "chart", timed("/api/chart")(_solar_handler), methods=["POST"])
api.add_url_rule("/api/solar", "chart_alias_solar", timed("/api/solar")(_solar_handler), methods=["POST"])
api.add_url_rule("/api/lunar", "chart_lunar", timed("/api/lunar")(_lunar_handler), methods=["POST"])
