# ziwei_api/main.py
from __future__ import annotations

import logging
import os
import traceback
from typing import Any, Mapping, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from ziwei_api.api.helpers import json_error
from ziwei_api.api.routes import SERVICE_EXT, api
from ziwei_api.core.constants import ErrorCode
from ziwei_api.core.engine import ChartEngine, IztroEngine
from ziwei_api.core.pipeline import ChartService
from ziwei_api.utils.cache import ChartCache
from ziwei_api.utils.config import build_config
from ziwei_api.utils.metrics import GAUGE_APP_UP, GAUGE_CACHE_SIZE, MET_ERRORS

# ───────────────────────── helpers: logging & errors ─────────────────────────
def _configure_logging(app: Flask) -> None:
    gerr = logging.getLogger("gunicorn.error")
    if gerr.handlers:
        app.logger.handlers = gerr.handlers
        app.logger.setLevel(gerr.level)
    else:
        logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))

def _register_errors(app: Flask) -> None:
    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        app.logger.warning("HTTP %s at %s %s: %s", e.code, request.method, request.path, e.description)
        return json_error("HTTP_ERROR", e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def _any(e: Exception):
        tb = traceback.format_exc()
        app.logger.error("UNHANDLED %s at %s %s\n%s", type(e).__name__, request.method, request.path, tb)
        MET_ERRORS.labels(code=ErrorCode.INTERNAL_ERROR.value).inc()
        return json_error(ErrorCode.INTERNAL_ERROR.value, "internal server error", 500)

# ───────────────────────── health & metrics ─────────────────────────
def _register_health(app: Flask) -> None:
    @app.route("/", methods=["GET"])
    def root():
        return jsonify(status="ok", service="ziwei-chart-api", health="/health"), 200

    @app.route("/health", methods=["GET"])
    @app.route("/healthz", methods=["GET"])
    def health():
        return jsonify(status="ok"), 200

def _metrics_auth_ok() -> bool:
    auth = request.authorization
    user = os.getenv("METRICS_USER", "")
    pw = os.getenv("METRICS_PASS", "")
    return bool(
        auth and auth.type == "basic" and auth.username == user and auth.password == pw and user and pw
    )

def _register_metrics(app: Flask) -> None:
    @app.route("/metrics", methods=["GET"])
    def metrics_endpoint():
        if not _metrics_auth_ok():
            return Response("Unauthorized", 401, {"WWW-Authenticate": 'Basic realm="metrics"'})
        GAUGE_APP_UP.set(1.0)
        GAUGE_CACHE_SIZE.set(len(app.extensions[SERVICE_EXT].cache))
        return Response(generate_latest(REGISTRY), mimetype=CONTENT_TYPE_LATEST)

# ───────────────────────── app factory ─────────────────────────
def create_app(
    config: Optional[Mapping[str, Any]] = None,
    engine: Optional[ChartEngine] = None,
    cache: Optional[ChartCache] = None,
) -> Flask:
    """
    Build the Flask app.

    `config` overrides the YAML/env settings (see utils.config.build_config);
    `engine` and `cache` replace the py-iztro engine and the 10-minute cache,
    mainly for tests. The cache lives for the life of the app (one per process).
    """
    app = Flask(__name__)
    app.json.sort_keys = False
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore

    _configure_logging(app)

    cfg_path = os.environ.get("ZIWEI_CONFIG", "config/defaults.yaml")
    settings = build_config(overrides=dict(config or {}), path=cfg_path)
    app.config["ZIWEI"] = settings

    app.extensions[SERVICE_EXT] = ChartService(
        engine=engine if engine is not None else IztroEngine(),
        cache=cache if cache is not None else ChartCache(),
        settings=settings,
    )
    GAUGE_APP_UP.set(1.0)

    _register_health(app)
    _register_errors(app)
    _register_metrics(app)
    app.register_blueprint(api)

    # CORS for browser UIs
    CORS(
        app,
        resources={r"/.*": {"origins": os.environ.get("CORS_ALLOW_ORIGIN") or "*"}},
        supports_credentials=False,
        methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=600,
    )

    app.logger.info(
        "App initialized; time_input=%s late_slot_policy=%s locale=%s",
        settings.time_input, settings.late_slot_policy, settings.locale,
    )
    return app


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
