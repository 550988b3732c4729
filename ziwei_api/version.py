# ziwei_api/version.py
from __future__ import annotations
import os
from importlib.metadata import PackageNotFoundError, version as _dist_version

DIST_NAME = "ziwei-chart-api"


def _installed_version() -> str:
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:  # running from a source checkout
        return "0.0.0+local"


# ZIWEI_VERSION wins for CI/preview builds
VERSION = os.getenv("ZIWEI_VERSION") or _installed_version()
