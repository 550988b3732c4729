# ziwei_api/utils/config.py
import copy
import os
import yaml

from ziwei_api.core.constants import (
    LATE_SLOT_NEXT_DAY,
    LATE_SLOT_POLICIES,
    TIME_INPUT_TIME_INDEX,
    TIME_INPUTS,
)

DEFAULTS = {
    "time_input": TIME_INPUT_TIME_INDEX,
    "late_slot_policy": LATE_SLOT_NEXT_DAY,
    "locale": "zh-CN",
    "fix_leap": True,
    "gender_tokens": {"male": "男", "female": "女"},
    "viewer": {
        "base_url": "https://ziwei.pub/astrolabe/",
        "chart_type": "ziwei",
    },
    "debug_verbose": False,
}


class ConfigError(ValueError):
    pass


class AttrDict(dict):
    """Dict that also supports attribute access: cfg.locale and cfg['locale'] both work."""
    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError as e:
            raise AttributeError(item) from e
    def __setattr__(self, key, value):
        self[key] = value

def _to_attr(obj):
    if isinstance(obj, dict):
        return AttrDict({k: _to_attr(v) for k, v in obj.items()})
    if isinstance(obj, list):
        return [_to_attr(x) for x in obj]
    return obj

def _merge(base, over):
    out = dict(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def _truthy_env(name):
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")

def _validate(data):
    if data["time_input"] not in TIME_INPUTS:
        raise ConfigError(f"time_input must be one of {', '.join(TIME_INPUTS)}; got {data['time_input']!r}")
    if data["late_slot_policy"] not in LATE_SLOT_POLICIES:
        raise ConfigError(
            f"late_slot_policy must be one of {', '.join(LATE_SLOT_POLICIES)}; got {data['late_slot_policy']!r}"
        )
    tokens = data.get("gender_tokens") or {}
    if not (isinstance(tokens, dict) and tokens.get("male") and tokens.get("female")):
        raise ConfigError("gender_tokens must map both 'male' and 'female'")

def build_config(overrides=None, path=None):
    """
    Layer the configuration, lowest to highest precedence:
      - built-in DEFAULTS
      - YAML file at `path` (skipped when missing)
      - env: ZIWEI_TIME_INPUT, ZIWEI_LATE_SLOT_POLICY, ZIWEI_LOCALE,
             ZIWEI_VIEWER_URL, ZIWEI_DEBUG_VERBOSE
      - `overrides` (app factory / tests)
    Returns an AttrDict; raises ConfigError on unknown enum values.
    """
    data = copy.deepcopy(DEFAULTS)

    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = _merge(data, yaml.safe_load(f) or {})

    if os.getenv("ZIWEI_TIME_INPUT"):
        data["time_input"] = os.environ["ZIWEI_TIME_INPUT"].strip()
    if os.getenv("ZIWEI_LATE_SLOT_POLICY"):
        data["late_slot_policy"] = os.environ["ZIWEI_LATE_SLOT_POLICY"].strip()
    if os.getenv("ZIWEI_LOCALE"):
        data["locale"] = os.environ["ZIWEI_LOCALE"].strip()
    if os.getenv("ZIWEI_VIEWER_URL"):
        data["viewer"]["base_url"] = os.environ["ZIWEI_VIEWER_URL"].strip()
    if _truthy_env("ZIWEI_DEBUG_VERBOSE"):
        data["debug_verbose"] = True

    data = _merge(data, overrides)
    _validate(data)
    return _to_attr(data)

def load_config(path: str):
    """Load YAML config from `path` over the defaults (see build_config)."""
    return build_config(path=path)
