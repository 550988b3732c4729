# ziwei_api/core/chart.py
"""
Reshape raw engine output into the stable chart schema.

The engine's structure varies by version and binding (camelCase JSON from
the JS engine, snake_case pydantic models from py-iztro), so the raw chart
is read as an opaque document: every field is looked up under each of its
known spellings, by key or attribute, and defaulted when absent or of the
wrong type. normalize_chart() never raises.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote, urlencode

from ziwei_api.core.constants import CALENDAR_LUNAR

PALACE_COUNT = 12

# output field -> accepted raw spellings
_TOP_LEVEL_FIELDS: Dict[str, tuple] = {
    "gender": ("gender",),
    "solar_date": ("solarDate", "solar_date"),
    "lunar_date": ("lunarDate", "lunar_date"),
    "chinese_date": ("chineseDate", "chinese_date"),
    "time": ("time",),
    "time_range": ("timeRange", "time_range"),
    "sign": ("sign",),
    "zodiac": ("zodiac",),
    "five_elements_class": ("fiveElementsClass", "five_elements_class"),
    "soul_palace_branch": ("earthlyBranchOfSoulPalace", "earthly_branch_of_soul_palace"),
    "body_palace_branch": ("earthlyBranchOfBodyPalace", "earthly_branch_of_body_palace"),
    "soul": ("soul",),
    "body": ("body",),
}

_STAR_GROUPS: Dict[str, tuple] = {
    "major_stars": ("majorStars", "major_stars"),
    "minor_stars": ("minorStars", "minor_stars"),
    "adjective_stars": ("adjectiveStars", "adjective_stars"),
    "hidden_stars": ("hiddenStars", "hidden_stars"),
}

_PALACE_STRINGS: Dict[str, tuple] = {
    "name": ("name",),
    "heavenly_stem": ("heavenlyStem", "heavenly_stem"),
    "earthly_branch": ("earthlyBranch", "earthly_branch"),
    "changsheng12": ("changsheng12",),
    "boshi12": ("boshi12",),
    "jiangqian12": ("jiangqian12",),
    "suiqian12": ("suiqian12",),
}

_PALACE_FLAGS: Dict[str, tuple] = {
    "is_body_palace": ("isBodyPalace", "is_body_palace"),
    "is_original_palace": ("isOriginalPalace", "is_original_palace"),
}

_MISSING = object()


# ───────────────────────── defensive access ─────────────────────────
def _pick(obj: Any, *names: str) -> Any:
    """First present value among names, by key or attribute; _MISSING otherwise."""
    if obj is None:
        return _MISSING
    for name in names:
        try:
            if isinstance(obj, Mapping):
                if name in obj:
                    return obj[name]
            elif hasattr(obj, name):
                return getattr(obj, name)
        except Exception:
            continue
    return _MISSING


def _as_document(raw: Any) -> Any:
    try:
        dump = getattr(raw, "model_dump", None)
        if callable(dump):
            return dump(by_alias=True)
    except Exception:
        pass
    return raw


def _seq(v: Any) -> List[Any]:
    if v is _MISSING or v is None or isinstance(v, (str, bytes, Mapping)):
        return []
    if isinstance(v, Sequence):
        return list(v)
    return []


def _str(v: Any) -> str:
    if v is _MISSING or v is None or not isinstance(v, str):
        return ""
    return v


def _bool(v: Any) -> bool:
    return v if isinstance(v, bool) else False


def _int(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    if isinstance(v, float) and not math.isfinite(v):
        return None
    return int(v)


def _scalar(v: Any) -> Any:
    if v is _MISSING or v is None:
        return None
    if isinstance(v, (str, int, float, bool)):
        return v
    return str(v)


# ───────────────────────── records ─────────────────────────
def _star(raw: Any) -> Dict[str, str]:
    if isinstance(raw, str):
        return {"name": raw, "type": "", "scope": "", "brightness": "", "mutagen": ""}
    return {
        "name": _str(_pick(raw, "name")),
        "type": _str(_pick(raw, "type")),
        "scope": _str(_pick(raw, "scope")),
        "brightness": _str(_pick(raw, "brightness")),
        "mutagen": _str(_pick(raw, "mutagen")),
    }


def _decadal(raw: Any) -> Dict[str, Any]:
    rng = [_int(x) for x in _seq(_pick(raw, "range"))]
    if len(rng) != 2 or None in rng:
        rng = []
    return {
        "range": rng,
        "heavenly_stem": _str(_pick(raw, "heavenlyStem", "heavenly_stem")),
        "earthly_branch": _str(_pick(raw, "earthlyBranch", "earthly_branch")),
    }


def _palace(raw: Any, position: int) -> Dict[str, Any]:
    idx = _int(_pick(raw, "index"))
    out: Dict[str, Any] = {"index": position if idx is None else idx}
    for key, names in _PALACE_STRINGS.items():
        out[key] = _str(_pick(raw, *names))
    for key, names in _PALACE_FLAGS.items():
        out[key] = _bool(_pick(raw, *names))
    for key, names in _STAR_GROUPS.items():
        out[key] = [_star(s) for s in _seq(_pick(raw, *names))]
    out["ages"] = [a for a in (_int(x) for x in _seq(_pick(raw, "ages"))) if a is not None]
    out["decadal"] = _decadal(_pick(raw, "decadal"))
    return out


def _decades(doc: Any, palaces: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    top = _seq(_pick(doc, "decadals", "decades"))
    if top:
        for i, item in enumerate(top):
            d = _decadal(item)
            if not d["range"]:
                continue
            rows.append({
                "palace_index": _int(_pick(item, "palaceIndex", "palace_index", "index")),
                "palace_name": _str(_pick(item, "palaceName", "palace_name", "name")),
                "start_age": d["range"][0],
                "end_age": d["range"][1],
                "heavenly_stem": d["heavenly_stem"],
                "earthly_branch": d["earthly_branch"],
            })
    else:
        for p in palaces:
            d = p["decadal"]
            if not d["range"]:
                continue
            rows.append({
                "palace_index": p["index"],
                "palace_name": p["name"],
                "start_age": d["range"][0],
                "end_age": d["range"][1],
                "heavenly_stem": d["heavenly_stem"],
                "earthly_branch": d["earthly_branch"],
            })
    rows.sort(key=lambda r: r["start_age"])
    return rows


# ───────────────────────── public ─────────────────────────
def normalize_chart(raw: Any) -> Dict[str, Any]:
    """Total function: raw engine chart -> complete chart document."""
    doc = _as_document(raw)
    out: Dict[str, Any] = {}
    for key, names in _TOP_LEVEL_FIELDS.items():
        out[key] = _scalar(_pick(doc, *names))

    raw_palaces = _seq(_pick(doc, "palaces"))[:PALACE_COUNT]
    palaces = [_palace(p, i) for i, p in enumerate(raw_palaces)]
    palaces.extend(_palace(None, i) for i in range(len(palaces), PALACE_COUNT))
    out["palaces"] = palaces
    out["decades"] = _decades(doc, palaces)
    return out


def build_viewer_url(base_url: str, source_date: str, hour: int, gender: str, chart_type: str) -> str:
    """Deep link to the companion viewer; always carries the un-shifted request date."""
    query = urlencode(
        {"date": source_date, "hour": int(hour), "gender": gender, "type": chart_type},
        quote_via=quote,
        safe="",
    )
    sep = "&" if "?" in base_url else "?"
    return f"{base_url}{sep}{query}"


def build_success_payload(raw: Any, ni: Any, *, viewer_base_url: str, chart_type: str) -> Dict[str, Any]:
    """
    Success body for one computed chart; ``ni`` is the NormalizedInput that produced it.

    Lunar charts link the viewer with the solar date the engine resolved,
    falling back to the date as sent.
    """
    data = normalize_chart(raw)
    lunar = ni.calendar == CALENDAR_LUNAR
    link_date = (data["solar_date"] if lunar and isinstance(data["solar_date"], str) else "") or ni.source_date
    inputs: Dict[str, Any] = {
        "date": ni.source_date,
        "calendar_date": ni.calendar_date,
        "hour": ni.hour_of_day,
        "day_offset": ni.day_offset,
        "gender": ni.gender.value,
    }
    if lunar:
        inputs["calendar"] = CALENDAR_LUNAR
        inputs["is_leap_month"] = ni.is_leap_month
    return {
        "status": "success",
        "data": data,
        "viewer_url": build_viewer_url(viewer_base_url, link_date, ni.hour_of_day, ni.gender.value, chart_type),
        "input": inputs,
    }
