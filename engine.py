# -*- coding: utf-8 -*-

"""Display-value inference for the Nightscout status page.

Takes the raw /pebble and /status.json payloads plus the environment
preferences and derives every string the page shows. Pure functions only:
no I/O, no clock reads (callers pass now_ms and the local zone name).
Every operation returns a sentinel ("?" or "") instead of raising.
"""

from __future__ import annotations

import math
import re
import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import dateutil.parser
from dateutil import tz

from settings import Preferences

MGDL_PER_MMOLL = 18.0182
# Readings at or below this are mmol/L; no real mg/dL reading is that low.
MMOL_MAX_PLAUSIBLE = 40.0
FALLBACK_TZ = "UTC"

_DELTA_RE = re.compile(r"^\s*([+-]?)(\d+(\.\d+)?)\s*$")

_TREND_BY_CODE = {
    1: "↓",
    2: "↘",
    3: "→",
    4: "↗",
    5: "↑",
}

_TREND_BY_DIRECTION = {
    "DoubleDown": "↓↓",
    "SingleDown": "↓",
    "FortyFiveDown": "↘",
    "Flat": "→",
    "FortyFiveUp": "↗",
    "SingleUp": "↑",
    "DoubleUp": "↑↑",
}
_TREND_BY_DIRECTION_LOWER = {k.lower(): v for k, v in _TREND_BY_DIRECTION.items()}


class DisplayUnit(Enum):
    MG_DL = "mg/dL"
    MMOL_L = "mmol/L"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class ReadingSample:
    """Most recent entry of the /pebble 'bgs' list (raw values, None when missing)."""

    value: Any = None
    delta: Any = None
    trend: Any = None
    timestamp_ms: Optional[float] = None


@dataclass(frozen=True)
class StatusSnapshot:
    units: Optional[str] = None
    timezone: Optional[str] = None


@dataclass(frozen=True)
class RenderFields:
    value: str
    delta: str
    trend: str
    age: str
    battery: str
    timestamp: str
    unit: str
    timezone: str


# --- Helpers ---------------------------------------------------------
def _as_number(raw: Any) -> Optional[float]:
    """Finite float from a number or numeric string, else None."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, (int, float)):
            n = float(raw)
        elif isinstance(raw, str):
            n = float(raw.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return n if math.isfinite(n) else None


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _first_present(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _clean_str(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    s = str(raw).strip()
    return s or None


def _tzinfo(name: Any) -> Optional[dt.tzinfo]:
    if not isinstance(name, str) or not name.strip():
        return None
    try:
        return tz.gettz(name.strip())
    except (ValueError, OSError):
        return None


def is_valid_timezone(name: Any) -> bool:
    return _tzinfo(name) is not None


def parse_unit(raw: Any) -> Optional[DisplayUnit]:
    """Map an override string ("mmol", "mmol/L", "mgdl", "mg/dL") to a unit."""
    s = _clean_str(raw)
    if s is None:
        return None
    s = s.lower().replace(" ", "")
    if s in ("mmol", "mmol/l"):
        return DisplayUnit.MMOL_L
    if s in ("mgdl", "mg/dl"):
        return DisplayUnit.MG_DL
    return None


def source_unit(raw_value: Any, status: Optional[StatusSnapshot] = None) -> DisplayUnit:
    """Unit an upstream reading is expressed in.

    A site declaring mg/dL always sends mg/dL, so 39 (Dexcom LOW) stays 39.
    Otherwise judge from magnitude: mmol sites may still serve mg/dL values.
    """
    declared = _clean_str(status.units) if status is not None else None
    if declared is not None and "mmol" not in declared.lower():
        return DisplayUnit.MG_DL
    n = _as_number(raw_value)
    if n is not None and 0 < n <= MMOL_MAX_PLAUSIBLE:
        return DisplayUnit.MMOL_L
    return DisplayUnit.MG_DL


def _convert(n: float, source: DisplayUnit, unit: DisplayUnit) -> float:
    if source is unit:
        return n
    if unit is DisplayUnit.MMOL_L:
        return n / MGDL_PER_MMOLL
    return n * MGDL_PER_MMOLL


def _render_number(n: float, unit: DisplayUnit) -> str:
    if unit is DisplayUnit.MMOL_L:
        return f"{n:.1f}"
    return str(_round_half_up(n))


# --- Resolution ------------------------------------------------------
def resolve_unit(preferences: Optional[Preferences], status: Optional[StatusSnapshot],
                 raw_value: Any) -> DisplayUnit:
    if preferences is not None:
        if preferences.force_mmol:
            return DisplayUnit.MMOL_L
        forced = parse_unit(preferences.unit_override)
        if forced is not None:
            return forced
    declared = _clean_str(status.units) if status is not None else None
    if declared is not None:
        return DisplayUnit.MMOL_L if "mmol" in declared.lower() else DisplayUnit.MG_DL
    return source_unit(raw_value)


def resolve_timezone(preferences: Optional[Preferences], status: Optional[StatusSnapshot],
                     local_timezone: Optional[str]) -> str:
    """Override (verbatim) > status.json timezone > local zone > UTC.

    Only the override skips validation; the formatter falls back to UTC
    if it turns out to be unusable.
    """
    override = _clean_str(preferences.timezone_override) if preferences is not None else None
    if override:
        return override
    declared = _clean_str(status.timezone) if status is not None else None
    if declared and is_valid_timezone(declared):
        return declared
    local = _clean_str(local_timezone)
    if local and is_valid_timezone(local):
        return local
    return FALLBACK_TZ


# --- Formatting ------------------------------------------------------
def format_value(raw_value: Any, unit: DisplayUnit,
                 source: DisplayUnit = DisplayUnit.MG_DL) -> str:
    n = _as_number(raw_value)
    if n is None:
        # Show what upstream sent if it is a non-numeric string
        if isinstance(raw_value, str) and raw_value.strip():
            return raw_value
        return "?"
    converted = _convert(n, source, unit)
    if not math.isfinite(converted):
        return "?"
    return _render_number(converted, unit)


def format_delta(raw_delta: Any, unit: DisplayUnit,
                 source: DisplayUnit = DisplayUnit.MG_DL) -> str:
    if raw_delta is None or isinstance(raw_delta, bool):
        return ""
    if isinstance(raw_delta, (int, float)):
        n = _as_number(raw_delta)
        if n is None:
            return ""
        # -0.0 counts as zero, which is shown as positive
        sign = "-" if n < 0 else "+"
        magnitude = abs(n)
        text = str(raw_delta)
    else:
        text = str(raw_delta)
        if not text.strip():
            return ""
        m = _DELTA_RE.match(text)
        if not m:
            return text
        sign = m.group(1) or "+"
        magnitude = float(m.group(2))
    converted = _convert(magnitude, source, unit)
    if not math.isfinite(converted):
        return text
    return f"{sign}{_render_number(converted, unit)}"


def map_trend(code: Any) -> str:
    if code is None or isinstance(code, bool):
        return ""
    if isinstance(code, (int, float)):
        if isinstance(code, float) and not (math.isfinite(code) and code.is_integer()):
            return ""
        return _TREND_BY_CODE.get(int(code), "")
    if isinstance(code, str):
        if code.isdecimal():
            return _TREND_BY_CODE.get(int(code), code)
        arrow = _TREND_BY_DIRECTION.get(code) or _TREND_BY_DIRECTION_LOWER.get(code.strip().lower())
        return arrow if arrow is not None else code
    return ""


def compute_age(timestamp_ms: Any, now_ms: Any) -> str:
    ts = _as_number(timestamp_ms)
    now = _as_number(now_ms)
    if ts is None or now is None:
        return "?"
    elapsed = (now - ts) / 60000.0
    if not math.isfinite(elapsed):
        return "?"
    mins = max(0, int(math.floor(elapsed)))
    return f"{mins}m ago"


def extract_battery(payload: Any) -> str:
    if not isinstance(payload, dict):
        return "?"
    status = payload.get("status")
    if isinstance(status, list):
        status = status[0] if status else None
    if not isinstance(status, dict):
        return "?"
    device = status.get("device")
    if isinstance(device, dict) and device.get("battery") is not None:
        return str(device["battery"])
    if status.get("battery") is not None:
        return str(status["battery"])
    return "?"


def format_timestamp(now_ms: float, timezone: Optional[str]) -> str:
    """US-style stamp with zone abbreviation, e.g. '10/19/2026, 02:05:09 PM EDT'."""
    zone = _tzinfo(timezone) or tz.UTC
    when = dt.datetime.fromtimestamp(now_ms / 1000.0, tz=zone)
    return f"{when.strftime('%m/%d/%Y, %I:%M:%S %p')} {when.tzname()}"


# --- Payload projection ---------------------------------------------
def parse_timestamp_ms(raw: Any) -> Optional[float]:
    """Epoch milliseconds from a number, numeric string or ISO-8601 string."""
    n = _as_number(raw)
    if n is not None:
        return n
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        ts = dateutil.parser.isoparse(raw.strip())
    except (ValueError, OverflowError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.timestamp() * 1000.0


def parse_reading_sample(payload: Any) -> ReadingSample:
    bgs = payload.get("bgs") if isinstance(payload, dict) else None
    first = bgs[0] if isinstance(bgs, list) and bgs else None
    if not isinstance(first, dict):
        return ReadingSample()
    return ReadingSample(
        value=first.get("sgv"),
        delta=first.get("bgdelta"),
        trend=_first_present(first.get("trend"), first.get("direction")),
        timestamp_ms=parse_timestamp_ms(_first_present(first.get("datetime"), first.get("readingDate"))),
    )


def parse_status_snapshot(payload: Any) -> Optional[StatusSnapshot]:
    if not isinstance(payload, dict):
        return None
    settings = payload.get("settings")
    if not isinstance(settings, dict):
        settings = {}
    return StatusSnapshot(
        units=_clean_str(_first_present(settings.get("units"), settings.get("units_bg"), payload.get("units"))),
        timezone=_clean_str(_first_present(settings.get("timezone"), settings.get("timeZone"), payload.get("timezone"))),
    )


class InferenceEngine:
    """Turns one pair of payloads into RenderFields for a fixed set of preferences."""

    def __init__(self, preferences: Optional[Preferences] = None, local_timezone: Optional[str] = None):
        self.preferences = preferences if preferences is not None else Preferences()
        self.local_timezone = local_timezone

    def derive(self, reading_payload: Any, status_payload: Optional[Dict[str, Any]],
               now_ms: float) -> RenderFields:
        sample = parse_reading_sample(reading_payload)
        status = parse_status_snapshot(status_payload)
        unit = resolve_unit(self.preferences, status, sample.value)
        timezone = resolve_timezone(self.preferences, status, self.local_timezone)
        # One source-unit decision shared by value and delta
        source = source_unit(sample.value, status)
        return RenderFields(
            value=format_value(sample.value, unit, source),
            delta=format_delta(sample.delta, unit, source),
            trend=map_trend(sample.trend),
            age=compute_age(sample.timestamp_ms, now_ms),
            battery=extract_battery(reading_payload),
            timestamp=format_timestamp(now_ms, timezone),
            unit=unit.label,
            timezone=timezone,
        )


__all__ = [
    "MGDL_PER_MMOLL",
    "DisplayUnit",
    "ReadingSample",
    "StatusSnapshot",
    "RenderFields",
    "InferenceEngine",
    "resolve_unit",
    "resolve_timezone",
    "format_value",
    "format_delta",
    "map_trend",
    "compute_age",
    "extract_battery",
    "format_timestamp",
    "parse_reading_sample",
    "parse_status_snapshot",
    "parse_timestamp_ms",
    "source_unit",
]
