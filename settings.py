# -*- coding: utf-8 -*-

"""Environment configuration for the status page build.

Environment variables:
- NIGHTSCOUT_URL (required): Base URL, e.g., https://example.com
- NIGHTSCOUT_TOKEN or NS_TOKEN: access token, sent as the 'token' query parameter
- NS_API_SECRET or NIGHTSCOUT_API_SECRET: API secret; SHA1 hashed for header 'api-secret'
- NIGHTSCOUT_TZ: timezone override for the "Updated" stamp
- NIGHTSCOUT_UNITS: unit override (mmol or mgdl)
- NIGHTSCOUT_FORCE_MMOL: always display mmol/L (true/1/yes/on)
- NS_TIMEOUT_CONNECT_SECONDS (default 5)
- NS_TIMEOUT_READ_SECONDS (default 30)
- NS_VERIFY_SSL (default false; set to true/1/yes to verify SSL)
- OUTPUT_PATH (default index.html)
- PAGE_REFRESH_SECONDS (default 60)
- BUILD_DEBUG (default true)
"""

from __future__ import annotations

import os
import sys
import hashlib
from dataclasses import dataclass, field
from typing import Mapping, Optional

import tzlocal
from dotenv import load_dotenv


def _env_candidates() -> list:
    """Return candidate directories to look for .env in priority order.
    1) Directory of the running binary (frozen builds)
    2) Current working directory
    3) Directory of this source file
    """
    cand = []
    if getattr(sys, 'frozen', False):
        cand.append(os.path.dirname(sys.executable))
    try:
        cand.append(os.getcwd())
    except OSError:
        pass
    cand.append(os.path.dirname(os.path.abspath(__file__)))
    seen = set(); out = []
    for p in cand:
        if p and p not in seen:
            out.append(p); seen.add(p)
    return out


def _resolve_env_path() -> Optional[str]:
    for base in _env_candidates():
        env_path = os.path.join(base, '.env')
        if os.path.exists(env_path):
            return env_path
    return None


def _as_bool(val: Optional[str], default: bool = False) -> bool:
    if val is None or not str(val).strip():
        return default
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def _as_float(val: Optional[str], default: float) -> float:
    try:
        return float(val) if val is not None else default
    except ValueError:
        return default


def _as_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _clean(val: Optional[str]) -> Optional[str]:
    if val is None:
        return None
    val = val.strip()
    return val or None


def normalize_base(url: Optional[str]) -> Optional[str]:
    url = _clean(url)
    if not url:
        return None
    return url.rstrip("/")


@dataclass(frozen=True)
class Preferences:
    """Display preferences supplied by the execution environment."""

    force_mmol: bool = False
    unit_override: Optional[str] = None
    timezone_override: Optional[str] = None


@dataclass(frozen=True)
class Settings:
    base_url: Optional[str]
    token: Optional[str] = None
    secret_sha1: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    verify_ssl: bool = False
    output_path: str = "index.html"
    refresh_seconds: int = 60
    debug: bool = True
    preferences: Preferences = field(default_factory=Preferences)


def load_preferences(env: Mapping[str, str]) -> Preferences:
    return Preferences(
        force_mmol=_as_bool(env.get("NIGHTSCOUT_FORCE_MMOL")),
        unit_override=_clean(env.get("NIGHTSCOUT_UNITS")),
        timezone_override=_clean(env.get("NIGHTSCOUT_TZ")),
    )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from a mapping (defaults to os.environ after reading .env)."""
    if env is None:
        env_path = _resolve_env_path()
        if env_path:
            load_dotenv(dotenv_path=env_path)
        env = os.environ
    secret = _clean(env.get("NS_API_SECRET")) or _clean(env.get("NIGHTSCOUT_API_SECRET"))
    return Settings(
        base_url=normalize_base(env.get("NIGHTSCOUT_URL")),
        token=_clean(env.get("NIGHTSCOUT_TOKEN")) or _clean(env.get("NS_TOKEN")),
        secret_sha1=hashlib.sha1(secret.encode("utf-8")).hexdigest() if secret else None,
        connect_timeout=_as_float(env.get("NS_TIMEOUT_CONNECT_SECONDS"), 5.0),
        read_timeout=_as_float(env.get("NS_TIMEOUT_READ_SECONDS"), 30.0),
        verify_ssl=_as_bool(env.get("NS_VERIFY_SSL"), default=False),
        output_path=_clean(env.get("OUTPUT_PATH")) or "index.html",
        refresh_seconds=max(1, _as_int(env.get("PAGE_REFRESH_SECONDS"), 60)),
        debug=_as_bool(env.get("BUILD_DEBUG"), default=True),
        preferences=load_preferences(env),
    )


def local_timezone_name(env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """IANA name of the machine's local zone (None if it cannot be determined)."""
    env = os.environ if env is None else env
    tz_env = _clean(env.get("TZ"))
    if tz_env:
        return tz_env.lstrip(":")
    try:
        return tzlocal.get_localzone_name()
    except (LookupError, ValueError) as exc:
        print(f"[BUILD DEBUG] local timezone unknown: {exc}")
        return None


__all__ = [
    "Preferences",
    "Settings",
    "load_preferences",
    "load_settings",
    "local_timezone_name",
    "normalize_base",
]
