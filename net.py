# -*- coding: utf-8 -*-

"""Shared HTTP utilities for Nightscout requests.

Features:
- Auth parameters from Settings (token as query parameter; api-secret header as fallback)
- One lazily-built requests session with configurable connect/read timeouts
- Parallel fetch of /pebble (mandatory) and /status.json (optional)

No retries: a failed /pebble fetch surfaces to the caller, which renders the
fallback page instead.
"""

from __future__ import annotations

import concurrent.futures
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import requests
import urllib3

from settings import Settings

# Self-hosted Nightscout often runs on self-signed certificates
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

PEBBLE_ENDPOINT = "/pebble"
STATUS_ENDPOINT = "/status.json"

_SESSION: Optional[requests.Session] = None


def session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = requests.Session()
    return _SESSION


def reset_session() -> None:
    """Drop the cached session so the next session() call builds a fresh one (test isolation)."""
    global _SESSION
    _SESSION = None


def headers(settings: Settings) -> Dict[str, str]:
    h: Dict[str, str] = {}
    # Only send api-secret header if no token is provided
    if not settings.token and settings.secret_sha1:
        h["api-secret"] = settings.secret_sha1
    h["Accept"] = "application/json"
    return h


def _params(settings: Settings) -> Dict[str, str]:
    if settings.token:
        return {"token": settings.token}
    return {}


def _ensure_base(settings: Settings) -> str:
    if not settings.base_url:
        raise RuntimeError("NIGHTSCOUT_URL not configured")
    return settings.base_url


def build_url(settings: Settings, endpoint: str, mask_token: bool = False) -> str:
    """Full request URL including the token query (masked for display if asked)."""
    url = f"{_ensure_base(settings)}{endpoint}"
    params = _params(settings)
    if mask_token and params:
        params = {k: "***" for k in params}
    return f"{url}?{urlencode(params)}" if params else url


def get_json(settings: Settings, endpoint: str) -> Any:
    url = f"{_ensure_base(settings)}{endpoint}"
    resp = session().get(
        url,
        params=_params(settings),
        headers=headers(settings),
        verify=settings.verify_ssl,
        timeout=(settings.connect_timeout, settings.read_timeout),
    )
    resp.raise_for_status()
    return resp.json()


def fetch_pebble(settings: Settings) -> Any:
    return get_json(settings, PEBBLE_ENDPOINT)


def fetch_status(settings: Settings) -> Optional[Dict[str, Any]]:
    """Return /status.json, or None if it cannot be fetched or decoded."""
    try:
        data = get_json(settings, STATUS_ENDPOINT)
    except (requests.RequestException, ValueError) as exc:
        if settings.debug:
            print(f"[BUILD DEBUG] /status.json fetch failed: {exc}")
        return None
    if not isinstance(data, dict):
        if settings.debug:
            print(f"[BUILD DEBUG] /status.json returned {type(data).__name__}, ignoring")
        return None
    return data


def fetch_sources(settings: Settings) -> Tuple[Any, Optional[Dict[str, Any]]]:
    """Fetch /pebble and /status.json concurrently.

    Errors from /pebble propagate; /status.json degrades to None.
    """
    _ensure_base(settings)
    with concurrent.futures.ThreadPoolExecutor(max_workers=2) as ex:
        pebble_fut = ex.submit(fetch_pebble, settings)
        status_fut = ex.submit(fetch_status, settings)
        status = status_fut.result()
        pebble = pebble_fut.result()
    return pebble, status


__all__ = [
    "PEBBLE_ENDPOINT",
    "STATUS_ENDPOINT",
    "build_url",
    "fetch_pebble",
    "fetch_sources",
    "fetch_status",
    "get_json",
    "headers",
    "reset_session",
    "session",
]
