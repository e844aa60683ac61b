# -*- coding: utf-8 -*-

"""Build a minimal Nightscout /pebble HTML page.

Meant to run from a scheduled job: fetch /pebble and /status.json, derive
the display values, write OUTPUT_PATH (index.html). On any failure after
configuration is validated a "Build error" page is written instead and the
exit status stays 0, so the host always has a page to publish.
"""

from __future__ import annotations

import os
import sys
import time
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from engine import InferenceEngine, RenderFields
from net import PEBBLE_ENDPOINT, build_url, fetch_sources
from page import render_fallback, render_page
from settings import Settings, load_settings, local_timezone_name


def write_page(path: str, html: str) -> None:
    """Replace path with html in one step (temp file + rename)."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".page-", suffix=".tmp", dir=str(target.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(html)
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def build_page(settings: Settings, now_ms: Optional[float] = None,
               local_timezone: Optional[str] = None) -> Tuple[str, RenderFields]:
    reading, status = fetch_sources(settings)
    if settings.debug:
        print(f"[BUILD DEBUG] /status.json available: {status is not None}")
    if local_timezone is None:
        local_timezone = local_timezone_name()
    if now_ms is None:
        now_ms = time.time() * 1000.0

    engine = InferenceEngine(settings.preferences, local_timezone)
    fields = engine.derive(reading, status, now_ms)
    if settings.debug:
        print(f"[BUILD DEBUG] units derived: {fields.unit}")
        print(f"[BUILD DEBUG] timezone derived: {fields.timezone} (local: {local_timezone or '(none)'})")
    return render_page(fields, settings.refresh_seconds), fields


def main(settings: Optional[Settings] = None) -> int:
    if settings is None:
        settings = load_settings()
    prefs = settings.preferences
    if settings.debug:
        print(f"[BUILD DEBUG] NIGHTSCOUT_URL exists: {bool(settings.base_url)}")
        print(f"[BUILD DEBUG] NIGHTSCOUT_TOKEN provided: {bool(settings.token)}")
        print(f"[BUILD DEBUG] NIGHTSCOUT_TZ: {prefs.timezone_override!r}")
        print(f"[BUILD DEBUG] NIGHTSCOUT_UNITS: {prefs.unit_override!r} force mmol: {prefs.force_mmol}")

    if not settings.base_url:
        print("❌ Missing NIGHTSCOUT_URL environment variable.", file=sys.stderr)
        return 1

    source = build_url(settings, PEBBLE_ENDPOINT, mask_token=True)
    try:
        html, fields = build_page(settings)
        write_page(settings.output_path, html)
    except Exception as exc:
        msg = str(exc) or type(exc).__name__
        write_page(settings.output_path, render_fallback(msg, source))
        print(f"⚠️ Build failed: {msg}", file=sys.stderr)
        return 0

    print(f"✅ Built {settings.output_path} from {source} [{fields.timezone}] [{fields.unit}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
