# -*- coding: utf-8 -*-

"""HTML templates for the published status page."""

from __future__ import annotations

from dataclasses import asdict
from html import escape

from engine import RenderFields

TITLE = "BG Simple"


def render_page(fields: RenderFields, refresh_seconds: int = 60) -> str:
    f = {k: escape(str(v)) for k, v in asdict(fields).items()}
    return f"""<!doctype html>
<html>
<head>
<meta http-equiv="content-type" content="text/html; charset=utf-8">
<meta http-equiv="refresh" content="{int(refresh_seconds)}">
<title>{TITLE}</title>
</head>
<body>
<pre>
BG: <big>{f['value']}</big> {f['unit']} {f['trend']} {f['delta']}
Time: {f['age']}
Battery: {f['battery']}
Updated: {f['timestamp']} ({f['timezone']})
</pre>
</body>
</html>
"""


def render_fallback(message: str, source: str) -> str:
    return f"""<!doctype html><meta charset="utf-8"><pre>Build error: {escape(message)}
Source: {escape(source)}
</pre>
"""


__all__ = ["render_page", "render_fallback", "TITLE"]
