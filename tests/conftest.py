from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest
import requests

import net


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: Optional[str] = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self._text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=None)

    def json(self) -> Any:
        if self._text is not None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    """Maps URL suffix -> FakeResponse or exception; records every call."""

    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = routes
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        for suffix, result in self.routes.items():
            if url.endswith(suffix):
                if isinstance(result, Exception):
                    raise result
                return result
        raise requests.ConnectionError(f"no route for {url}")


@pytest.fixture
def fake_session(monkeypatch: pytest.MonkeyPatch):
    def _install(routes: Dict[str, Any]) -> FakeSession:
        sess = FakeSession(routes)
        monkeypatch.setattr(net, "session", lambda: sess)
        return sess

    return _install
