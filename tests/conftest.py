"""
Shared fixtures: a scripted stand-in for ``requests.Session``.

``FakeHttp`` answers from per-route queues keyed by ``(METHOD, url)`` and
records every call, so tests can assert both on what was returned and on
what was (or was not) sent over the wire.  No network access happens.
"""

import json
import threading
import time
from collections import defaultdict, deque
from typing import Any, Dict, List, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from connect_session.run_config import SessionConfig


def make_response(
    status: int = 200,
    body: str = "",
    *,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    content: Optional[bytes] = None,
) -> requests.Response:
    """Build a real ``requests.Response`` with a fixed body."""
    response = requests.Response()
    response.status_code = status
    if json_body is not None:
        body = json.dumps(json_body)
    response._content = content if content is not None else body.encode("utf-8")
    response._content_consumed = True
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict(headers or {})
    return response


class FakeHttp:
    """Route-scripted replacement for ``requests.Session``."""

    def __init__(self, delay: float = 0.0):
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        self._routes = defaultdict(deque)
        self._lock = threading.Lock()
        self._delay = delay

    def add(self, method: str, url: str, *responses) -> None:
        """Queue *responses* (``Response`` objects or exceptions to raise).

        Each queued item answers exactly one call; an exhausted route fails
        the test.
        """
        self._routes[(method.upper(), url)].extend(responses)

    def calls_to(self, method: str, url: str) -> List[Dict[str, Any]]:
        return [
            c for c in self.calls
            if c["method"] == method.upper() and c["url"] == url
        ]

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        method = method.upper()
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
            queue = self._routes.get((method, url))
            if not queue:
                raise AssertionError(f"Unexpected {method} {url}")
            item = queue.popleft()
        if self._delay:
            time.sleep(self._delay)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs) -> requests.Response:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs) -> requests.Response:
        return self.request("POST", url, **kwargs)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Canned pages
# ---------------------------------------------------------------------------

SIGNIN_PAGE = (
    '<html><body><form method="post">'
    '<input type="hidden" name="_csrf" value="CSRF-42"/>'
    '<input name="username"/><input type="password" name="password"/>'
    "</form></body></html>"
)

SIGNIN_PAGE_WITHOUT_TOKEN = "<html><body><p>We are down for maintenance</p></body></html>"


@pytest.fixture
def config(tmp_path) -> SessionConfig:
    return SessionConfig(token_dir=str(tmp_path / "tokens"))


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


class FakeClock:
    """Manually advanced clock, starting at a fixed epoch."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def script_login(http: FakeHttp, config: SessionConfig, *, ticket="T123",
                 access="A1", refresh="R1", expires_in=3600) -> None:
    """Queue a complete, successful SSO handshake + ticket exchange."""
    http.add("GET", config.signin_url, make_response(200, SIGNIN_PAGE))
    http.add(
        "POST",
        config.signin_url,
        make_response(
            302,
            "",
            headers={"Location": f"{config.service_url}?ticket={ticket}"},
        ),
    )
    payload = {"access_token": access, "refresh_token": refresh}
    if expires_in is not None:
        payload["expires_in"] = expires_in
    http.add("POST", config.ticket_exchange_url, make_response(200, json_body=payload))
