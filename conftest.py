"""Shared pytest fixtures.

`FakeSession` stands in for `aiohttp.ClientSession` in every client test: it routes GETs
by URL path to canned responses, records each call, and tracks peak concurrency.
No test talks to the network.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import parse_qsl, urlsplit

import pytest


@dataclass
class FakeCall:
    url: str
    path: str
    query: Dict[str, str]
    headers: Dict[str, str] = field(default_factory=dict)


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = None, *, headers: Optional[Dict[str, str]] = None, raw: Union[str, bytes, None] = None):
        self.status = int(status)
        self.headers = dict(headers or {})
        if raw is None:
            raw = "" if body is None else json.dumps(body)
        self._body = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)

    async def text(self) -> str:
        return self._body.decode("utf-8")

    async def read(self) -> bytes:
        return self._body


Handler = Callable[[FakeCall], Any]


@dataclass
class _Route:
    path: str
    handler: Any
    when: Optional[Callable[[FakeCall], bool]]
    delay_s: float


class _RequestContext:
    def __init__(self, session: "FakeSession", call: FakeCall):
        self.session = session
        self.call = call

    async def __aenter__(self) -> FakeResponse:
        s = self.session
        s.calls.append(self.call)
        s.in_flight += 1
        s.peak_in_flight = max(s.peak_in_flight, s.in_flight)
        try:
            route = s._match(self.call)
            if route.delay_s:
                await asyncio.sleep(route.delay_s)
            result = route.handler(self.call) if callable(route.handler) else route.handler
            if isinstance(result, BaseException):
                raise result
            return result if isinstance(result, FakeResponse) else FakeResponse(200, result)
        except BaseException:
            s.in_flight -= 1
            raise

    async def __aexit__(self, *exc: Any) -> bool:
        self.session.in_flight -= 1
        return False


class FakeSession:
    def __init__(self) -> None:
        self.routes: List[_Route] = []
        self.calls: List[FakeCall] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    def add(
        self,
        path: str,
        handler: Any,
        *,
        when: Optional[Callable[[FakeCall], bool]] = None,
        delay_s: float = 0.0,
    ) -> None:
        """Route GETs whose URL path ends with `path` (first matching route wins)."""
        self.routes.append(_Route(path=path, handler=handler, when=when, delay_s=delay_s))

    def _match(self, call: FakeCall) -> _Route:
        for r in self.routes:
            if call.path.endswith(r.path) and (r.when is None or r.when(call)):
                return r
        raise AssertionError(f"unexpected request: {call.url} {call.query}")

    def get(self, url: str, params: Optional[Dict[str, str]] = None, headers: Optional[Dict[str, str]] = None, **_: Any) -> _RequestContext:
        parts = urlsplit(url)
        query = dict(parse_qsl(parts.query))
        query.update({str(k): str(v) for k, v in (params or {}).items()})
        return _RequestContext(self, FakeCall(url=url, path=parts.path, query=query, headers=dict(headers or {})))

    def calls_to(self, path: str) -> List[FakeCall]:
        return [c for c in self.calls if c.path.endswith(path)]


class RecordingRateTracker:
    """Minimal RateObserver that just records what the transport reports."""

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.statuses: List[Tuple[str, int]] = []

    def record_call(self, provider) -> None:
        self.calls.append(provider.value)

    def observe_status(self, provider, status_code) -> None:
        self.statuses.append((provider.value, status_code))


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def rate_recorder() -> RecordingRateTracker:
    return RecordingRateTracker()


@pytest.fixture(autouse=True)
def _isolated_dirs(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.cache and ~/.config."""
    monkeypatch.setenv("PR_WORKLIST_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("PR_WORKLIST_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.delenv("PR_WORKLIST_DEMO_MODE", raising=False)
    for name in ("BITBUCKET", "GITHUB", "GITLAB"):
        monkeypatch.delenv(f"PR_WORKLIST_{name}_TOKEN", raising=False)


def make_item(
    item_id: str = "github:acme/orbit#1",
    *,
    state=None,
    minutes_ago: int = 10,
    provider=None,
    title: str = "Some change",
    author: str = "Jamie Doe",
):
    """Build a PullRequestItem for tests (defaults: open GitHub item needing review)."""
    from datetime import datetime, timedelta, timezone

    from common_types import PRState, ProviderType, PullRequestItem

    return PullRequestItem(
        id=item_id,
        title=title,
        repository=item_id.split(":", 1)[-1].split("#", 1)[0].rpartition("/")[2] or "repo",
        author=author,
        avatar_url="",
        last_activity=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        state=state or PRState.NEEDS_REVIEW,
        url=f"https://example.com/{item_id}",
        provider=provider or ProviderType.GITHUB,
    )
