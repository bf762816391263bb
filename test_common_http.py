"""
Pytest tests for common_http.py (RestTransport status mapping, bounded fan-out).

Run from the repo root:
    pytest test_common_http.py -v
"""

import asyncio

import aiohttp
import pytest

from common_errors import (
    ApiError,
    Cancelled,
    InvalidResponse,
    InvalidURL,
    NetworkError,
    RateLimitExceeded,
    Unauthorized,
)
from common_http import CancelToken, RestTransport, fetch_bounded, gather_or_cancel
from common_types import ProviderType
from conftest import FakeResponse


def _transport(session, **kwargs):
    return RestTransport(
        provider=kwargs.pop("provider", ProviderType.GITLAB),
        base_url=kwargs.pop("base_url", "https://gitlab.example.com/api/v4"),
        headers={"PRIVATE-TOKEN": "t0k"},
        session=session,
        **kwargs,
    )


# ============================================================================
# RestTransport
# ============================================================================

@pytest.mark.asyncio
async def test_transport_decodes_json_and_sends_headers(fake_session, rate_recorder):
    fake_session.add("/user", {"id": 1, "username": "me"})
    t = _transport(fake_session, rate_tracker=rate_recorder)

    resp = await t.get("/user", label="user")

    assert resp.data == {"id": 1, "username": "me"}
    assert fake_session.calls[0].headers["PRIVATE-TOKEN"] == "t0k"
    assert rate_recorder.calls == ["gitlab"]
    assert rate_recorder.statuses == [("gitlab", 200)]
    assert t.get_rest_call_stats()["by_label"] == {"user": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, exc_type",
    [(401, Unauthorized), (429, RateLimitExceeded), (403, ApiError), (404, ApiError), (500, ApiError)],
)
async def test_transport_status_mapping(fake_session, status, exc_type):
    fake_session.add("/thing", FakeResponse(status, {"message": "nope"}))
    with pytest.raises(exc_type) as ei:
        await _transport(fake_session).get("/thing")
    if exc_type is ApiError:
        assert ei.value.status_code == status
        assert str(ei.value) == f"Provider API error: {status}"


@pytest.mark.asyncio
async def test_transport_github_style_403_is_rate_limit(fake_session):
    fake_session.add("/thing", FakeResponse(403, {}))
    t = _transport(fake_session, status_errors={401: Unauthorized, 403: RateLimitExceeded, 429: RateLimitExceeded})
    with pytest.raises(RateLimitExceeded):
        await t.get("/thing")


@pytest.mark.asyncio
async def test_transport_undecodable_body_is_invalid_response(fake_session):
    fake_session.add("/thing", FakeResponse(200, raw="<html>maintenance</html>"))
    with pytest.raises(InvalidResponse):
        await _transport(fake_session).get("/thing")


@pytest.mark.asyncio
async def test_transport_non_utf8_body_is_invalid_response(fake_session):
    fake_session.add("/thing", FakeResponse(200, raw=b"\xff\xfe{}"))
    with pytest.raises(InvalidResponse):
        await _transport(fake_session).get("/thing")


@pytest.mark.asyncio
async def test_transport_non_utf8_error_page_keeps_status_mapping(fake_session):
    """A proxy error page that is not UTF-8 still surfaces as a provider error."""
    fake_session.add("/thing", FakeResponse(502, raw=b"<html>\xff\xfe bad gateway</html>"))
    with pytest.raises(ApiError) as ei:
        await _transport(fake_session).get("/thing")
    assert ei.value.status_code == 502


@pytest.mark.asyncio
async def test_transport_connection_failure_is_network_error(fake_session):
    fake_session.add("/thing", lambda call: aiohttp.ClientConnectionError("connection reset"))
    t = _transport(fake_session)
    with pytest.raises(NetworkError) as ei:
        await t.get("/thing")
    assert "connection reset" in str(ei.value)
    assert t.get_rest_call_stats()["error_total"] == 1


@pytest.mark.asyncio
async def test_transport_rejects_non_http_base_url(fake_session):
    with pytest.raises(InvalidURL):
        await _transport(fake_session, base_url="gitlab.example.com").get("/user")
    assert fake_session.calls == []


@pytest.mark.asyncio
async def test_cancelled_token_stops_new_requests(fake_session):
    fake_session.add("/user", {"id": 1})
    token = CancelToken()
    token.cancel()
    with pytest.raises(Cancelled):
        await _transport(fake_session, cancel_token=token).get("/user")
    assert fake_session.calls == []


# ============================================================================
# fetch_bounded
# ============================================================================

class _CountingWorker:
    def __init__(self):
        self.started = 0
        self.in_flight = 0
        self.peak = 0

    async def run(self, item, *, delay=0.01, fail=None):
        self.started += 1
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if fail is not None:
                raise fail
            await asyncio.sleep(delay)
            return item * 10
        finally:
            self.in_flight -= 1


@pytest.mark.asyncio
@pytest.mark.parametrize("n, k", [(12, 6), (3, 6), (20, 4), (5, 1)])
async def test_fetch_bounded_never_exceeds_window(n, k):
    worker = _CountingWorker()
    results = await fetch_bounded(list(range(n)), worker.run, max_concurrent=k)
    assert results == [i * 10 for i in range(n)]
    assert worker.peak <= k
    assert worker.peak == min(n, k)
    assert worker.started == n


@pytest.mark.asyncio
async def test_fetch_bounded_fatal_first_item_stops_scheduling():
    worker = _CountingWorker()

    async def fetch(i):
        if i == 0:
            return await worker.run(i, fail=RateLimitExceeded(provider="github"))
        return await worker.run(i, delay=0.05)

    with pytest.raises(RateLimitExceeded):
        await fetch_bounded(list(range(20)), fetch, max_concurrent=6)
    assert worker.started <= 6
    await asyncio.sleep(0)
    assert worker.in_flight == 0


@pytest.mark.asyncio
async def test_fetch_bounded_recoverable_errors_use_default():
    async def fetch(i):
        if i % 2:
            raise ApiError(500, provider="gitlab")
        return i

    results = await fetch_bounded(list(range(6)), fetch, max_concurrent=3, default=-1)
    assert results == [0, -1, 2, -1, 4, -1]


@pytest.mark.asyncio
async def test_fetch_bounded_fatal_not_masked_by_recoverable_in_same_batch():
    async def fetch(i):
        if i == 0:
            raise ApiError(502)
        raise Unauthorized()

    with pytest.raises(Unauthorized):
        await fetch_bounded([0, 1], fetch, max_concurrent=2)


@pytest.mark.asyncio
async def test_fetch_bounded_propagates_programming_errors():
    async def fetch(i):
        raise KeyError("boom")

    with pytest.raises(KeyError):
        await fetch_bounded([1, 2, 3], fetch, max_concurrent=2)


@pytest.mark.asyncio
async def test_gather_or_cancel_cancels_sibling_on_failure():
    finished = []

    async def slow():
        await asyncio.sleep(0.2)
        finished.append("slow")

    async def failing():
        raise Unauthorized()

    with pytest.raises(Unauthorized):
        await gather_or_cancel(slow(), failing())
    assert finished == []
