# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Async REST plumbing shared by the provider clients.

- `RestTransport`: one provider's GET + status mapping + REST stats + rate-limit side channel
- `CancelToken`: per-refresh-cycle cancellation flag checked before every HTTP call
- `fetch_bounded`: sliding-window fan-out for per-item sub-fetches

Clients *compose* a RestTransport; there is no client base class.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Type, TypeVar

import aiohttp

from common_errors import (
    ApiError,
    Cancelled,
    InvalidResponse,
    InvalidURL,
    NetworkError,
    ProviderError,
    RateLimitExceeded,
    Unauthorized,
    is_fatal,
)
from common_types import ProviderType

_logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_TIMEOUT_S = 30.0
DEFAULT_MAX_CONCURRENT = 6

# 401/429 mean the same thing everywhere; provider clients extend this (GitHub adds 403).
DEFAULT_STATUS_ERRORS: Dict[int, Type[ProviderError]] = {
    401: Unauthorized,
    429: RateLimitExceeded,
}


class RateObserver(Protocol):
    """The subset of RateLimitTracker the transport talks to."""

    def record_call(self, provider: ProviderType) -> None: ...

    def observe_status(self, provider: ProviderType, status_code: int) -> None: ...


class CancelToken:
    """Cancellation flag for one refresh cycle.

    The owning cycle flips it when superseded; every HTTP call checks it first and
    raises `Cancelled` so no new requests go out after cancellation.
    """

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, *, provider: Optional[str] = None) -> None:
        if self._cancelled:
            raise Cancelled(provider=provider)


@dataclass
class RestResponse:
    status: int
    headers: Mapping[str, str]
    data: Any
    url: str

    def header(self, name: str) -> str:
        """Case-insensitive header lookup (headers are stored lower-cased)."""
        return str(self.headers.get(str(name).lower()) or "")


class RestTransport:
    """GET-only JSON transport for one provider.

    Every call:
      1. checks the cycle's CancelToken,
      2. records the call with the rate tracker (advisory, never blocks),
      3. maps the HTTP status to the provider error taxonomy,
      4. decodes JSON (undecodable -> InvalidResponse).
    """

    def __init__(
        self,
        *,
        provider: ProviderType,
        base_url: str,
        headers: Dict[str, str],
        session: aiohttp.ClientSession,
        rate_tracker: Optional[RateObserver] = None,
        cancel_token: Optional[CancelToken] = None,
        status_errors: Optional[Dict[int, Type[ProviderError]]] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.provider = provider
        self.base_url = str(base_url or "").rstrip("/")
        self.headers = dict(headers)
        self.session = session
        self.rate_tracker = rate_tracker
        self.cancel_token = cancel_token or CancelToken()
        self.status_errors = dict(status_errors or DEFAULT_STATUS_ERRORS)
        self.timeout_s = float(timeout_s)

        # Per-instance REST stats (same shape as the GitLab/GitHub clients always had).
        self._rest_calls_total: int = 0
        self._rest_calls_by_label: Dict[str, int] = {}
        self._rest_success_total: int = 0
        self._rest_errors_total: int = 0
        self._rest_time_total_s: float = 0.0
        self._rest_errors_by_status: Dict[int, int] = {}

    # ----------------------------------------------------------------------------------
    # Stats
    # ----------------------------------------------------------------------------------

    def _rest_record(self, *, label: str, endpoint: str, status_code: Optional[int], dt_s: float) -> None:
        lbl = str(label or "").strip() or "unknown"
        self._rest_calls_total += 1
        self._rest_calls_by_label[lbl] = self._rest_calls_by_label.get(lbl, 0) + 1
        self._rest_time_total_s += max(0.0, float(dt_s))
        if status_code is not None and 200 <= int(status_code) < 300:
            self._rest_success_total += 1
        else:
            self._rest_errors_total += 1
            sc = int(status_code or 0)
            self._rest_errors_by_status[sc] = self._rest_errors_by_status.get(sc, 0) + 1
        _logger.debug(
            "%s REST %s %s -> %s (%.2fs)", self.provider.value, lbl, endpoint, status_code, float(dt_s)
        )

    def get_rest_call_stats(self) -> Dict[str, Any]:
        """Return REST call stats for this transport."""
        return {
            "total": int(self._rest_calls_total),
            "success_total": int(self._rest_success_total),
            "error_total": int(self._rest_errors_total),
            "time_total_s": float(self._rest_time_total_s),
            "by_label": dict(sorted(self._rest_calls_by_label.items(), key=lambda kv: (-kv[1], kv[0]))),
            "errors_by_status": dict(sorted(self._rest_errors_by_status.items(), key=lambda kv: (-kv[1], kv[0]))),
        }

    # ----------------------------------------------------------------------------------
    # Requests
    # ----------------------------------------------------------------------------------

    def _url_for(self, endpoint: str) -> str:
        ep = str(endpoint or "")
        if ep.startswith(("http://", "https://")):
            return ep
        if not self.base_url.startswith(("http://", "https://")):
            raise InvalidURL(provider=self.provider.value, endpoint=ep)
        return f"{self.base_url}{ep}" if ep.startswith("/") else f"{self.base_url}/{ep}"

    async def get(
        self,
        endpoint: str,
        params: Optional[Dict[str, str]] = None,
        *,
        label: Optional[str] = None,
    ) -> RestResponse:
        """GET `endpoint` (relative to base_url, or an absolute cursor URL) and decode JSON."""
        provider = self.provider.value
        lbl = str(label or "").strip() or "unknown"
        url = self._url_for(endpoint)
        self.cancel_token.raise_if_cancelled(provider=provider)

        if self.rate_tracker is not None:
            self.rate_tracker.record_call(self.provider)

        t0 = time.monotonic()
        status_code: Optional[int] = None
        try:
            async with self.session.get(
                url,
                params=params,
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_s),
            ) as response:
                status_code = int(response.status)
                headers = {str(k).lower(): str(v) for (k, v) in response.headers.items()}
                body = await response.read()
        except aiohttp.InvalidURL as e:
            raise InvalidURL(f"Invalid URL: {e}", provider=provider, endpoint=endpoint) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(str(e) or type(e).__name__, provider=provider, endpoint=endpoint) from e
        finally:
            self._rest_record(label=lbl, endpoint=str(endpoint), status_code=status_code, dt_s=time.monotonic() - t0)

        if self.rate_tracker is not None:
            self.rate_tracker.observe_status(self.provider, status_code)

        # A superseded cycle must not act on (or page past) what came back.
        self.cancel_token.raise_if_cancelled(provider=provider)

        if not 200 <= status_code < 300:
            err_cls = self.status_errors.get(status_code)
            if err_cls is not None:
                raise err_cls(provider=provider, endpoint=str(endpoint), status_code=status_code)
            raise ApiError(status_code, provider=provider, endpoint=str(endpoint))

        try:
            text = body.decode("utf-8")
            data = json.loads(text) if text.strip() else None
        except ValueError as e:
            raise InvalidResponse(provider=provider, endpoint=str(endpoint), status_code=status_code) from e
        return RestResponse(status=status_code, headers=headers, data=data, url=url)

    async def get_json(
        self,
        endpoint: str,
        params: Optional[Dict[str, str]] = None,
        *,
        label: Optional[str] = None,
    ) -> Any:
        return (await self.get(endpoint, params, label=label)).data

    async def sleep(self, seconds: float) -> None:
        """Timed pause between pages (a suspension point, so re-check cancellation)."""
        if seconds > 0:
            await asyncio.sleep(seconds)
        self.cancel_token.raise_if_cancelled(provider=self.provider.value)


def expect_dict(data: Any, *, provider: ProviderType, endpoint: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidResponse(provider=provider.value, endpoint=endpoint)
    return data


def expect_list(data: Any, *, provider: ProviderType, endpoint: str) -> List[Any]:
    if not isinstance(data, list):
        raise InvalidResponse(provider=provider.value, endpoint=endpoint)
    return data


# ======================================================================================
# Bounded fan-out
# ======================================================================================


async def fetch_bounded(
    items: Sequence[T],
    fetch_one: Callable[[T], Awaitable[R]],
    *,
    max_concurrent: int = DEFAULT_MAX_CONCURRENT,
    default: Optional[R] = None,
    label: str = "",
) -> List[Optional[R]]:
    """Run `fetch_one(item)` for every item with at most `max_concurrent` in flight.

    Sliding window: each completion schedules the next pending item.

    Error policy:
      - recoverable ProviderError -> that item's result is `default`
      - fatal error (Unauthorized / RateLimitExceeded) or Cancelled -> stop scheduling,
        cancel everything in flight, raise it. A fatal error in a completed batch
        wins over recoverable results from the same batch.
      - anything else is a bug and propagates the same way.

    Results are returned in input order.
    """
    results: List[Optional[R]] = [default] * len(items)
    if not items:
        return results

    pending = iter(enumerate(items))
    in_flight: Dict["asyncio.Task[R]", int] = {}

    def _schedule_next() -> bool:
        try:
            idx, item = next(pending)
        except StopIteration:
            return False
        in_flight[asyncio.ensure_future(fetch_one(item))] = idx
        return True

    for _ in range(max(1, int(max_concurrent))):
        if not _schedule_next():
            break

    try:
        while in_flight:
            done, _ = await asyncio.wait(list(in_flight), return_when=asyncio.FIRST_COMPLETED)
            abort: Optional[BaseException] = None
            for task in done:
                idx = in_flight.pop(task)
                if task.cancelled():
                    # Cancelled from outside our control: treat like a dropped item.
                    continue
                exc = task.exception()
                if exc is None:
                    results[idx] = task.result()
                elif is_fatal(exc) or isinstance(exc, Cancelled) or not isinstance(exc, ProviderError):
                    if abort is None or (is_fatal(exc) and not is_fatal(abort)):
                        abort = exc
                else:
                    _logger.debug("%s item %d failed (recoverable): %s", label or "fetch", idx, exc)
            if abort is not None:
                raise abort
            for _ in range(len(done)):
                if not _schedule_next():
                    break
    finally:
        for task in in_flight:
            task.cancel()
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)
    return results


async def gather_or_cancel(*aws: Awaitable[Any]) -> List[Any]:
    """`asyncio.gather` that cancels the siblings as soon as one awaitable fails."""
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        return list(await asyncio.gather(*tasks))
    finally:
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
