# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Advisory per-provider hourly rate-limit tracker.

Counts every outbound call (never blocks one), rolls the window over once more than an
hour has passed since it started, and flags a provider "limited" when it answers with a
rate-limit status (429 anywhere, 403 on GitHub).

All window state sits behind one lock so a reader never sees a counter from one window
paired with the start time of another.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from common_types import ProviderType, WarningLevel
from store.rate_limit_store import RateLimitStore

_logger = logging.getLogger(__name__)

WINDOW_S = 3600.0

DEFAULT_RATE_LIMITS: Dict[ProviderType, int] = {
    ProviderType.BITBUCKET: 1000,
    ProviderType.GITHUB: 5000,
    ProviderType.GITLAB: 2000,
}


def warning_level_for(calls: int, limit: int) -> WarningLevel:
    if limit <= 0:
        return WarningLevel.NONE
    frac = float(calls) / float(limit)
    if frac < 0.5:
        return WarningLevel.NONE
    if frac < 0.7:
        return WarningLevel.LOW
    if frac < 0.9:
        return WarningLevel.MEDIUM
    return WarningLevel.HIGH


def is_rate_limit_status(provider: ProviderType, status_code: Optional[int]) -> bool:
    if status_code == 429:
        return True
    return provider == ProviderType.GITHUB and status_code == 403


@dataclass
class RateLimitWindow:
    window_start: float
    calls: int = 0
    limited: bool = False
    reset_at: Optional[float] = None


class RateLimitTracker:
    def __init__(
        self,
        limits: Optional[Dict[ProviderType, int]] = None,
        *,
        store: Optional[RateLimitStore] = None,
        time_fn: Callable[[], float] = time.time,
    ):
        self._mu = threading.Lock()
        self._limits = dict(DEFAULT_RATE_LIMITS)
        self._limits.update(limits or {})
        self._store = store
        self._time = time_fn
        self._dirty = False
        now = self._time()
        self._windows: Dict[ProviderType, RateLimitWindow] = {p: RateLimitWindow(window_start=now) for p in ProviderType}
        if store is not None:
            for provider, (start, calls) in store.load().items():
                self._windows[provider] = RateLimitWindow(window_start=start, calls=calls)
            with self._mu:
                for provider in ProviderType:
                    self._check_reset_locked(provider, now)

    # ----------------------------------------------------------------------------------
    # Mutation
    # ----------------------------------------------------------------------------------

    def _check_reset_locked(self, provider: ProviderType, now: float) -> None:
        w = self._windows[provider]
        if now - w.window_start > WINDOW_S:
            self._windows[provider] = RateLimitWindow(window_start=now)
            self._dirty = True
        elif w.limited and w.reset_at is not None and now >= w.reset_at:
            w.limited = False
            w.reset_at = None

    def record_call(self, provider: ProviderType) -> None:
        with self._mu:
            now = self._time()
            self._check_reset_locked(provider, now)
            self._windows[provider].calls += 1
            self._dirty = True

    def report_limit_reached(self, provider: ProviderType) -> None:
        with self._mu:
            now = self._time()
            self._check_reset_locked(provider, now)
            w = self._windows[provider]
            reset_at = w.window_start + WINDOW_S
            w.limited = True
            w.reset_at = reset_at if reset_at > now else now + WINDOW_S
        _logger.warning("%s rate limit reached; resets at %s", provider.display_name, self.reset_time(provider))

    def observe_status(self, provider: ProviderType, status_code: Optional[int]) -> None:
        if is_rate_limit_status(provider, status_code):
            self.report_limit_reached(provider)

    def set_limit(self, provider: ProviderType, limit: int) -> None:
        with self._mu:
            self._limits[provider] = int(limit)

    def flush(self) -> None:
        """Persist counters if anything changed since the last flush."""
        if self._store is None:
            return
        with self._mu:
            if not self._dirty:
                return
            state = {p: (w.window_start, w.calls) for p, w in self._windows.items()}
            self._dirty = False
        self._store.save(state)

    # ----------------------------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------------------------

    def _window(self, provider: ProviderType) -> RateLimitWindow:
        with self._mu:
            self._check_reset_locked(provider, self._time())
            w = self._windows[provider]
            return RateLimitWindow(window_start=w.window_start, calls=w.calls, limited=w.limited, reset_at=w.reset_at)

    def usage(self, provider: ProviderType) -> int:
        return self._window(provider).calls

    def limit(self, provider: ProviderType) -> int:
        with self._mu:
            return int(self._limits.get(provider, 0))

    def warning_limit(self, provider: ProviderType) -> int:
        return int(self.limit(provider) * 0.9)

    def warning_level(self, provider: ProviderType) -> WarningLevel:
        return warning_level_for(self.usage(provider), self.limit(provider))

    @property
    def overall_warning_level(self) -> WarningLevel:
        return max((self.warning_level(p) for p in ProviderType), key=lambda lvl: lvl.rank)

    def is_limited(self, provider: Optional[ProviderType] = None) -> bool:
        if provider is not None:
            return self._window(provider).limited
        return any(self._window(p).limited for p in ProviderType)

    def reset_time(self, provider: ProviderType) -> Optional[datetime]:
        w = self._window(provider)
        return datetime.fromtimestamp(w.reset_at).astimezone() if w.reset_at is not None else None

    @property
    def calls_this_hour(self) -> int:
        return sum(self.usage(p) for p in ProviderType)

    @property
    def total_limit(self) -> int:
        return sum(self.limit(p) for p in ProviderType)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        out: Dict[str, Dict[str, object]] = {}
        for p in ProviderType:
            w = self._window(p)
            out[p.value] = {
                "calls": w.calls,
                "limit": self.limit(p),
                "warning_level": warning_level_for(w.calls, self.limit(p)).value,
                "limited": w.limited,
                "window_start": w.window_start,
            }
        return out
