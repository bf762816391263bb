# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Refresh scheduling: polling loop, repository-change debounce, wake handling.

- polling: short initial delay, one unforced refresh, then every
  max(refresh_interval, minimum_interval) minutes a forced refresh (active hours are
  re-checked by the dashboard on every cycle). `restart()` cancels and relaunches it.
- debounce: bursts of repository add/remove coalesce into one forced refresh after
  `debounce_s` of quiet.
- wake: after system resume wait `wake_delay_s`, re-check active hours, force a refresh
  if awake.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from worklist.dashboard import Dashboard

_logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RefreshScheduler:
    def __init__(self, dashboard: Dashboard, *, sleep: Sleep = asyncio.sleep):
        self.dashboard = dashboard
        self._sleep = sleep
        self._poll_task: Optional["asyncio.Task[None]"] = None
        self._debounce_task: Optional["asyncio.Task[None]"] = None
        self._wake_task: Optional["asyncio.Task[None]"] = None

    @property
    def settings(self):
        return self.dashboard.settings

    @property
    def interval_s(self) -> float:
        return float(self.settings.effective_refresh_interval_minutes) * 60.0

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ----------------------------------------------------------------------------------
    # Polling
    # ----------------------------------------------------------------------------------

    def start(self) -> None:
        if self.running:
            return
        self._poll_task = asyncio.ensure_future(self._poll_loop())

    def restart(self) -> None:
        """Cancel the polling loop and launch a fresh one (e.g. after a settings change)."""
        if self._poll_task is not None:
            self._poll_task.cancel()
        self._poll_task = None
        self.dashboard.cancel_refresh()
        self.start()

    async def stop(self) -> None:
        tasks = [t for t in (self._poll_task, self._debounce_task, self._wake_task) if t is not None]
        for t in tasks:
            t.cancel()
        self.dashboard.cancel_refresh()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = self._debounce_task = self._wake_task = None

    async def _refresh(self, *, force: bool, reason: str) -> None:
        _logger.debug("refresh (%s, force=%s)", reason, force)
        try:
            await self.dashboard.refresh(force=force)
        except asyncio.CancelledError:
            raise
        except Exception:
            # Keep the loop alive; the next tick tries again.
            _logger.exception("refresh (%s) crashed", reason)

    async def _poll_loop(self) -> None:
        await self._sleep(float(self.settings.initial_delay_s))
        await self._refresh(force=False, reason="startup")
        while True:
            await self._sleep(self.interval_s)
            await self._refresh(force=True, reason="poll")

    # ----------------------------------------------------------------------------------
    # Debounce / wake
    # ----------------------------------------------------------------------------------

    def notify_repositories_changed(self) -> None:
        """Coalesce rapid repository-set changes into one refresh."""
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = asyncio.ensure_future(self._debounced_refresh())

    async def _debounced_refresh(self) -> None:
        await self._sleep(float(self.settings.debounce_s))
        await self._refresh(force=True, reason="repositories changed")

    def handle_wake(self) -> None:
        if self._wake_task is not None and not self._wake_task.done():
            self._wake_task.cancel()
        self._wake_task = asyncio.ensure_future(self._wake_refresh())

    async def _wake_refresh(self) -> None:
        await self._sleep(float(self.settings.wake_delay_s))
        if not self.dashboard.check_active_hours():
            _logger.info("woke outside active hours; not refreshing")
            return
        await self._refresh(force=True, reason="wake")

    def settings_changed(self) -> None:
        """Re-filter with the new toggles and restart polling with the new interval."""
        self.dashboard.apply_filters()
        self.restart()
