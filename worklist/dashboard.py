# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Worklist core: the current snapshot, the current error, and the refresh cycle.

Consumers read plain values (`items`, `last_error`, `last_updated`, `is_sleeping`,
`is_refreshing`) and register a callback with `subscribe()` to hear about changes.

Refresh cycle:
  - gated by active hours (never in demo mode) and by the freshness guard (unforced
    refreshes within `freshness_s` of the last successful update are no-ops)
  - a new cycle supersedes (cancels) the one in flight; a cancelled cycle never commits
  - the raw snapshot is replaced only when the cycle returned items or had no errors;
    a cycle that failed completely keeps the previous snapshot
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import aiohttp

from common_http import CancelToken
from common_types import GitRepository, PRState, ProviderCredentials, ProviderType, PullRequestItem
from store.repository_store import RepositoryStore
from store.snooze_store import SnoozeStore
from worklist import demo_data
from worklist.active_hours import ActiveHours
from worklist.avatar_cache import AvatarCache
from worklist.config import Settings
from worklist.credentials import CredentialStore
from worklist.filters import FilterOptions, apply_filters, badge_count
from worklist.orchestrator import FetchOrchestrator, FetchResult, ProviderFactory
from worklist.provider_factory import GitProvider, make_provider
from worklist.rate_limit import RateLimitTracker
from worklist.refresh_errors import RefreshError

_logger = logging.getLogger(__name__)

DEFAULT_STATUS_TEXT = "pr-worklist"
SNOOZE_TOMORROW_HOUR = 9

Observer = Callable[["Dashboard"], None]


def _local_now() -> datetime:
    return datetime.now().astimezone()


class Dashboard:
    def __init__(
        self,
        *,
        settings: Settings,
        repositories: RepositoryStore,
        snoozes: SnoozeStore,
        credentials: CredentialStore,
        rate_tracker: RateLimitTracker,
        session: Optional[aiohttp.ClientSession] = None,
        demo_mode: bool = False,
        provider_factory: Optional[ProviderFactory] = None,
        now: Callable[[], datetime] = _local_now,
    ):
        self.settings = settings
        self.repositories = repositories
        self.snoozes = snoozes
        self.credentials = credentials
        self.rate_tracker = rate_tracker
        self.session = session
        self.demo_mode = bool(demo_mode)
        self._now = now
        self.orchestrator = FetchOrchestrator(provider_factory or self._make_client, rate_tracker=rate_tracker)
        self.avatars: Optional[AvatarCache] = AvatarCache(session) if session is not None else None

        self.raw_items: List[PullRequestItem] = []
        self.items: List[PullRequestItem] = []
        self.last_error: Optional[RefreshError] = None
        self.last_updated: Optional[datetime] = None
        self.last_result: Optional[FetchResult] = None
        self.is_refreshing = False
        self.is_sleeping = False

        self._observers: List[Observer] = []
        self._cycle_task: Optional["asyncio.Task[None]"] = None
        self._cycle_token: Optional[CancelToken] = None
        self._lookback_warned = False

    # ----------------------------------------------------------------------------------
    # Observers
    # ----------------------------------------------------------------------------------

    def subscribe(self, fn: Observer) -> Callable[[], None]:
        """Register `fn(dashboard)`; returns a function that unregisters it."""
        self._observers.append(fn)

        def _unsubscribe() -> None:
            if fn in self._observers:
                self._observers.remove(fn)

        return _unsubscribe

    def _notify(self) -> None:
        for fn in list(self._observers):
            fn(self)

    # ----------------------------------------------------------------------------------
    # Active hours / status
    # ----------------------------------------------------------------------------------

    @property
    def active_hours(self) -> ActiveHours:
        return ActiveHours.of(self.settings.start_hour, self.settings.end_hour, self.settings.active_days)

    def check_active_hours(self) -> bool:
        """Re-evaluate the active-hours gate. Returns True when awake."""
        sleeping = False if self.demo_mode else not self.active_hours.is_active(self._now())
        if sleeping != self.is_sleeping:
            self.is_sleeping = sleeping
            _logger.info("%s", self.active_hours.next_active_text(self._now()) if sleeping else "Active hours: awake")
            self._notify()
        return not sleeping

    @property
    def status_text(self) -> str:
        if self.demo_mode:
            return demo_data.DEMO_TOOLTIP
        if self.is_sleeping:
            return self.active_hours.next_active_text(self._now())
        if self.last_error is not None:
            return self.last_error.message
        return DEFAULT_STATUS_TEXT

    @property
    def badge_count(self) -> int:
        return badge_count(self.items, self.settings.badge_count_mode)

    # ----------------------------------------------------------------------------------
    # Refresh
    # ----------------------------------------------------------------------------------

    def _make_client(self, provider: ProviderType, creds: ProviderCredentials, token: CancelToken) -> GitProvider:
        if self.session is None:
            raise RuntimeError("Dashboard needs an aiohttp session to talk to providers")
        return make_provider(
            provider,
            creds,
            session=self.session,
            settings=self.settings,
            rate_tracker=self.rate_tracker,
            cancel_token=token,
        )

    def is_fresh(self) -> bool:
        if self.last_updated is None:
            return False
        return (self._now() - self.last_updated).total_seconds() < float(self.settings.freshness_s)

    async def refresh(self, force: bool = False) -> bool:
        """Run one refresh cycle. Returns False when gated, skipped or superseded."""
        if not self.check_active_hours():
            _logger.debug("refresh skipped: outside active hours")
            return False
        if not force and self.is_fresh():
            _logger.debug("refresh skipped: updated %s", self.last_updated)
            return False

        self.cancel_refresh()
        token = CancelToken()
        task = asyncio.ensure_future(self._run_cycle(token))
        self._cycle_task, self._cycle_token = task, token
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            token.cancel()
            task.cancel()
            raise
        if task.cancelled():
            return False
        task.result()
        return not token.cancelled

    def cancel_refresh(self) -> None:
        """Cancel the in-flight cycle (if any). The committed snapshot stays as it is."""
        if self._cycle_token is not None:
            self._cycle_token.cancel()
        if self._cycle_task is not None and not self._cycle_task.done():
            _logger.debug("superseding in-flight refresh")
            self._cycle_task.cancel()
        self._cycle_task = None
        self._cycle_token = None

    async def _run_cycle(self, token: CancelToken) -> None:
        self.is_refreshing = True
        self._notify()
        try:
            if self.demo_mode:
                self._commit(demo_data.demo_items(self.repositories.repositories(), now=self._now()), None)
                return

            repos = self.repositories.repositories()
            if not repos:
                self._commit([], None)
                return

            result = await self.orchestrator.fetch_all(repos, self.credentials.snapshot(), cancel_token=token)
            self.rate_tracker.flush()
            if token.cancelled:
                return
            self.last_result = result
            error = result.error
            if error is not None:
                _logger.error("%s", error.message)
            if result.should_replace_snapshot:
                self._commit(result.items, error)
            else:
                _logger.warning("refresh failed completely; keeping previous snapshot (%d items)", len(self.raw_items))
                self.last_error = error
        finally:
            if self._cycle_token is None or self._cycle_token is token:
                self.is_refreshing = False
            self.apply_filters()

    def _commit(self, items: List[PullRequestItem], error: Optional[RefreshError]) -> None:
        self.raw_items = list(items)
        self.last_error = error
        self.last_updated = self._now()

    # ----------------------------------------------------------------------------------
    # Filtering / snoozing
    # ----------------------------------------------------------------------------------

    def filter_options(self) -> FilterOptions:
        opts = FilterOptions.from_settings(self.settings)
        if opts.display_lookback_days > int(self.settings.merge_lookback_days) and not self._lookback_warned:
            self._lookback_warned = True
            _logger.warning(
                "display_lookback_days (%d) exceeds merge_lookback_days (%d); merged items older than %d days "
                "are never fetched",
                opts.display_lookback_days,
                self.settings.merge_lookback_days,
                self.settings.merge_lookback_days,
            )
        return opts

    def apply_filters(self) -> List[PullRequestItem]:
        now = self._now()
        self.snoozes.purge_expired(now)
        self.items = apply_filters(
            self.raw_items,
            snoozed_ids=self.snoozes.active(now).keys(),
            options=self.filter_options(),
            now=now,
        )
        self._notify()
        return self.items

    def snooze(self, item_id: str, duration: timedelta) -> datetime:
        until = self._now() + duration
        self.snoozes.snooze(item_id, until)
        self.apply_filters()
        return until

    def snooze_until_tomorrow(self, item_id: str) -> datetime:
        now = self._now()
        until = (now + timedelta(days=1)).replace(hour=SNOOZE_TOMORROW_HOUR, minute=0, second=0, microsecond=0)
        if until <= now:
            until = now + timedelta(hours=24)
        self.snoozes.snooze(item_id, until)
        self.apply_filters()
        return until

    def unsnooze(self, item_id: str) -> bool:
        removed = self.snoozes.unsnooze(item_id)
        self.apply_filters()
        return removed

    def items_in_state(self, state: PRState) -> List[PullRequestItem]:
        return [i for i in self.items if i.state == state and not i.is_snoozed]

    # ----------------------------------------------------------------------------------
    # Repositories / avatars
    # ----------------------------------------------------------------------------------

    async def search_repositories(self, provider: ProviderType, query: Optional[str] = None) -> List[GitRepository]:
        if self.demo_mode:
            return demo_data.search_repositories(query, provider)
        creds = self.credentials.snapshot().get(provider)
        if creds is None:
            raise RuntimeError(f"No {provider.display_name} token configured")
        client = self.orchestrator.provider_factory(provider, creds, CancelToken())
        return await client.fetch_repositories(query)

    async def avatar_for(self, item: PullRequestItem) -> Optional[bytes]:
        if self.avatars is None or not item.avatar_url:
            return None
        return await self.avatars.fetch(item.avatar_url)
