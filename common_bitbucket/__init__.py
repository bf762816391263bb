# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Bitbucket Cloud API client for pr-worklist.

Same shape as `common_github/` and `common_gitlab/`:
- `common_bitbucket/` defines the API client (auth, user, repos, PR normalization)
- `common_bitbucket/api/*.py` contains per-resource fetch + paging logic

Auth: HTTP Basic (username + app password) when a username is configured, else
Bearer (workspace/repository access token).
"""

from __future__ import annotations

import asyncio
import base64
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from common import parse_iso8601
from common_classification import ReviewSignals, classify, contains_user, normalize_user_id, within_lookback
from common_errors import Unauthorized
from common_http import CancelToken, RateObserver, RestTransport, expect_dict, gather_or_cancel
from common_types import GitRepository, GitUser, MonitoredRepository, ProviderType, PullRequestItem, make_item_id

from .api.pullrequests import list_member_repositories, list_pullrequests

_logger = logging.getLogger(__name__)

BITBUCKET_API_BASE_URL = "https://api.bitbucket.org/2.0"


def auth_header(token: str, username: Optional[str]) -> str:
    user = str(username or "").strip()
    tok = str(token or "").strip()
    if user:
        raw = base64.b64encode(f"{user}:{tok}".encode("utf-8")).decode("ascii")
        return f"Basic {raw}"
    return f"Bearer {tok}"


class BitbucketAPIClient:
    """Async Bitbucket Cloud client bound to one credential set and one refresh cycle."""

    provider = ProviderType.BITBUCKET

    def __init__(
        self,
        token: str,
        *,
        session: aiohttp.ClientSession,
        username: Optional[str] = None,
        rate_tracker: Optional[RateObserver] = None,
        cancel_token: Optional[CancelToken] = None,
        base_url: str = BITBUCKET_API_BASE_URL,
        merge_lookback_days: int = 7,
        page_size: int = 50,
        repo_page_delay_s: float = 0.2,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if not str(token or "").strip():
            raise Unauthorized("Bitbucket token is missing.", provider=self.provider.value)
        self.merge_lookback_days = int(merge_lookback_days)
        self.page_size = int(page_size)
        self.repo_page_delay_s = float(repo_page_delay_s)
        self._now = now
        self.transport = RestTransport(
            provider=self.provider,
            base_url=base_url,
            headers={"Authorization": auth_header(token, username), "Accept": "application/json"},
            session=session,
            rate_tracker=rate_tracker,
            cancel_token=cancel_token,
        )
        self._user: Optional[GitUser] = None
        self._user_lock = asyncio.Lock()

    def get_rest_call_stats(self) -> Dict[str, Any]:
        return self.transport.get_rest_call_stats()

    async def fetch_current_user(self) -> GitUser:
        async with self._user_lock:
            if self._user is None:
                data = expect_dict(await self.transport.get_json("/user", label="user"), provider=self.provider, endpoint="/user")
                avatar = ((data.get("links") or {}).get("avatar") or {}).get("href")
                self._user = GitUser(
                    id=str(data.get("uuid") or ""),
                    display_name=str(data.get("display_name") or data.get("nickname") or ""),
                    avatar_url=str(avatar or ""),
                )
            return self._user

    async def fetch_repositories(self, query: Optional[str] = None) -> List[GitRepository]:
        rows = await list_member_repositories(
            self, query=query, pagelen=self.page_size, page_delay_s=self.repo_page_delay_s
        )
        return [
            GitRepository(
                id=str(r.get("uuid") or r.get("full_name") or ""),
                name=str(r.get("name") or ""),
                full_name=str(r.get("full_name") or ""),
                provider=self.provider,
                description=str(r.get("description") or ""),
            )
            for r in rows
        ]

    async def fetch_pull_requests(self, repo: MonitoredRepository) -> List[PullRequestItem]:
        parts = str(repo.full_name).split("/")
        if len(parts) != 2 or not all(parts):
            _logger.warning("bitbucket: skipping %r (expected workspace/slug)", repo.full_name)
            return []
        workspace, slug = parts

        me = await self.fetch_current_user()
        since = self._now() - timedelta(days=self.merge_lookback_days)
        opened, merged = await gather_or_cancel(
            list_pullrequests(self, workspace=workspace, slug=slug, pagelen=self.page_size),
            list_pullrequests(self, workspace=workspace, slug=slug, merged_since=since, pagelen=self.page_size),
        )
        return [self._to_item(pr, me=me, fallback_full_name=repo.full_name) for pr in list(opened) + list(merged)]

    def _to_item(self, pr: Dict[str, Any], *, me: GitUser, fallback_full_name: str) -> PullRequestItem:
        author = pr.get("author") if isinstance(pr.get("author"), dict) else {}
        destination = pr.get("destination") if isinstance(pr.get("destination"), dict) else {}
        dest_repo = destination.get("repository") or {}
        full_name = str(dest_repo.get("full_name") or fallback_full_name)
        participants = [p for p in (pr.get("participants") or []) if isinstance(p, dict)]
        reviewers = [r for r in (pr.get("reviewers") or []) if isinstance(r, dict)]

        def _acted(p: Dict[str, Any]) -> bool:
            return bool(p.get("approved")) or str(p.get("state") or "") in ("approved", "changes_requested")

        mine = [p for p in participants if normalize_user_id((p.get("user") or {}).get("uuid")) == normalize_user_id(me.id)]
        is_merged = str(pr.get("state") or "").upper() == "MERGED"
        updated_on = parse_iso8601(pr.get("updated_on"))

        signals = ReviewSignals(
            is_draft=bool(pr.get("draft")),
            is_merged=is_merged,
            is_authored_by_me=normalize_user_id(author.get("uuid")) == normalize_user_id(me.id),
            is_assigned_to_me=contains_user([r.get("uuid") for r in reviewers], me.id),
            has_acted_by_me=any(_acted(p) for p in mine),
            merged_within_lookback=is_merged
            and within_lookback(updated_on, now=self._now(), lookback_days=self.merge_lookback_days),
        )
        return PullRequestItem(
            id=make_item_id(self.provider, full_name, pr.get("id")),
            title=str(pr.get("title") or ""),
            repository=str(dest_repo.get("name") or full_name.rpartition("/")[2]),
            author=str(author.get("display_name") or ""),
            avatar_url=str(((author.get("links") or {}).get("avatar") or {}).get("href") or ""),
            last_activity=updated_on or self._now(),
            state=classify(signals),
            url=str(((pr.get("links") or {}).get("html") or {}).get("href") or ""),
            provider=self.provider,
            has_changes_requested=any(str(p.get("state") or "") == "changes_requested" for p in participants),
            approval_count=sum(1 for p in participants if bool(p.get("approved")) or str(p.get("state") or "") == "approved"),
            reviewer_count=len(reviewers),
            is_draft=signals.is_draft,
        )
