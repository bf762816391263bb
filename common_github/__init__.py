# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GitHub API client for pr-worklist.

Layout:
- `common_github/` defines the API client (auth, user, repos, PR normalization)
- `common_github/api/*.py` contains per-resource fetch + paging logic

GitHub overloads 403 for both "bad token scope" and "secondary rate limit"; we map it
to RateLimitExceeded (and so does the rate tracker). Callers that need to tell the
two apart have to look at context (e.g. whether `/user` itself failed).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from common import parse_iso8601
from common_classification import ReviewSignals, classify, contains_user, normalize_user_id, within_lookback
from common_errors import InvalidURL, RateLimitExceeded, Unauthorized
from common_http import (
    DEFAULT_MAX_CONCURRENT,
    CancelToken,
    RateObserver,
    RestTransport,
    expect_dict,
    expect_list,
    fetch_bounded,
    gather_or_cancel,
)
from common_types import GitRepository, GitUser, MonitoredRepository, ProviderType, PullRequestItem, make_item_id

from .api.pr_reviews import EMPTY_REVIEW_SUMMARY, ReviewSummary, get_review_summary
from .api.pulls_list import list_open_pulls
from .api.search_issues import search_merged_pulls

_logger = logging.getLogger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"


class GitHubAPIClient:
    """Async GitHub REST client bound to one token and one refresh cycle."""

    provider = ProviderType.GITHUB

    def __init__(
        self,
        token: str,
        *,
        session: aiohttp.ClientSession,
        rate_tracker: Optional[RateObserver] = None,
        cancel_token: Optional[CancelToken] = None,
        base_url: str = GITHUB_API_BASE_URL,
        merge_lookback_days: int = 7,
        search_limit: int = 100,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if not str(token or "").strip():
            raise Unauthorized("GitHub token is missing.", provider=self.provider.value)
        self.token = str(token).strip()
        self.merge_lookback_days = int(merge_lookback_days)
        self.search_limit = int(search_limit)
        self.max_concurrent = int(max_concurrent)
        self._now = now
        self.transport = RestTransport(
            provider=self.provider,
            base_url=base_url,
            headers={
                "Authorization": f"token {self.token}",
                "Accept": "application/vnd.github.v3+json",
            },
            session=session,
            rate_tracker=rate_tracker,
            cancel_token=cancel_token,
            status_errors={401: Unauthorized, 403: RateLimitExceeded, 429: RateLimitExceeded},
        )
        self._user: Optional[GitUser] = None
        self._user_lock = asyncio.Lock()

    def get_rest_call_stats(self) -> Dict[str, Any]:
        return self.transport.get_rest_call_stats()

    # ----------------------------------------------------------------------------------
    # User / repositories
    # ----------------------------------------------------------------------------------

    async def fetch_current_user(self) -> GitUser:
        async with self._user_lock:
            if self._user is None:
                data = expect_dict(await self.transport.get_json("/user", label="user"), provider=self.provider, endpoint="/user")
                self._user = GitUser(
                    id=str(data.get("id") or ""),
                    display_name=str(data.get("name") or data.get("login") or ""),
                    avatar_url=str(data.get("avatar_url") or ""),
                )
            return self._user

    async def fetch_repositories(self, query: Optional[str] = None) -> List[GitRepository]:
        """Most recently updated repositories (first page only), filtered client-side."""
        endpoint = "/user/repos"
        rows = expect_list(
            await self.transport.get_json(
                endpoint,
                {"type": "all", "sort": "updated", "per_page": str(self.search_limit)},
                label="user_repos",
            ),
            provider=self.provider,
            endpoint=endpoint,
        )
        repos = [
            GitRepository(
                id=str(r.get("id")),
                name=str(r.get("name") or ""),
                full_name=str(r.get("full_name") or ""),
                provider=self.provider,
                description=str(r.get("description") or ""),
            )
            for r in rows
            if isinstance(r, dict)
        ]
        q = str(query or "").strip().lower()
        if q:
            repos = [r for r in repos if q in r.name.lower() or q in r.full_name.lower()]
        return repos

    # ----------------------------------------------------------------------------------
    # Pull requests
    # ----------------------------------------------------------------------------------

    async def fetch_pull_requests(self, repo: MonitoredRepository) -> List[PullRequestItem]:
        owner, _, name = str(repo.full_name).partition("/")
        if not owner or not name or "/" in name:
            raise InvalidURL(f"Invalid URL: not an owner/repo name: {repo.full_name!r}", provider=self.provider.value)

        me = await self.fetch_current_user()
        since = self._now() - timedelta(days=self.merge_lookback_days)
        open_rows, merged_rows = await gather_or_cancel(
            list_open_pulls(self, owner=owner, repo=name),
            search_merged_pulls(self, owner=owner, repo=name, since=since, per_page=self.search_limit),
        )
        rows = list(open_rows) + list(merged_rows)

        async def _reviews(row: Dict[str, Any]) -> ReviewSummary:
            return await get_review_summary(self, owner=owner, repo=name, pr_number=int(row.get("number") or 0))

        summaries = await fetch_bounded(
            rows,
            _reviews,
            max_concurrent=self.max_concurrent,
            default=EMPTY_REVIEW_SUMMARY,
            label=f"github reviews {repo.full_name}",
        )
        items = [
            self._to_item(row, summary or EMPTY_REVIEW_SUMMARY, me=me, full_name=repo.full_name, repo_name=repo.name or name)
            for row, summary in zip(rows, summaries)
        ]
        _logger.debug("github %s: %d open, %d merged", repo.full_name, len(open_rows), len(merged_rows))
        return items

    def _to_item(
        self,
        row: Dict[str, Any],
        summary: ReviewSummary,
        *,
        me: GitUser,
        full_name: str,
        repo_name: str,
    ) -> PullRequestItem:
        user = row.get("user") if isinstance(row.get("user"), dict) else {}
        requested = [u.get("id") for u in (row.get("requested_reviewers") or []) if isinstance(u, dict)]
        assignees = [u.get("id") for u in (row.get("assignees") or []) if isinstance(u, dict)]
        pr_meta = row.get("pull_request") if isinstance(row.get("pull_request"), dict) else {}

        merged_at = parse_iso8601(row.get("merged_at") or pr_meta.get("merged_at"))
        is_merged = merged_at is not None or str(row.get("state") or "") == "closed"
        if is_merged and merged_at is None:
            merged_at = parse_iso8601(row.get("closed_at")) or parse_iso8601(row.get("updated_at"))
        updated_at = parse_iso8601(row.get("updated_at")) or self._now()

        signals = ReviewSignals(
            is_draft=bool(row.get("draft")),
            is_merged=is_merged,
            is_authored_by_me=normalize_user_id(user.get("id")) == normalize_user_id(me.id),
            is_assigned_to_me=contains_user(requested + assignees, me.id),
            has_acted_by_me=summary.acted_by_me,
            merged_within_lookback=within_lookback(merged_at, now=self._now(), lookback_days=self.merge_lookback_days),
        )
        number = row.get("number")
        return PullRequestItem(
            id=make_item_id(self.provider, full_name, number),
            title=str(row.get("title") or ""),
            repository=repo_name,
            author=str(user.get("login") or ""),
            avatar_url=str(user.get("avatar_url") or ""),
            last_activity=updated_at,
            state=classify(signals),
            url=str(row.get("html_url") or ""),
            provider=self.provider,
            has_changes_requested=summary.has_changes_requested,
            approval_count=summary.approval_count,
            reviewer_count=len(requested),
            is_draft=signals.is_draft,
        )
