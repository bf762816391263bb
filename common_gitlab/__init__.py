# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GitLab API client for pr-worklist.

This mirrors the `common_github/` structure:
- `common_gitlab/` defines the API client (auth, user, projects, MR normalization)
- `common_gitlab/api/*.py` contains per-resource fetch + paging logic

Reviewer state ("requested changes") is only available from a per-MR endpoint, so it
is fetched lazily: only for open MRs where I'm a reviewer/assignee (not the author),
approvals don't already list me, and `detailed_merge_status == "requested_changes"`.
Requested-changes by me outside that trigger is not detected (accepted approximation).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from common import parse_iso8601
from common_classification import ReviewSignals, classify, contains_user, normalize_user_id, within_lookback
from common_errors import ProviderError, Unauthorized, is_fatal
from common_http import (
    DEFAULT_MAX_CONCURRENT,
    CancelToken,
    RateObserver,
    RestTransport,
    expect_dict,
    fetch_bounded,
    gather_or_cancel,
)
from common_types import GitRepository, GitUser, MonitoredRepository, ProviderType, PullRequestItem, make_item_id

from .api.merge_requests import get_approvals, list_all_pages, list_merge_requests, list_reviewers

_logger = logging.getLogger(__name__)

GITLAB_API_BASE_URL = "https://gitlab.com/api/v4"
REQUESTED_CHANGES = "requested_changes"


@dataclass(frozen=True)
class _MRReviewInfo:
    approved_by_me: bool = False
    changes_requested_by_me: bool = False
    approval_count: int = 0


def is_draft_merge_request(mr: Dict[str, Any]) -> bool:
    title = str(mr.get("title") or "").strip().lower()
    return bool(mr.get("draft")) or bool(mr.get("work_in_progress")) or title.startswith(("draft:", "wip:"))


class GitLabAPIClient:
    """Async GitLab REST v4 client bound to one token and one refresh cycle."""

    provider = ProviderType.GITLAB

    def __init__(
        self,
        token: str,
        *,
        session: aiohttp.ClientSession,
        rate_tracker: Optional[RateObserver] = None,
        cancel_token: Optional[CancelToken] = None,
        base_url: str = GITLAB_API_BASE_URL,
        merge_lookback_days: int = 7,
        page_size: int = 50,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if not str(token or "").strip():
            raise Unauthorized("GitLab token is missing.", provider=self.provider.value)
        self.token = str(token).strip()
        self.merge_lookback_days = int(merge_lookback_days)
        self.page_size = int(page_size)
        self.max_concurrent = int(max_concurrent)
        self._now = now
        self.transport = RestTransport(
            provider=self.provider,
            base_url=base_url,
            headers={"PRIVATE-TOKEN": self.token},
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
                if not str(data.get("username") or "").strip():
                    raise Unauthorized(provider=self.provider.value, endpoint="/user")
                self._user = GitUser(
                    id=str(data.get("id") or ""),
                    display_name=str(data.get("name") or data.get("username") or ""),
                    avatar_url=str(data.get("avatar_url") or ""),
                )
            return self._user

    async def fetch_repositories(self, query: Optional[str] = None) -> List[GitRepository]:
        """Projects I can push to (Developer+), most recently active first."""
        params = {
            "membership": "true",
            "simple": "true",
            "min_access_level": "30",
            "per_page": "100",
            "order_by": "last_activity_at",
        }
        q = str(query or "").strip()
        if q:
            params["search"] = q
        rows = await list_all_pages(self, "/projects", params, label="projects")
        return [
            GitRepository(
                id=str(p.get("id")),
                name=str(p.get("name") or ""),
                full_name=str(p.get("path_with_namespace") or ""),
                provider=self.provider,
                description=str(p.get("description") or ""),
            )
            for p in rows
        ]

    async def fetch_pull_requests(self, repo: MonitoredRepository) -> List[PullRequestItem]:
        try:
            project_id = int(str(repo.id))
        except ValueError:
            _logger.warning("gitlab: skipping %s (project id %r is not numeric)", repo.full_name, repo.id)
            return []

        me = await self.fetch_current_user()
        since = self._now() - timedelta(days=self.merge_lookback_days)
        opened, merged = await gather_or_cancel(
            list_merge_requests(self, project_id=project_id, state="opened", per_page=self.page_size),
            list_merge_requests(self, project_id=project_id, state="merged", updated_after=since, per_page=self.page_size),
        )
        rows = list(opened) + list(merged)

        async def _review_info(mr: Dict[str, Any]) -> _MRReviewInfo:
            return await self._fetch_review_info(mr, project_id=project_id, me=me)

        infos = await fetch_bounded(
            rows,
            _review_info,
            max_concurrent=self.max_concurrent,
            default=_MRReviewInfo(),
            label=f"gitlab approvals {repo.full_name}",
        )
        return [
            self._to_item(mr, info or _MRReviewInfo(), me=me, full_name=repo.full_name, repo_name=repo.name)
            for mr, info in zip(rows, infos)
        ]

    async def _fetch_review_info(self, mr: Dict[str, Any], *, project_id: int, me: GitUser) -> _MRReviewInfo:
        iid = int(mr.get("iid") or 0)
        approvals = await get_approvals(self, project_id=project_id, iid=iid) or {}
        approved_by = [
            (a.get("user") or {}).get("id") for a in (approvals.get("approved_by") or []) if isinstance(a, dict)
        ]
        approved_by_me = contains_user(approved_by, me.id)

        author_id = (mr.get("author") or {}).get("id")
        involved = self._reviewer_and_assignee_ids(mr)
        needs_reviewer_lookup = (
            str(mr.get("state") or "") == "opened"
            and contains_user(involved, me.id)
            and normalize_user_id(author_id) != normalize_user_id(me.id)
            and not approved_by_me
            and str(mr.get("detailed_merge_status") or "") == REQUESTED_CHANGES
        )
        changes_requested_by_me = False
        if needs_reviewer_lookup:
            try:
                reviewers = await list_reviewers(self, project_id=project_id, iid=iid)
            except ProviderError as e:
                if is_fatal(e):
                    raise
                _logger.debug("gitlab reviewers for !%d unavailable: %s", iid, e)
                reviewers = []
            changes_requested_by_me = any(
                normalize_user_id((r.get("user") or {}).get("id")) == normalize_user_id(me.id)
                and str(r.get("state") or "") == REQUESTED_CHANGES
                for r in reviewers
            )
        return _MRReviewInfo(
            approved_by_me=approved_by_me,
            changes_requested_by_me=changes_requested_by_me,
            approval_count=len(approved_by),
        )

    @staticmethod
    def _reviewer_and_assignee_ids(mr: Dict[str, Any]) -> List[Any]:
        ids: List[Any] = []
        for key in ("reviewers", "assignees"):
            ids.extend(u.get("id") for u in (mr.get(key) or []) if isinstance(u, dict))
        assignee = mr.get("assignee")
        if isinstance(assignee, dict):
            ids.append(assignee.get("id"))
        return ids

    def _to_item(
        self,
        mr: Dict[str, Any],
        info: _MRReviewInfo,
        *,
        me: GitUser,
        full_name: str,
        repo_name: str,
    ) -> PullRequestItem:
        author = mr.get("author") if isinstance(mr.get("author"), dict) else {}
        is_merged = str(mr.get("state") or "") == "merged"
        merged_at = parse_iso8601(mr.get("merged_at")) or (parse_iso8601(mr.get("updated_at")) if is_merged else None)
        signals = ReviewSignals(
            # A merged MR can still carry a stale draft flag; it is merged first.
            is_draft=is_draft_merge_request(mr) and not is_merged,
            is_merged=is_merged,
            is_authored_by_me=normalize_user_id(author.get("id")) == normalize_user_id(me.id),
            is_assigned_to_me=contains_user(self._reviewer_and_assignee_ids(mr), me.id),
            has_acted_by_me=info.approved_by_me or info.changes_requested_by_me,
            merged_within_lookback=within_lookback(merged_at, now=self._now(), lookback_days=self.merge_lookback_days),
        )
        return PullRequestItem(
            id=make_item_id(self.provider, full_name, mr.get("iid")),
            title=str(mr.get("title") or ""),
            repository=repo_name or full_name.rpartition("/")[2],
            author=str(author.get("name") or author.get("username") or ""),
            avatar_url=str(author.get("avatar_url") or ""),
            last_activity=parse_iso8601(mr.get("updated_at")) or self._now(),
            state=classify(signals),
            url=str(mr.get("web_url") or ""),
            provider=self.provider,
            has_changes_requested=str(mr.get("detailed_merge_status") or "") == REQUESTED_CHANGES,
            approval_count=info.approval_count,
            reviewer_count=len([u for u in (mr.get("reviewers") or []) if isinstance(u, dict)]),
            is_draft=signals.is_draft,
        )
