# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Provider interface + factory.

Each provider client is an independent class; they only share this capability set.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from common_bitbucket import BitbucketAPIClient
from common_github import GitHubAPIClient
from common_gitlab import GITLAB_API_BASE_URL, GitLabAPIClient
from common_http import CancelToken, RateObserver
from common_types import GitRepository, GitUser, MonitoredRepository, ProviderCredentials, ProviderType, PullRequestItem
from worklist.config import Settings


class GitProvider(Protocol):
    provider: ProviderType

    async def fetch_current_user(self) -> GitUser: ...

    async def fetch_repositories(self, query: Optional[str] = None) -> List[GitRepository]: ...

    async def fetch_pull_requests(self, repo: MonitoredRepository) -> List[PullRequestItem]: ...

    def get_rest_call_stats(self) -> Dict[str, Any]: ...


def make_provider(
    provider: ProviderType,
    credentials: ProviderCredentials,
    *,
    session: aiohttp.ClientSession,
    settings: Optional[Settings] = None,
    rate_tracker: Optional[RateObserver] = None,
    cancel_token: Optional[CancelToken] = None,
) -> GitProvider:
    s = settings or Settings()
    common_kwargs: Dict[str, Any] = {
        "session": session,
        "rate_tracker": rate_tracker,
        "cancel_token": cancel_token,
        "merge_lookback_days": s.merge_lookback_days,
    }
    if provider == ProviderType.BITBUCKET:
        return BitbucketAPIClient(
            credentials.token,
            username=credentials.username,
            page_size=s.page_size,
            repo_page_delay_s=s.bitbucket_repo_page_delay_s,
            **common_kwargs,
        )
    if provider == ProviderType.GITHUB:
        return GitHubAPIClient(
            credentials.token,
            search_limit=s.github_search_limit,
            max_concurrent=s.review_fetch_concurrency,
            **common_kwargs,
        )
    if provider == ProviderType.GITLAB:
        return GitLabAPIClient(
            credentials.token,
            base_url=s.gitlab_base_url or GITLAB_API_BASE_URL,
            page_size=s.page_size,
            max_concurrent=s.review_fetch_concurrency,
            **common_kwargs,
        )
    raise ValueError(f"Unsupported provider: {provider!r}")
