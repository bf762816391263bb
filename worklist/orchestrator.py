# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Fetch orchestration for one refresh cycle.

- Monitored repositories are partitioned by provider; each provider runs as its own task.
- Inside a provider, repositories are fetched one after another. Each repository's
  failure is caught on its own:
    * fatal (Unauthorized / RateLimitExceeded): record it, stop this provider
    * recoverable (anything else): record it, continue with the next repository
    * Cancelled (cycle superseded): dropped silently
- Other providers are never affected by one provider's fatal error.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from common_errors import Cancelled, ProviderError, RateLimitExceeded, Unauthorized, is_fatal
from common_http import CancelToken, gather_or_cancel
from common_types import MonitoredRepository, ProviderCredentials, ProviderType, PullRequestItem
from worklist.provider_factory import GitProvider
from worklist.rate_limit import RateLimitTracker
from worklist.refresh_errors import RefreshError, resolve_refresh_error, should_replace_snapshot

_logger = logging.getLogger(__name__)

# (provider, credentials, cancel_token) -> client
ProviderFactory = Callable[[ProviderType, ProviderCredentials, CancelToken], GitProvider]


@dataclass
class FetchResult:
    items: List[PullRequestItem] = field(default_factory=list)
    errors: List[RefreshError] = field(default_factory=list)
    cancelled: bool = False
    stats: Dict[str, dict] = field(default_factory=dict)

    @property
    def error(self) -> Optional[RefreshError]:
        return resolve_refresh_error(self.errors, self.items)

    @property
    def should_replace_snapshot(self) -> bool:
        return not self.cancelled and should_replace_snapshot(self.items, self.errors)


def group_by_provider(repos: Sequence[MonitoredRepository]) -> "OrderedDict[ProviderType, List[MonitoredRepository]]":
    grouped: "OrderedDict[ProviderType, List[MonitoredRepository]]" = OrderedDict()
    for repo in repos:
        grouped.setdefault(repo.provider, []).append(repo)
    return grouped


class FetchOrchestrator:
    def __init__(self, provider_factory: ProviderFactory, *, rate_tracker: Optional[RateLimitTracker] = None):
        self.provider_factory = provider_factory
        self.rate_tracker = rate_tracker

    def _to_refresh_error(self, exc: ProviderError, provider: ProviderType) -> RefreshError:
        reset_at = None
        if isinstance(exc, RateLimitExceeded) and self.rate_tracker is not None:
            reset_at = self.rate_tracker.reset_time(provider)
        return RefreshError.from_exception(exc, provider, reset_at=reset_at)

    async def fetch_all(
        self,
        repos: Sequence[MonitoredRepository],
        credentials: Mapping[ProviderType, ProviderCredentials],
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> FetchResult:
        token = cancel_token or CancelToken()
        grouped = group_by_provider(repos)
        t0 = time.monotonic()
        per_provider = await gather_or_cancel(
            *[self._fetch_provider(p, p_repos, credentials.get(p), token) for p, p_repos in grouped.items()]
        )

        result = FetchResult(cancelled=token.cancelled)
        for provider, (items, errors, stats) in zip(grouped.keys(), per_provider):
            result.items.extend(items)
            result.errors.extend(errors)
            if stats:
                result.stats[provider.value] = stats
        _logger.info(
            "Fetched %d item(s) from %d repo(s) across %d provider(s) in %.1fs (%d error(s))",
            len(result.items),
            len(repos),
            len(grouped),
            time.monotonic() - t0,
            len(result.errors),
        )
        return result

    async def _fetch_provider(
        self,
        provider: ProviderType,
        repos: Sequence[MonitoredRepository],
        credentials: Optional[ProviderCredentials],
        token: CancelToken,
    ) -> Tuple[List[PullRequestItem], List[RefreshError], Dict[str, object]]:
        items: List[PullRequestItem] = []
        errors: List[RefreshError] = []
        if credentials is None:
            _logger.error("%s: no token configured", provider.display_name)
            errors.append(self._to_refresh_error(Unauthorized(provider=provider.value), provider))
            return items, errors, {}

        try:
            client = self.provider_factory(provider, credentials, token)
        except Unauthorized as e:
            errors.append(self._to_refresh_error(e, provider))
            return items, errors, {}
        except Exception as e:
            _logger.exception("%s: could not create client", provider.display_name)
            errors.append(RefreshError.from_exception(e, provider))
            return items, errors, {}

        for repo in repos:
            try:
                repo_items = await client.fetch_pull_requests(repo)
            except Cancelled:
                _logger.debug("%s: cycle cancelled during %s", provider.display_name, repo.full_name)
                break
            except ProviderError as e:
                errors.append(self._to_refresh_error(e, provider))
                if is_fatal(e):
                    _logger.error("%s: %s (skipping remaining repositories)", provider.display_name, e)
                    break
                _logger.warning("%s: %s failed: %s", provider.display_name, repo.full_name, e)
                continue
            except Exception as e:
                _logger.exception("%s: %s failed unexpectedly", provider.display_name, repo.full_name)
                errors.append(RefreshError.from_exception(e, provider))
                continue
            items.extend(repo_items)
        return items, errors, client.get_rest_call_stats()
