# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""User-visible refresh error summary.

A refresh cycle can collect many raw `ProviderError`s; at most one `RefreshError`
is surfaced per cycle (see `resolve_refresh_error`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence, Tuple

from common_errors import ProviderError, RateLimitExceeded, Unauthorized
from common_types import ProviderType, PullRequestItem


class RefreshErrorKind(str, Enum):
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    MULTIPLE_AUTH = "multiple_auth"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RefreshError:
    kind: RefreshErrorKind
    provider: Optional[ProviderType] = None
    detail: str = ""
    reset_at: Optional[datetime] = None
    providers: Tuple[ProviderType, ...] = ()

    @property
    def is_fatal(self) -> bool:
        return self.kind in (RefreshErrorKind.AUTH, RefreshErrorKind.RATE_LIMIT, RefreshErrorKind.MULTIPLE_AUTH)

    @property
    def message(self) -> str:
        name = self.provider.display_name if self.provider is not None else "Provider"
        if self.kind == RefreshErrorKind.AUTH:
            return f"{name} Failed. Please check your credentials."
        if self.kind == RefreshErrorKind.RATE_LIMIT:
            if self.reset_at is not None:
                return f"{name} Rate Limit Exceeded. Resets at {self.reset_at.strftime('%H:%M')}."
            return f"{name} Rate Limit Exceeded."
        if self.kind == RefreshErrorKind.NETWORK:
            return f"{name} Error: {self.detail}"
        if self.kind == RefreshErrorKind.MULTIPLE_AUTH:
            names = " & ".join(p.display_name for p in self.providers)
            return f"{names} Auth Failed. Check credentials."
        return "An unknown error occurred."

    def __str__(self) -> str:
        return self.message

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        provider: ProviderType,
        *,
        reset_at: Optional[datetime] = None,
    ) -> "RefreshError":
        if isinstance(exc, Unauthorized):
            return cls(RefreshErrorKind.AUTH, provider=provider)
        if isinstance(exc, RateLimitExceeded):
            return cls(RefreshErrorKind.RATE_LIMIT, provider=provider, reset_at=reset_at)
        if isinstance(exc, ProviderError):
            return cls(RefreshErrorKind.NETWORK, provider=provider, detail=exc.message)
        return cls(RefreshErrorKind.UNKNOWN, provider=provider, detail=str(exc))

    @classmethod
    def multiple_auth(cls, providers: Sequence[ProviderType]) -> "RefreshError":
        ordered = tuple(sorted(set(providers), key=lambda p: p.display_name))
        return cls(RefreshErrorKind.MULTIPLE_AUTH, providers=ordered)


def resolve_refresh_error(errors: Sequence[RefreshError], items: Sequence[PullRequestItem]) -> Optional[RefreshError]:
    """Pick the single error (if any) to surface for a cycle.

    1. auth failures from >= 2 distinct providers -> MULTIPLE_AUTH
    2. else the first fatal error (auth / rate limit)
    3. else, if nothing at all came back, the first error
    4. else nothing: partial data is accepted
    """
    auth_providers = []
    for e in errors:
        if e.kind == RefreshErrorKind.AUTH and e.provider is not None and e.provider not in auth_providers:
            auth_providers.append(e.provider)
    if len(auth_providers) >= 2:
        return RefreshError.multiple_auth(auth_providers)

    for e in errors:
        if e.is_fatal:
            return e

    if not items and errors:
        return errors[0]
    return None


def should_replace_snapshot(items: Sequence[PullRequestItem], errors: Sequence[RefreshError]) -> bool:
    """Replace when something came back or nothing failed; keep stale data on total failure."""
    return bool(items) or not errors
