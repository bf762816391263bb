# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Provider API error types.

These are intentionally lightweight so provider clients and the fetch
orchestrator can catch specific error classes (e.g. 401 Unauthorized) without
creating import cycles.
"""

from __future__ import annotations

from typing import Optional


class ProviderError(Exception):
    """Base class for every error a provider client raises."""

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        endpoint: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = str(message)
        self.provider = provider
        self.endpoint = str(endpoint or "")
        self.status_code = int(status_code) if status_code is not None else None


class InvalidURL(ProviderError):
    def __init__(self, message: str = "Invalid URL", **kwargs):
        super().__init__(message, **kwargs)


class NetworkError(ProviderError):
    """Transport-level failure (DNS, connection reset, timeout)."""

    def __init__(self, message: str = "", **kwargs):
        super().__init__(f"Network error: {message}" if message else "Network error", **kwargs)


class InvalidResponse(ProviderError):
    """The server answered but the body could not be decoded."""

    def __init__(self, message: str = "Invalid response from server", **kwargs):
        super().__init__(message, **kwargs)


class ApiError(ProviderError):
    """Generic non-2xx status that has no more specific meaning."""

    def __init__(self, status_code: int, **kwargs):
        kwargs.pop("status_code", None)
        super().__init__(f"Provider API error: {int(status_code)}", status_code=status_code, **kwargs)


class Unauthorized(ProviderError):
    def __init__(self, message: str = "Unauthorized. Check your credentials.", **kwargs):
        super().__init__(message, **kwargs)


class RateLimitExceeded(ProviderError):
    def __init__(self, message: str = "API Rate Limit Exceeded. Try again later.", **kwargs):
        super().__init__(message, **kwargs)


class Cancelled(ProviderError):
    """The refresh cycle this call belonged to was superseded.

    Distinct from the recoverable errors: the orchestrator drops it silently.
    """

    def __init__(self, message: str = "Cancelled", **kwargs):
        super().__init__(message, **kwargs)


FATAL_ERRORS = (Unauthorized, RateLimitExceeded)


def is_fatal(exc: BaseException) -> bool:
    """Fatal errors stop all further fetching for their provider in the current cycle."""
    return isinstance(exc, FATAL_ERRORS)
