#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Common shared enums/types used by:
- the provider clients (`common_bitbucket/`, `common_github/`, `common_gitlab/`)
- the worklist core (`worklist/*`) and persisted stores (`store/*`)

This module MUST NOT import any provider client or worklist module to avoid cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ProviderType(str, Enum):
    """Code-hosting providers we know how to talk to."""

    BITBUCKET = "bitbucket"
    GITHUB = "github"
    GITLAB = "gitlab"

    @property
    def display_name(self) -> str:
        return {
            ProviderType.BITBUCKET: "Bitbucket",
            ProviderType.GITHUB: "GitHub",
            ProviderType.GITLAB: "GitLab",
        }[self]


class PRState(str, Enum):
    """Canonical review-action bucket assigned to every item.

    `UNKNOWN` is a decode-failure sentinel and is never displayed.
    """

    NEEDS_REVIEW = "needs_review"
    WAITING = "waiting"
    AUTHORED = "authored"
    TEAM_OTHER = "team_other"
    MERGED_NEEDS_REVIEW = "merged_needs_review"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return {
            PRState.NEEDS_REVIEW: "Needs Review",
            PRState.WAITING: "Waiting",
            PRState.AUTHORED: "My PRs",
            PRState.TEAM_OTHER: "Team",
            PRState.MERGED_NEEDS_REVIEW: "Merged",
            PRState.UNKNOWN: "Unknown",
        }[self]


class WarningLevel(str, Enum):
    """Rate-limit budget warning level (ordered; see `rank`)."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return ["none", "low", "medium", "high"].index(self.value)


class BadgeCountMode(str, Enum):
    ACTIONABLE = "actionable"
    ALL = "all"


@dataclass(frozen=True)
class GitUser:
    id: str
    display_name: str
    avatar_url: str = ""


@dataclass(frozen=True)
class GitRepository:
    """A repository as listed by a provider's repository search."""

    id: str
    name: str
    full_name: str
    provider: ProviderType
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "full_name": self.full_name,
            "provider": self.provider.value,
            "description": self.description,
        }


@dataclass(frozen=True)
class MonitoredRepository:
    """A repository the user asked us to watch.

    `workspace`/`slug` are derived from `full_name` (`workspace/slug`); GitLab
    namespaces can be nested (`group/sub/project`), in which case `workspace`
    holds everything before the last path segment.
    """

    id: str
    workspace: str
    slug: str
    name: str
    full_name: str
    provider: ProviderType = ProviderType.BITBUCKET

    @classmethod
    def from_repository(cls, repo: GitRepository) -> "MonitoredRepository":
        workspace, _, slug = str(repo.full_name).rpartition("/")
        return cls(
            id=str(repo.id),
            workspace=workspace,
            slug=slug or repo.name,
            name=repo.name,
            full_name=repo.full_name,
            provider=repo.provider,
        )

    @property
    def key(self) -> str:
        return f"{self.provider.value}:{self.id}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workspace": self.workspace,
            "slug": self.slug,
            "name": self.name,
            "full_name": self.full_name,
            "provider": self.provider.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MonitoredRepository":
        # Older state files predate multi-provider support: default to Bitbucket.
        provider = ProviderType(str(d.get("provider") or ProviderType.BITBUCKET.value))
        return cls(
            id=str(d["id"]),
            workspace=str(d.get("workspace") or ""),
            slug=str(d.get("slug") or ""),
            name=str(d.get("name") or ""),
            full_name=str(d.get("full_name") or ""),
            provider=provider,
        )


@dataclass(frozen=True)
class ProviderCredentials:
    """Immutable per-cycle credential snapshot for one provider."""

    token: str
    username: Optional[str] = None

    def __repr__(self) -> str:
        return f"ProviderCredentials(username={self.username!r}, token=<redacted>)"


@dataclass(frozen=True)
class PullRequestItem:
    """One pull/merge request normalized from any provider.

    Items are created fresh each refresh cycle. The filter pass derives tagged
    copies via `dataclasses.replace`; the stored snapshot is never mutated.
    """

    id: str
    title: str
    repository: str
    author: str
    avatar_url: str
    last_activity: datetime
    state: PRState
    url: str
    provider: ProviderType
    has_changes_requested: bool = False
    approval_count: int = 0
    reviewer_count: int = 0
    is_draft: bool = False
    is_snoozed: bool = False

    @property
    def initials(self) -> str:
        return author_initials(self.author)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "repository": self.repository,
            "author": self.author,
            "avatar_url": self.avatar_url,
            "last_activity": self.last_activity.isoformat(),
            "state": self.state.value,
            "url": self.url,
            "provider": self.provider.value,
            "has_changes_requested": self.has_changes_requested,
            "approval_count": self.approval_count,
            "reviewer_count": self.reviewer_count,
            "is_draft": self.is_draft,
            "is_snoozed": self.is_snoozed,
        }


def make_item_id(provider: ProviderType, full_name: str, number: Any) -> str:
    """Globally unique item id: `<provider>:<repo full name>#<number>`."""
    return f"{provider.value}:{full_name}#{number}"


def author_initials(name: str) -> str:
    """Two-letter initials for an author (`"Ada Lovelace"` -> `"AL"`, `"bob"` -> `"BO"`)."""
    parts = [p for p in str(name or "").split() if p]
    if not parts:
        return "??"
    if len(parts) >= 2:
        return (parts[0][0] + parts[1][0]).upper()
    return parts[0][:2].upper()
