# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Fixed in-memory dataset for demo mode (`--demo-data` / PR_WORKLIST_DEMO_MODE=1).

No network, no credentials, no active-hours gating. Timestamps are relative to `now`
so the list always looks fresh. Every classification state appears at least once.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence

from common_types import GitRepository, MonitoredRepository, PRState, ProviderType, PullRequestItem

DEMO_TOOLTIP = "Demo mode: using mock repositories and PRs"


class _Seed(NamedTuple):
    number: int
    title: str
    author: str
    state: PRState
    minutes_ago: int
    has_changes_requested: bool = False
    approval_count: int = 0
    reviewer_count: int = 1
    is_draft: bool = False


REPOSITORIES: List[GitRepository] = [
    GitRepository(id="bb-ledger-api", name="ledger-api", full_name="demo-team/ledger-api", provider=ProviderType.BITBUCKET),
    GitRepository(id="bb-ops-console", name="ops-console", full_name="demo-team/ops-console", provider=ProviderType.BITBUCKET),
    GitRepository(id="gh-atlas-mobile", name="atlas-mobile", full_name="acme/atlas-mobile", provider=ProviderType.GITHUB),
    GitRepository(id="gh-beacon-web", name="beacon-web", full_name="acme/beacon-web", provider=ProviderType.GITHUB),
    GitRepository(id="gl-keystone-auth", name="keystone-auth", full_name="platform/keystone-auth", provider=ProviderType.GITLAB),
    GitRepository(id="gl-handbook", name="handbook", full_name="platform/handbook", provider=ProviderType.GITLAB),
]

_SEEDS: Dict[str, List[_Seed]] = {
    "bb-ledger-api": [
        _Seed(318, "feat(ledger): batch reconciliation writes", "Priya Raman", PRState.NEEDS_REVIEW, 15, reviewer_count=2),
        _Seed(311, "refactor(db): split read replicas by tenant", "Tomas Herrera", PRState.TEAM_OTHER, 240),
    ],
    "bb-ops-console": [
        _Seed(57, "fix(alerts): collapse repeated pager events", "Hana Sato", PRState.WAITING, 95, approval_count=1, reviewer_count=2),
        _Seed(52, "chore(ui): tighten table row spacing", "Demo User", PRState.AUTHORED, 1440, reviewer_count=2),
    ],
    "gh-atlas-mobile": [
        _Seed(902, "feat(offline): queue edits while disconnected", "Demo User", PRState.AUTHORED, 35, reviewer_count=3, is_draft=True),
        _Seed(897, "fix(search): cancel stale query requests", "Marcus Webb", PRState.MERGED_NEEDS_REVIEW, 1300, approval_count=2, reviewer_count=3),
    ],
    "gh-beacon-web": [
        _Seed(211, "feat(charts): weekly review throughput", "Elif Demir", PRState.TEAM_OTHER, 380, approval_count=1, reviewer_count=2),
        _Seed(207, "fix(signup): handle empty org invite", "Jonah Fischer", PRState.WAITING, 45, has_changes_requested=True, reviewer_count=2),
    ],
    "gl-keystone-auth": [
        _Seed(64, "feat(keys): rotate signing keys on schedule", "Demo User", PRState.AUTHORED, 700, approval_count=1, reviewer_count=2),
        _Seed(61, "fix(session): reject reused refresh tokens", "Ana Oliveira", PRState.NEEDS_REVIEW, 20, approval_count=1, reviewer_count=3),
    ],
    "gl-handbook": [
        _Seed(18, "docs(oncall): add incident handoff template", "Kwame Mensah", PRState.TEAM_OTHER, 560),
        _Seed(15, "docs(setup): document token scopes", "Lucia Romano", PRState.MERGED_NEEDS_REVIEW, 2100, approval_count=1, reviewer_count=2),
    ],
}


def monitored_repositories() -> List[MonitoredRepository]:
    return [MonitoredRepository.from_repository(r) for r in REPOSITORIES]


def search_repositories(query: Optional[str], provider: ProviderType) -> List[GitRepository]:
    q = str(query or "").strip().lower()
    repos = [r for r in REPOSITORIES if r.provider == provider]
    if not q:
        return repos
    return [r for r in repos if q in r.name.lower() or q in r.full_name.lower()]


def _make_item(repo: GitRepository, seed: _Seed, now: datetime) -> PullRequestItem:
    return PullRequestItem(
        id=f"demo:{repo.provider.value}:{repo.id}:{seed.number}",
        title=seed.title,
        repository=repo.name,
        author=seed.author,
        avatar_url="",
        last_activity=now - timedelta(minutes=seed.minutes_ago),
        state=seed.state,
        url=f"https://example.com/{repo.full_name}/pull/{seed.number}",
        provider=repo.provider,
        has_changes_requested=seed.has_changes_requested,
        approval_count=seed.approval_count,
        reviewer_count=seed.reviewer_count,
        is_draft=seed.is_draft,
    )


def items_by_repository(now: Optional[datetime] = None) -> Dict[str, List[PullRequestItem]]:
    """{"<provider>:<repo id>": [items]} for every demo repository."""
    now = now or datetime.now(timezone.utc)
    out: Dict[str, List[PullRequestItem]] = {}
    for repo in REPOSITORIES:
        key = f"{repo.provider.value}:{repo.id}"
        out[key] = [_make_item(repo, s, now) for s in _SEEDS.get(repo.id, [])]
    return out


def demo_items(monitored: Sequence[MonitoredRepository], now: Optional[datetime] = None) -> List[PullRequestItem]:
    """Items for the monitored demo repositories; all items if none of them match."""
    by_repo = items_by_repository(now)
    every = [i for items in by_repo.values() for i in items]
    selected = [i for r in monitored for i in by_repo.get(r.key, [])]
    chosen = selected or every
    return sorted(chosen, key=lambda i: (-i.last_activity.timestamp(), i.id))
