# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Filter pipeline: raw snapshot -> displayed list.

Steps (pure; snooze purging happens in the caller before this runs):
  1. drop UNKNOWN items
  2. per-state visibility toggles
  3. merged items older than the display lookback are dropped
  4. snoozed items: dropped, or tagged `is_snoozed` when show_snoozed is on
  5. sort by last activity, newest first (ties broken by id for a stable order)
"""

from __future__ import annotations

import dataclasses
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping

from common_types import BadgeCountMode, PRState, PullRequestItem

SNOOZED_GROUP = "snoozed"


@dataclass(frozen=True)
class FilterOptions:
    show_to_review: bool = True
    show_waiting: bool = True
    show_my_prs: bool = True
    show_team: bool = True
    show_merged: bool = True
    show_snoozed: bool = False
    display_lookback_days: int = 7

    @classmethod
    def from_settings(cls, settings) -> "FilterOptions":
        return cls(
            show_to_review=bool(settings.show_to_review),
            show_waiting=bool(settings.show_waiting),
            show_my_prs=bool(settings.show_my_prs),
            show_team=bool(settings.show_team),
            show_merged=bool(settings.show_merged),
            show_snoozed=bool(settings.show_snoozed),
            display_lookback_days=int(settings.effective_display_lookback_days),
        )

    def state_visible(self, state: PRState) -> bool:
        return {
            PRState.NEEDS_REVIEW: self.show_to_review,
            PRState.WAITING: self.show_waiting,
            PRState.AUTHORED: self.show_my_prs,
            PRState.TEAM_OTHER: self.show_team,
            PRState.MERGED_NEEDS_REVIEW: self.show_merged,
        }.get(state, False)


def sort_items(items: Iterable[PullRequestItem]) -> List[PullRequestItem]:
    return sorted(items, key=lambda i: (-i.last_activity.timestamp(), i.id))


def apply_filters(
    items: Iterable[PullRequestItem],
    *,
    snoozed_ids: Iterable[str],
    options: FilterOptions,
    now: datetime,
) -> List[PullRequestItem]:
    snoozed = set(snoozed_ids)
    merged_cutoff = now - timedelta(days=int(options.display_lookback_days))
    out: List[PullRequestItem] = []
    for item in items:
        if item.state == PRState.UNKNOWN:
            continue
        if not options.state_visible(item.state):
            continue
        if item.state == PRState.MERGED_NEEDS_REVIEW and item.last_activity < merged_cutoff:
            continue
        if item.id in snoozed:
            if options.show_snoozed:
                out.append(dataclasses.replace(item, is_snoozed=True))
            continue
        out.append(dataclasses.replace(item, is_snoozed=False) if item.is_snoozed else item)
    return sort_items(out)


def group_items(items: Iterable[PullRequestItem]) -> "OrderedDict[str, List[PullRequestItem]]":
    """Group a filtered list for display: one group per state, snoozed items in their own group."""
    order = [
        PRState.NEEDS_REVIEW.value,
        PRState.WAITING.value,
        PRState.AUTHORED.value,
        PRState.TEAM_OTHER.value,
        PRState.MERGED_NEEDS_REVIEW.value,
        SNOOZED_GROUP,
    ]
    groups: "OrderedDict[str, List[PullRequestItem]]" = OrderedDict((k, []) for k in order)
    for item in items:
        groups[SNOOZED_GROUP if item.is_snoozed else item.state.value].append(item)
    return OrderedDict((k, v) for k, v in groups.items() if v)


def badge_count(items: Iterable[PullRequestItem], mode: BadgeCountMode) -> int:
    items = list(items)
    if mode == BadgeCountMode.ALL:
        return len(items)
    return sum(
        1
        for i in items
        if not i.is_snoozed and i.state in (PRState.NEEDS_REVIEW, PRState.MERGED_NEEDS_REVIEW)
    )


def count_by_state(items: Iterable[PullRequestItem]) -> Mapping[PRState, int]:
    counts: Dict[PRState, int] = {}
    for i in items:
        counts[i.state] = counts.get(i.state, 0) + 1
    return counts
