# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Review-action classification shared by all provider clients.

Every provider exposes different raw signals (Bitbucket participants, GitHub reviews,
GitLab approvals + detailed_merge_status). Each client reduces its payload to a
`ReviewSignals` and calls `classify()`, so there is exactly one decision table:

  1. draft   -> AUTHORED if mine, else TEAM_OTHER
  2. merged  -> MERGED_NEEDS_REVIEW if assigned, not acted, not mine and within
                the lookback window; else TEAM_OTHER
  3. open    -> AUTHORED if mine; WAITING if I acted; NEEDS_REVIEW if assigned;
                else TEAM_OTHER
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from common_types import PRState


@dataclass(frozen=True)
class ReviewSignals:
    is_draft: bool = False
    is_merged: bool = False
    is_authored_by_me: bool = False
    is_assigned_to_me: bool = False
    has_acted_by_me: bool = False
    merged_within_lookback: bool = False


def classify(signals: ReviewSignals) -> PRState:
    """Map normalized review signals to exactly one canonical state (first rule wins)."""
    s = signals
    if s.is_draft:
        return PRState.AUTHORED if s.is_authored_by_me else PRState.TEAM_OTHER

    if s.is_merged:
        if s.is_assigned_to_me and not s.has_acted_by_me and not s.is_authored_by_me and s.merged_within_lookback:
            return PRState.MERGED_NEEDS_REVIEW
        return PRState.TEAM_OTHER

    if s.is_authored_by_me:
        return PRState.AUTHORED
    if s.has_acted_by_me:
        return PRState.WAITING
    if s.is_assigned_to_me:
        return PRState.NEEDS_REVIEW
    return PRState.TEAM_OTHER


def within_lookback(merged_at: Optional[datetime], *, now: datetime, lookback_days: int) -> bool:
    """True if `merged_at` falls inside the trailing `lookback_days` window ending at `now`."""
    if merged_at is None:
        return False
    return merged_at >= now - timedelta(days=int(lookback_days))


def normalize_user_id(value: object) -> str:
    """Compare provider user ids loosely (Bitbucket wraps UUIDs in braces, case varies)."""
    return str(value or "").strip().strip("{}").lower()


def contains_user(ids: Iterable[object], me: object) -> bool:
    target = normalize_user_id(me)
    if not target:
        return False
    return any(normalize_user_id(x) == target for x in ids)
