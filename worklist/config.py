# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""User settings (YAML).

Location: $PR_WORKLIST_CONFIG_DIR/config.yaml, else ~/.config/pr-worklist/config.yaml.

Example:
  refresh_interval_minutes: 30
  start_hour: 22
  end_hour: 6            # overnight window (wraps past midnight)
  active_days: [1, 2, 3, 4, 5]   # ISO weekdays, Monday=1 .. Sunday=7
  merge_lookback_days: 7
  rate_limits:
    github: 5000
  bitbucket_username: jdoe
  show_team: false
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from common import atomic_write_text, pr_worklist_config_dir
from common_types import BadgeCountMode, ProviderType
from worklist.rate_limit import DEFAULT_RATE_LIMITS

_logger = logging.getLogger(__name__)

AVAILABLE_REFRESH_INTERVALS = (15, 30, 60, 120)


def default_config_path() -> Path:
    return pr_worklist_config_dir() / "config.yaml"


@dataclass
class Settings:
    refresh_interval_minutes: int = 60
    minimum_refresh_interval_minutes: int = 15
    start_hour: int = 9
    end_hour: int = 17
    active_days: List[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    merge_lookback_days: int = 7
    # None: same as merge_lookback_days. Larger than the fetch bound has no effect (logged).
    display_lookback_days: Optional[int] = None
    rate_limits: Dict[str, int] = field(default_factory=lambda: {p.value: n for p, n in DEFAULT_RATE_LIMITS.items()})
    review_fetch_concurrency: int = 6
    page_size: int = 50
    github_search_limit: int = 100
    bitbucket_repo_page_delay_s: float = 0.2
    wake_delay_s: float = 5.0
    debounce_s: float = 0.35
    freshness_s: float = 30.0
    initial_delay_s: float = 0.5
    badge_count_mode: BadgeCountMode = BadgeCountMode.ACTIONABLE
    show_to_review: bool = True
    show_waiting: bool = True
    show_my_prs: bool = True
    show_team: bool = True
    show_merged: bool = True
    show_snoozed: bool = False
    bitbucket_username: Optional[str] = None
    gitlab_base_url: Optional[str] = None

    @property
    def effective_refresh_interval_minutes(self) -> int:
        return max(int(self.refresh_interval_minutes), int(self.minimum_refresh_interval_minutes))

    @property
    def effective_display_lookback_days(self) -> int:
        if self.display_lookback_days is None:
            return int(self.merge_lookback_days)
        return int(self.display_lookback_days)

    def rate_limit_for(self, provider: ProviderType) -> int:
        return int(self.rate_limits.get(provider.value, DEFAULT_RATE_LIMITS[provider]))

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Settings":
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in dict(raw or {}).items():
            if key not in known:
                _logger.warning("Ignoring unknown setting %r", key)
                continue
            kwargs[key] = value
        if "badge_count_mode" in kwargs:
            kwargs["badge_count_mode"] = BadgeCountMode(str(kwargs["badge_count_mode"]))
        if "rate_limits" in kwargs:
            merged = {p.value: n for p, n in DEFAULT_RATE_LIMITS.items()}
            merged.update({str(k): int(v) for k, v in dict(kwargs["rate_limits"] or {}).items()})
            kwargs["rate_limits"] = merged
        if "active_days" in kwargs:
            kwargs["active_days"] = sorted({int(d) for d in kwargs["active_days"] or []})
        settings = cls(**kwargs)
        settings.validate()
        return settings

    def validate(self) -> None:
        if not (0 <= int(self.start_hour) <= 23 and 0 <= int(self.end_hour) <= 23):
            raise ValueError(f"start_hour/end_hour must be 0..23 (got {self.start_hour}/{self.end_hour})")
        bad_days = [d for d in self.active_days if not 1 <= int(d) <= 7]
        if bad_days:
            raise ValueError(f"active_days must be ISO weekdays 1..7 (got {bad_days})")
        if int(self.merge_lookback_days) < 0:
            raise ValueError("merge_lookback_days must be >= 0")

    def to_dict(self) -> Dict[str, Any]:
        d = dataclasses.asdict(self)
        d["badge_count_mode"] = self.badge_count_mode.value
        return d

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Settings":
        p = Path(path) if path is not None else default_config_path()
        if not p.exists():
            return cls()
        raw = yaml.safe_load(p.read_text()) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{p}: expected a mapping at top level")
        return cls.from_dict(raw)

    def save(self, path: Optional[Path] = None) -> Path:
        p = Path(path) if path is not None else default_config_path()
        atomic_write_text(p, yaml.safe_dump(self.to_dict(), sort_keys=True))
        return p
