# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Active-hours gate.

`[start_hour, end_hour)` on active ISO weekdays (Monday=1 .. Sunday=7), local time.
A window with start_hour > end_hour wraps past midnight (e.g. 22 -> 6); start == end
is an empty window. The weekday test uses the current calendar day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import FrozenSet, Iterable, Optional

MAX_SCAN_DAYS = 7


@dataclass(frozen=True)
class ActiveHours:
    start_hour: int = 9
    end_hour: int = 17
    active_days: FrozenSet[int] = field(default_factory=lambda: frozenset({1, 2, 3, 4, 5}))

    @classmethod
    def of(cls, start_hour: int, end_hour: int, active_days: Iterable[int]) -> "ActiveHours":
        return cls(start_hour=int(start_hour), end_hour=int(end_hour), active_days=frozenset(int(d) for d in active_days))

    def hour_in_window(self, hour: int) -> bool:
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        # Overnight.
        return hour >= self.start_hour or hour < self.end_hour

    def is_active(self, now: datetime) -> bool:
        return now.isoweekday() in self.active_days and self.hour_in_window(now.hour)

    def next_start(self, now: datetime) -> Optional[datetime]:
        """Next window start on an active day, scanning forward at most a week."""
        base = now.replace(hour=self.start_hour, minute=0, second=0, microsecond=0)
        for offset in range(MAX_SCAN_DAYS + 1):
            candidate = base + timedelta(days=offset)
            if candidate <= now:
                continue
            if candidate.isoweekday() in self.active_days:
                return candidate
        return None

    def next_active_text(self, now: datetime) -> str:
        candidate = self.next_start(now)
        if candidate is None:
            return f"Sleeping until {self.start_hour:02d}:00"
        days_ahead = (candidate.date() - now.date()).days
        if days_ahead == 0:
            return f"Sleeping until {candidate.strftime('%H:%M')}"
        if days_ahead == 1:
            return f"Sleeping until Tomorrow, {candidate.strftime('%H')}:00"
        return f"Sleeping until {candidate.strftime('%A, %H:%M')}"
