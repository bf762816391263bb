# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Snooze store: item id -> expiry instant.

Entries whose expiry is <= now are logically absent. They are purged on load and
before every filter pass (`purge_expired`), and the file is rewritten when that
changed anything.

On disk:
  {"version": 1, "items": {"github:acme/orbit#12": "2026-01-25T09:00:00+00:00"}}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

from common import parse_iso8601, resolve_state_path

from .store_base import BaseDiskStore

_logger = logging.getLogger(__name__)


class SnoozeStore(BaseDiskStore):
    def __init__(
        self,
        store_file: Optional[Path] = None,
        *,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(store_file=store_file or resolve_state_path("snoozes.json"), schema_version=1)
        self._now = now

    def _after_load(self) -> None:
        if self._purge_locked(self._now()):
            self._persist()

    def _purge_locked(self, now: datetime) -> int:
        expired = [k for k, v in self._items.items() if (parse_iso8601(v) or now) <= now]
        for k in expired:
            del self._items[k]
        if expired:
            self._dirty = True
            _logger.debug("Purged %d expired snooze(s)", len(expired))
        return len(expired)

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Drop expired entries and save if anything changed. Returns the number removed."""
        with self._mu:
            self._load_once()
            removed = self._purge_locked(now or self._now())
            self._persist()
            return removed

    def snooze(self, item_id: str, until: datetime) -> None:
        if until.tzinfo is None:
            until = until.astimezone()
        with self._mu:
            self._load_once()
            self._items[str(item_id)] = until.isoformat()
            self._dirty = True
            self._persist()

    def unsnooze(self, item_id: str) -> bool:
        with self._mu:
            self._load_once()
            if self._items.pop(str(item_id), None) is None:
                return False
            self._dirty = True
            self._persist()
            return True

    def active(self, now: Optional[datetime] = None) -> Dict[str, datetime]:
        """Snapshot of entries that are still in effect at `now`."""
        now = now or self._now()
        with self._mu:
            self._load_once()
            out: Dict[str, datetime] = {}
            for k, v in self._items.items():
                until = parse_iso8601(v)
                if until is not None and until > now:
                    out[k] = until
            return out

    def is_snoozed(self, item_id: str, now: Optional[datetime] = None) -> bool:
        return str(item_id) in self.active(now)
