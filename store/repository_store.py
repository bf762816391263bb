# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Monitored repository list, ordered and unique by (id, provider).

Listeners registered with `add_listener` are called after every effective add/remove;
the refresh scheduler uses that to debounce a refresh.

On disk:
  {"version": 1, "items": [{"id": "...", "provider": "github", "full_name": "acme/orbit", ...}]}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

from common import resolve_state_path
from common_types import GitRepository, MonitoredRepository, ProviderType

from .store_base import BaseDiskStore

_logger = logging.getLogger(__name__)

RepositoryListener = Callable[[], None]


class RepositoryStore(BaseDiskStore):
    def __init__(self, store_file: Optional[Path] = None):
        super().__init__(store_file=store_file or resolve_state_path("repositories.json"), schema_version=1)
        self._listeners: List[RepositoryListener] = []

    def _empty_items(self) -> List[dict]:
        return []

    def _after_load(self) -> None:
        bad = [d for d in self._items if not isinstance(d, dict)]
        if bad:
            _logger.warning("Dropping %d non-object repository entries: %r", len(bad), bad)
            self._items = [d for d in self._items if isinstance(d, dict)]

    def add_listener(self, fn: RepositoryListener) -> None:
        self._listeners.append(fn)

    def _notify(self) -> None:
        for fn in list(self._listeners):
            fn()

    def _repos_locked(self) -> List[MonitoredRepository]:
        out: List[MonitoredRepository] = []
        for d in self._items:
            try:
                out.append(MonitoredRepository.from_dict(d))
            except (KeyError, ValueError, TypeError) as e:
                _logger.warning("Skipping malformed repository entry %r: %s", d, e)
        return out

    def repositories(self) -> List[MonitoredRepository]:
        with self._mu:
            self._load_once()
            return self._repos_locked()

    def is_monitored(self, repo_id: str, provider: ProviderType) -> bool:
        return any(r.id == str(repo_id) and r.provider == provider for r in self.repositories())

    def add(self, repo: GitRepository) -> bool:
        """Start monitoring `repo`. Returns False if it was already monitored."""
        monitored = MonitoredRepository.from_repository(repo)
        with self._mu:
            self._load_once()
            if any(r.id == monitored.id and r.provider == monitored.provider for r in self._repos_locked()):
                return False
            self._items.append(monitored.to_dict())
            self._dirty = True
            self._persist()
        _logger.info("Monitoring %s %s", monitored.provider.display_name, monitored.full_name)
        self._notify()
        return True

    def remove(self, repo_id: str, provider: ProviderType) -> bool:
        with self._mu:
            self._load_once()
            before = len(self._items)
            self._items = [
                d for d in self._items
                if not (str(d.get("id")) == str(repo_id) and str(d.get("provider") or ProviderType.BITBUCKET.value) == provider.value)
            ]
            if len(self._items) == before:
                return False
            self._dirty = True
            self._persist()
        self._notify()
        return True
