#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Base class for disk-backed JSON state stores with locking and persistence.

Shared by:
- repository_store.py  (monitored repositories)
- snooze_store.py      (item id -> snooze expiry)
- rate_limit_store.py  (hourly call counters)

Unlike a cache, a store's in-memory view is authoritative: `_persist()` writes it
wholesale (no merge with disk), otherwise deleted entries would come back.
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from threading import Lock
from typing import Any, Dict, IO, Optional

try:
    import fcntl  # type: ignore
except ImportError:  # pragma: no cover - non-POSIX: skip inter-process locking
    fcntl = None  # type: ignore

_logger = logging.getLogger(__name__)


class BaseDiskStore:
    """Thread-safe JSON store with inter-process locking.

    Provides:
    - Thread-safe in-memory state guarded by `_mu`
    - Disk persistence with inter-process locking (fcntl) and atomic replace
    - Lazy loading (load on first access)

    On-disk schema: {"version": <int>, "items": <subclass-defined JSON>}
    """

    def __init__(self, *, store_file: Path, schema_version: int = 1):
        self._mu = Lock()
        self._store_file = Path(store_file)
        self._schema_version = schema_version
        self._items: Any = self._empty_items()
        self._loaded = False
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._store_file

    def _empty_items(self) -> Any:
        """Empty `items` payload. Subclasses override (dict by default)."""
        return {}

    def _lock_file_path(self) -> Path:
        return self._store_file.with_name(f".{self._store_file.name}.lock")

    def _acquire_disk_lock(self, *, timeout_s: float = 10.0) -> Optional[IO[str]]:
        """Best-effort inter-process lock. Returns the lock file handle, or None on timeout."""
        if fcntl is None:
            return None
        lock_path = self._lock_file_path()
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(lock_path, "w")
        start = time.monotonic()
        while time.monotonic() - start < float(timeout_s):
            try:
                fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return fh
            except OSError:
                time.sleep(0.05)
        fh.close()
        _logger.warning("Timed out waiting for lock %s; writing without it", lock_path)
        return None

    def _release_disk_lock(self, lock_fh: Optional[IO[str]]) -> None:
        if lock_fh is None:
            return
        try:
            if fcntl is not None:
                fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
        finally:
            lock_fh.close()

    def _load_once(self) -> None:
        """Load state from disk (once per instance). Caller holds `_mu`."""
        if self._loaded:
            return
        self._loaded = True
        if not self._store_file.exists():
            self._items = self._empty_items()
            return
        try:
            raw = json.loads(self._store_file.read_text() or "{}")
        except (OSError, ValueError) as e:
            _logger.warning("Ignoring unreadable state file %s: %s", self._store_file, e)
            raw = {}
        items = raw.get("items") if isinstance(raw, dict) else None
        empty = self._empty_items()
        self._items = items if isinstance(items, type(empty)) else empty
        self._after_load()

    def _after_load(self) -> None:
        """Hook for validation right after loading (e.g. purge expired entries). Caller holds `_mu`."""

    def _persist(self) -> None:
        """Write in-memory state to disk (atomic tmp + rename). Caller holds `_mu`."""
        if not self._dirty:
            return
        self._store_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {"version": self._schema_version, "items": self._items}
        lock_fh = self._acquire_disk_lock(timeout_s=10.0)
        try:
            tmp = f"{self._store_file}.tmp.{os.getpid()}"
            Path(tmp).write_text(json.dumps(payload, separators=(",", ":"), sort_keys=True))
            os.replace(tmp, str(self._store_file))
            self._dirty = False
        finally:
            self._release_disk_lock(lock_fh)
