# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Persisted hourly rate-limit windows.

On disk:
  {"version": 1, "items": {"github": {"window_start": 1769248800.0, "calls": 312}, "gitlab": {...}}}

The tracker re-validates (reset-if-stale) right after loading; this module only moves bytes.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Tuple

from common import resolve_state_path
from common_types import ProviderType

from .store_base import BaseDiskStore


class RateLimitStore(BaseDiskStore):
    def __init__(self, store_file: Optional[Path] = None):
        super().__init__(store_file=store_file or resolve_state_path("rate_limits.json"), schema_version=1)

    def load(self) -> Dict[ProviderType, Tuple[float, int]]:
        """Return {provider: (window_start epoch seconds, calls)}."""
        with self._mu:
            self._load_once()
            out: Dict[ProviderType, Tuple[float, int]] = {}
            for k, v in self._items.items():
                if not isinstance(v, dict):
                    continue
                try:
                    out[ProviderType(str(k))] = (float(v["window_start"]), max(0, int(v.get("calls") or 0)))
                except (KeyError, TypeError, ValueError):
                    continue
            return out

    def save(self, windows: Dict[ProviderType, Tuple[float, int]]) -> None:
        with self._mu:
            self._load_once()
            self._items = {
                p.value: {"window_start": float(start), "calls": int(calls)} for p, (start, calls) in windows.items()
            }
            self._dirty = True
            self._persist()
