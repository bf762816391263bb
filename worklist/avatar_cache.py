# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""In-memory avatar byte cache (LRU, 50 entries by default).

This is the only cache besides the item snapshot itself: nothing is written to disk.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Optional

import aiohttp

_logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 50


class AvatarCache:
    def __init__(self, session: aiohttp.ClientSession, *, max_entries: int = DEFAULT_MAX_ENTRIES, timeout_s: float = 10.0):
        self.session = session
        self.max_entries = int(max_entries)
        self.timeout_s = float(timeout_s)
        self._entries: "OrderedDict[str, bytes]" = OrderedDict()
        self._inflight: Dict[str, "asyncio.Future[Optional[bytes]]"] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def get_cached(self, url: str) -> Optional[bytes]:
        data = self._entries.get(url)
        if data is not None:
            self._entries.move_to_end(url)
        return data

    def _store(self, url: str, data: bytes) -> None:
        self._entries[url] = data
        self._entries.move_to_end(url)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def fetch(self, url: str) -> Optional[bytes]:
        """Avatar bytes for `url` (None when unavailable). Concurrent callers share one download."""
        if not url:
            return None
        cached = self.get_cached(url)
        if cached is not None:
            return cached
        pending = self._inflight.get(url)
        if pending is not None:
            return await asyncio.shield(pending)
        fut: "asyncio.Future[Optional[bytes]]" = asyncio.get_running_loop().create_future()
        self._inflight[url] = fut
        try:
            data = await self._download(url)
            if data is not None:
                self._store(url, data)
            fut.set_result(data)
            return data
        except Exception as e:
            fut.set_exception(e)
            fut.exception()  # mark retrieved; waiters (if any) still see it
            raise
        finally:
            if not fut.done():
                fut.cancel()
            self._inflight.pop(url, None)

    async def _download(self, url: str) -> Optional[bytes]:
        try:
            async with self.session.get(url, timeout=aiohttp.ClientTimeout(total=self.timeout_s)) as response:
                if not 200 <= int(response.status) < 300:
                    _logger.debug("avatar %s -> HTTP %s", url, response.status)
                    return None
                return await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            _logger.debug("avatar %s failed: %s", url, e)
            return None
