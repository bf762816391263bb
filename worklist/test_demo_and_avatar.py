"""
Pytest tests for worklist/demo_data.py and worklist/avatar_cache.py.

Run from the repo root:
    pytest worklist/test_demo_and_avatar.py -v
"""

import asyncio
from datetime import datetime, timezone

import aiohttp
import pytest

from common_types import PRState, ProviderType
from conftest import FakeResponse
from worklist import demo_data
from worklist.avatar_cache import AvatarCache

NOW = datetime(2026, 1, 19, 10, 0, tzinfo=timezone.utc)


# ============================================================================
# Demo data
# ============================================================================

def test_demo_dataset_covers_every_provider_and_state():
    items = demo_data.demo_items([], now=NOW)
    assert len(items) == 12
    assert {i.provider for i in items} == set(ProviderType)
    assert {i.state for i in items} == {
        PRState.NEEDS_REVIEW,
        PRState.WAITING,
        PRState.AUTHORED,
        PRState.TEAM_OTHER,
        PRState.MERGED_NEEDS_REVIEW,
    }
    assert len({i.id for i in items}) == 12
    assert all(i.id.startswith("demo:") for i in items)


def test_demo_items_follow_monitored_repositories():
    monitored = [r for r in demo_data.monitored_repositories() if r.provider == ProviderType.GITLAB]
    items = demo_data.demo_items(monitored, now=NOW)
    assert {i.repository for i in items} == {"keystone-auth", "handbook"}


def test_demo_timestamps_are_relative_to_now():
    items = demo_data.demo_items([], now=NOW)
    assert all(i.last_activity <= NOW for i in items)
    assert items[0].last_activity > items[-1].last_activity


def test_demo_repository_search():
    assert [r.name for r in demo_data.search_repositories("", ProviderType.BITBUCKET)] == ["ledger-api", "ops-console"]
    assert [r.name for r in demo_data.search_repositories("BEACON", ProviderType.GITHUB)] == ["beacon-web"]
    assert demo_data.search_repositories("beacon", ProviderType.GITLAB) == []


# ============================================================================
# Avatar cache
# ============================================================================

@pytest.mark.asyncio
async def test_avatar_is_downloaded_once_for_concurrent_callers(fake_session):
    fake_session.add("/a.png", FakeResponse(200, raw="PNGDATA"), delay_s=0.02)
    cache = AvatarCache(fake_session)

    results = await asyncio.gather(*[cache.fetch("https://img.example.com/a.png") for _ in range(3)])

    assert results == [b"PNGDATA"] * 3
    assert len(fake_session.calls) == 1
    assert "https://img.example.com/a.png" in cache


@pytest.mark.asyncio
async def test_avatar_cache_evicts_least_recently_used(fake_session):
    fake_session.add(".png", lambda call: FakeResponse(200, raw=call.path))
    cache = AvatarCache(fake_session, max_entries=2)

    await cache.fetch("https://img.example.com/1.png")
    await cache.fetch("https://img.example.com/2.png")
    assert cache.get_cached("https://img.example.com/1.png") == b"/1.png"
    await cache.fetch("https://img.example.com/3.png")

    assert len(cache) == 2
    assert "https://img.example.com/1.png" in cache
    assert "https://img.example.com/2.png" not in cache


@pytest.mark.asyncio
async def test_failed_avatar_download_is_not_cached(fake_session):
    fake_session.add("/missing.png", FakeResponse(404, raw=""))
    fake_session.add("/broken.png", lambda call: aiohttp.ClientConnectionError("reset"))
    cache = AvatarCache(fake_session)

    assert await cache.fetch("https://img.example.com/missing.png") is None
    assert await cache.fetch("https://img.example.com/broken.png") is None
    assert await cache.fetch("") is None
    assert len(cache) == 0
