"""
Pytest tests for common_gitlab (GitLabAPIClient + merge request APIs).

Run from the repo root:
    pytest common_gitlab/test_gitlab_client.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from common_errors import ApiError, Unauthorized
from common_gitlab import GitLabAPIClient, is_draft_merge_request
from common_types import MonitoredRepository, PRState, ProviderType
from conftest import FakeResponse

NOW = datetime(2026, 1, 25, 12, 0, tzinfo=timezone.utc)
ME = {"id": 7, "username": "me", "name": "Me Myself", "avatar_url": "https://gitlab/avatars/7"}
REPO = MonitoredRepository(
    id="555", workspace="acme", slug="keystone", name="keystone", full_name="acme/keystone", provider=ProviderType.GITLAB
)


def _iso(dt):
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _mr(iid, *, state="opened", author_id=11, reviewers=(7,), assignees=(), status="mergeable", title=None, draft=False, days_ago=0):
    ts = _iso(NOW - timedelta(days=days_ago, hours=1))
    return {
        "id": 9000 + iid,
        "iid": iid,
        "title": title or f"MR {iid}",
        "state": state,
        "draft": draft,
        "web_url": f"https://gitlab.com/acme/keystone/-/merge_requests/{iid}",
        "updated_at": ts,
        "merged_at": ts if state == "merged" else None,
        "detailed_merge_status": status,
        "author": {"id": author_id, "name": f"Author {author_id}"},
        "reviewers": [{"id": i} for i in reviewers],
        "assignees": [{"id": i} for i in assignees],
    }


def _client(session, **kwargs):
    return GitLabAPIClient("glpat-test", session=session, now=lambda: NOW, **kwargs)


def _setup(session, *, opened=(), merged=(), approvals=None, reviewers=None):
    session.add("/user", ME)
    session.add("/merge_requests", list(opened), when=lambda call: call.query.get("state") == "opened")
    session.add("/merge_requests", list(merged), when=lambda call: call.query.get("state") == "merged")
    session.add("/approvals", approvals if approvals is not None else {"approved_by": []})
    session.add("/reviewers", reviewers if reviewers is not None else [])


# ============================================================================
# Classification and lazy reviewer lookup
# ============================================================================

@pytest.mark.asyncio
async def test_my_requested_changes_means_waiting_with_one_reviewer_lookup(fake_session):
    _setup(
        fake_session,
        opened=[_mr(1, status="requested_changes")],
        reviewers=[{"user": {"id": 7}, "state": "requested_changes"}],
    )

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.WAITING
    assert item.has_changes_requested is True
    assert item.id == "gitlab:acme/keystone#1"
    assert len(fake_session.calls_to("/reviewers")) == 1


@pytest.mark.asyncio
async def test_mergeable_mr_skips_reviewer_lookup(fake_session):
    _setup(fake_session, opened=[_mr(2, status="mergeable")])

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.NEEDS_REVIEW
    assert item.has_changes_requested is False
    assert fake_session.calls_to("/reviewers") == []


@pytest.mark.asyncio
async def test_someone_elses_requested_changes_keeps_needs_review(fake_session):
    _setup(
        fake_session,
        opened=[_mr(3, status="requested_changes")],
        reviewers=[{"user": {"id": 8}, "state": "requested_changes"}, {"user": {"id": 7}, "state": "unreviewed"}],
    )

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.NEEDS_REVIEW
    assert item.has_changes_requested is True


@pytest.mark.asyncio
async def test_my_approval_means_waiting(fake_session):
    _setup(fake_session, opened=[_mr(4)], approvals={"approved_by": [{"user": {"id": 7}}, {"user": {"id": 8}}]})

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.WAITING
    assert item.approval_count == 2


@pytest.mark.asyncio
async def test_missing_approvals_endpoint_is_tolerated(fake_session):
    _setup(fake_session, opened=[_mr(5)], approvals=FakeResponse(404, {"message": "404 Not Found"}))

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.NEEDS_REVIEW
    assert item.approval_count == 0


@pytest.mark.asyncio
async def test_reviewer_lookup_failure_is_not_fatal(fake_session):
    _setup(fake_session, opened=[_mr(6, status="requested_changes")], reviewers=FakeResponse(500, {}))

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.NEEDS_REVIEW


@pytest.mark.asyncio
async def test_merged_mr_with_stale_draft_flag_is_merged(fake_session):
    _setup(fake_session, merged=[_mr(7, state="merged", draft=True, days_ago=2)])

    (item,) = await _client(fake_session).fetch_pull_requests(REPO)

    assert item.state == PRState.MERGED_NEEDS_REVIEW
    assert item.is_draft is False


@pytest.mark.asyncio
async def test_merged_query_carries_updated_after(fake_session):
    _setup(fake_session)
    await _client(fake_session, merge_lookback_days=7).fetch_pull_requests(REPO)

    merged_calls = [c for c in fake_session.calls_to("/merge_requests") if c.query.get("state") == "merged"]
    assert len(merged_calls) == 1
    assert merged_calls[0].query["updated_after"].startswith("2026-01-18T12:00:00")
    assert merged_calls[0].query["scope"] == "all"


@pytest.mark.parametrize(
    "mr, expected",
    [
        ({"title": "Draft: new thing"}, True),
        ({"title": "WIP: new thing"}, True),
        ({"title": "Fix", "work_in_progress": True}, True),
        ({"title": "Fix", "draft": True}, True),
        ({"title": "Drafting docs"}, False),
    ],
)
def test_is_draft_merge_request(mr, expected):
    assert is_draft_merge_request(mr) is expected


# ============================================================================
# Paging and errors
# ============================================================================

@pytest.mark.asyncio
async def test_merge_requests_follow_next_page_header(fake_session):
    fake_session.add("/user", ME)
    fake_session.add(
        "/merge_requests",
        FakeResponse(200, [_mr(1)], headers={"X-Next-Page": "2"}),
        when=lambda call: call.query.get("state") == "opened" and call.query.get("page") == "1",
    )
    fake_session.add(
        "/merge_requests",
        FakeResponse(200, [_mr(2)], headers={"X-Next-Page": ""}),
        when=lambda call: call.query.get("state") == "opened",
    )
    fake_session.add("/merge_requests", [], when=lambda call: call.query.get("state") == "merged")
    fake_session.add("/approvals", {"approved_by": []})

    items = await _client(fake_session).fetch_pull_requests(REPO)

    assert [i.id for i in items] == ["gitlab:acme/keystone#1", "gitlab:acme/keystone#2"]


@pytest.mark.asyncio
async def test_unauthorized_second_page_fails_whole_fetch(fake_session):
    fake_session.add("/user", ME)
    fake_session.add(
        "/merge_requests",
        FakeResponse(200, [_mr(1)], headers={"X-Next-Page": "2"}),
        when=lambda call: call.query.get("page") == "1",
    )
    fake_session.add("/merge_requests", FakeResponse(401, {"message": "401 Unauthorized"}))
    fake_session.add("/approvals", {"approved_by": []})

    with pytest.raises(Unauthorized):
        await _client(fake_session).fetch_pull_requests(REPO)


@pytest.mark.asyncio
async def test_non_numeric_project_id_is_skipped(fake_session):
    repo = MonitoredRepository(
        id="acme/keystone", workspace="acme", slug="keystone", name="keystone", full_name="acme/keystone", provider=ProviderType.GITLAB
    )
    assert await _client(fake_session).fetch_pull_requests(repo) == []
    assert fake_session.calls == []


@pytest.mark.asyncio
async def test_user_without_username_is_unauthorized(fake_session):
    fake_session.add("/user", {"id": 7, "username": ""})
    with pytest.raises(Unauthorized):
        await _client(fake_session).fetch_current_user()


@pytest.mark.asyncio
async def test_forbidden_is_a_plain_api_error(fake_session):
    fake_session.add("/user", FakeResponse(403, {"message": "403 Forbidden"}))
    with pytest.raises(ApiError) as ei:
        await _client(fake_session).fetch_current_user()
    assert ei.value.status_code == 403


@pytest.mark.asyncio
async def test_fetch_repositories_passes_search_and_access_level(fake_session):
    fake_session.add(
        "/projects",
        [{"id": 555, "name": "keystone", "path_with_namespace": "acme/keystone", "description": "auth"}],
    )

    repos = await _client(fake_session).fetch_repositories("key")

    assert [(r.id, r.full_name) for r in repos] == [("555", "acme/keystone")]
    (call,) = fake_session.calls
    assert call.query["search"] == "key"
    assert call.query["min_access_level"] == "30"
    assert call.headers["PRIVATE-TOKEN"] == "glpat-test"
