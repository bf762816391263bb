"""Merge request APIs (REST v4).

Resources:
  GET /projects/{id}/merge_requests?state=opened&scope=all&per_page=50
  GET /projects/{id}/merge_requests?state=merged&scope=all&updated_after=<iso>&per_page=50
  GET /projects/{id}/merge_requests/{iid}/approvals
  GET /projects/{id}/merge_requests/{iid}/reviewers

Example API Response (merge_requests):
  [
    {
      "id": 123456,
      "iid": 42,
      "title": "Draft: rotate signing keys",
      "state": "opened",
      "draft": true,
      "work_in_progress": true,
      "web_url": "https://gitlab.com/acme/forge-auth/-/merge_requests/42",
      "updated_at": "2026-01-24T10:15:30.000Z",
      "merged_at": null,
      "detailed_merge_status": "requested_changes",
      "author": {"id": 11, "name": "Jamie Doe", "avatar_url": "https://..."},
      "reviewers": [{"id": 7, "name": "Me"}],
      "assignees": []
    }
  ]

Example API Response (approvals):
  {"approved": true, "approved_by": [{"user": {"id": 7, "name": "Me"}}]}

Example API Response (reviewers):
  [{"user": {"id": 7, "name": "Me"}, "state": "requested_changes"}]

Paging:
  GitLab returns the next page number in the `X-Next-Page` header (empty on the last page).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from common_errors import ApiError
from common_http import expect_dict, expect_list

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitLabAPIClient


async def list_all_pages(client: "GitLabAPIClient", endpoint: str, params: Dict[str, str], *, label: str) -> List[Dict[str, Any]]:
    """Follow `X-Next-Page` until exhausted. Any failing page fails the whole call."""
    out: List[Dict[str, Any]] = []
    page = "1"
    while page:
        resp = await client.transport.get(endpoint, {**params, "page": page}, label=label)
        rows = expect_list(resp.data, provider=client.provider, endpoint=endpoint)
        out.extend(r for r in rows if isinstance(r, dict))
        page = resp.header("X-Next-Page").strip()
    return out


async def list_merge_requests(
    client: "GitLabAPIClient",
    *,
    project_id: int,
    state: str,
    updated_after: Optional[datetime] = None,
    per_page: int = 50,
) -> List[Dict[str, Any]]:
    params = {"state": state, "scope": "all", "per_page": str(int(per_page))}
    if updated_after is not None:
        params["updated_after"] = updated_after.isoformat()
    return await list_all_pages(
        client, f"/projects/{int(project_id)}/merge_requests", params, label=f"merge_requests.{state}"
    )


async def get_approvals(client: "GitLabAPIClient", *, project_id: int, iid: int) -> Optional[Dict[str, Any]]:
    """Approval state for one MR, or None when the endpoint is unavailable (404, e.g. CE tiers)."""
    endpoint = f"/projects/{int(project_id)}/merge_requests/{int(iid)}/approvals"
    try:
        data = await client.transport.get_json(endpoint, label="mr_approvals")
    except ApiError as e:
        if e.status_code == 404:
            return None
        raise
    return expect_dict(data, provider=client.provider, endpoint=endpoint)


async def list_reviewers(client: "GitLabAPIClient", *, project_id: int, iid: int) -> List[Dict[str, Any]]:
    endpoint = f"/projects/{int(project_id)}/merge_requests/{int(iid)}/reviewers"
    data = await client.transport.get_json(endpoint, label="mr_reviewers")
    return [r for r in expect_list(data, provider=client.provider, endpoint=endpoint) if isinstance(r, dict)]
