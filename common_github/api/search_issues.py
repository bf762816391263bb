"""Merged pull requests via the issue search API (REST).

Resource:
  GET /search/issues?q=repo:{owner}/{repo} is:pr is:merged updated:>{YYYY-MM-DD}&per_page=N&page=M

Example API Response:
  {
    "total_count": 1,
    "incomplete_results": false,
    "items": [
      {
        "id": 2000000001,
        "number": 1200,
        "title": "Bump protobuf",
        "state": "closed",
        "draft": false,
        "html_url": "https://github.com/acme/orbit/pull/1200",
        "updated_at": "2026-01-22T08:00:00Z",
        "closed_at": "2026-01-22T07:59:00Z",
        "user": {"id": 99, "login": "dependabot"},
        "assignees": [{"id": 7, "login": "me"}],
        "pull_request": {"merged_at": "2026-01-22T07:59:00Z"}
      }
    ]
  }

Notes:
  - The `updated:>` qualifier is the authoritative lookback bound: anything merged
    before the window never comes back from the server.
  - Search items carry no `requested_reviewers`; assignment comes from `assignees`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, TYPE_CHECKING

from common_http import expect_dict

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient


def merged_search_query(*, owner: str, repo: str, since: datetime) -> str:
    return f"repo:{owner}/{repo} is:pr is:merged updated:>{since.strftime('%Y-%m-%d')}"


async def search_merged_pulls(
    client: "GitHubAPIClient",
    *,
    owner: str,
    repo: str,
    since: datetime,
    per_page: int = 100,
) -> List[Dict[str, Any]]:
    endpoint = "/search/issues"
    q = merged_search_query(owner=owner, repo=repo, since=since)
    out: List[Dict[str, Any]] = []
    page = 1
    while True:
        data = await client.transport.get_json(
            endpoint,
            {"q": q, "per_page": str(int(per_page)), "page": str(page)},
            label="search_issues",
        )
        body = expect_dict(data, provider=client.provider, endpoint=endpoint)
        items = body.get("items") if isinstance(body.get("items"), list) else []
        out.extend(i for i in items if isinstance(i, dict))
        total = int(body.get("total_count") or 0)
        if len(items) < int(per_page) or len(out) >= total:
            return out
        page += 1
