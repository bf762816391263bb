"""Open pull requests list API (REST).

Resource:
  GET /repos/{owner}/{repo}/pulls?state=open&per_page=100&page=N

Example API Response:
  [
    {
      "id": 1986543210,
      "number": 1234,
      "title": "Fix KV router race",
      "state": "open",
      "draft": false,
      "html_url": "https://github.com/acme/orbit/pull/1234",
      "updated_at": "2026-01-24T10:15:30Z",
      "merged_at": null,
      "user": {"id": 42, "login": "octocat", "avatar_url": "https://avatars.githubusercontent.com/u/42"},
      "requested_reviewers": [{"id": 7, "login": "me"}],
      "assignees": []
    }
  ]

Paging:
  page + per_page; keep going while a page comes back full.
"""

from __future__ import annotations

from typing import Any, Dict, List, TYPE_CHECKING

from common_http import expect_list

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient


PER_PAGE = 100


async def list_open_pulls(client: "GitHubAPIClient", *, owner: str, repo: str) -> List[Dict[str, Any]]:
    endpoint = f"/repos/{owner}/{repo}/pulls"
    out: List[Dict[str, Any]] = []
    page = 1
    while True:
        data = await client.transport.get_json(
            endpoint,
            {"state": "open", "per_page": str(PER_PAGE), "page": str(page)},
            label="pulls_list",
        )
        rows = expect_list(data, provider=client.provider, endpoint=endpoint)
        out.extend(r for r in rows if isinstance(r, dict))
        if len(rows) < PER_PAGE:
            return out
        page += 1
