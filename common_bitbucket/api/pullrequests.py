"""Pull request + repository listing APIs (Bitbucket Cloud REST 2.0).

Resources:
  GET /repositories/{workspace}/{slug}/pullrequests?state=OPEN&pagelen=50&fields=...
  GET /repositories/{workspace}/{slug}/pullrequests?state=MERGED&q=state="MERGED" AND updated_on > "<iso>"
  GET /repositories?role=member&pagelen=50[&q=name ~ "<query>"]

Example API Response (pullrequests):
  {
    "values": [
      {
        "id": 812,
        "title": "Add retry budget to ingest",
        "state": "OPEN",
        "draft": false,
        "updated_on": "2026-01-24T10:15:30.123456+00:00",
        "author": {"uuid": "{a1b2...}", "display_name": "Jamie Doe", "links": {"avatar": {"href": "https://..."}}},
        "destination": {"repository": {"name": "velocity-api", "full_name": "acme/velocity-api"}},
        "links": {"html": {"href": "https://bitbucket.org/acme/velocity-api/pull-requests/812"}},
        "reviewers": [{"uuid": "{c3d4...}", "display_name": "Me"}],
        "participants": [{"user": {"uuid": "{c3d4...}"}, "role": "REVIEWER", "approved": false, "state": null}]
      }
    ],
    "next": "https://api.bitbucket.org/2.0/repositories/acme/velocity-api/pullrequests?page=2&..."
  }

Paging:
  Opaque cursor URL in `next` (absent on the last page). Any failing page fails the call.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from common_http import expect_dict

if TYPE_CHECKING:  # pragma: no cover
    from .. import BitbucketAPIClient


PR_FIELDS = ",".join(
    [
        "values.id",
        "values.title",
        "values.state",
        "values.author",
        "values.destination",
        "values.comment_count",
        "values.links",
        "values.updated_on",
        "values.reviewers",
        "values.participants",
        "values.draft",
        "next",
    ]
)


async def follow_pages(
    client: "BitbucketAPIClient",
    endpoint: str,
    params: Optional[Dict[str, str]],
    *,
    label: str,
    page_delay_s: float = 0.0,
) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    url: Optional[str] = endpoint
    first = True
    while url:
        if not first:
            await client.transport.sleep(page_delay_s)
        body = expect_dict(
            await client.transport.get_json(url, params if first else None, label=label),
            provider=client.provider,
            endpoint=endpoint,
        )
        values = body.get("values") if isinstance(body.get("values"), list) else []
        out.extend(v for v in values if isinstance(v, dict))
        url = str(body.get("next") or "") or None
        first = False
    return out


async def list_pullrequests(
    client: "BitbucketAPIClient",
    *,
    workspace: str,
    slug: str,
    merged_since: Optional[datetime] = None,
    pagelen: int = 50,
) -> List[Dict[str, Any]]:
    endpoint = f"/repositories/{workspace}/{slug}/pullrequests"
    params = {"pagelen": str(int(pagelen)), "fields": PR_FIELDS}
    if merged_since is None:
        params["state"] = "OPEN"
        label = "pullrequests.open"
    else:
        params["state"] = "MERGED"
        params["q"] = f'state="MERGED" AND updated_on > "{merged_since.isoformat()}"'
        label = "pullrequests.merged"
    return await follow_pages(client, endpoint, params, label=label)


async def list_member_repositories(
    client: "BitbucketAPIClient",
    *,
    query: Optional[str] = None,
    pagelen: int = 50,
    page_delay_s: float = 0.2,
) -> List[Dict[str, Any]]:
    params = {"role": "member", "pagelen": str(int(pagelen))}
    q = str(query or "").strip()
    if q:
        params["q"] = f'name ~ "{q}"'
    return await follow_pages(client, "/repositories", params, label="repositories", page_delay_s=page_delay_s)
