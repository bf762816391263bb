"""PR reviews API (REST).

Resource:
  GET /repos/{owner}/{repo}/pulls/{pr_number}/reviews?per_page=100&page=N

Example API Response:
  [
    {
      "id": 987654321,
      "user": {"id": 7, "login": "me"},
      "state": "APPROVED",
      "submitted_at": "2026-01-24T10:15:30Z"
    },
    {
      "id": 987654322,
      "user": {"id": 8, "login": "another-reviewer"},
      "state": "CHANGES_REQUESTED",
      "submitted_at": "2026-01-24T09:00:00Z"
    }
  ]

Review states: "APPROVED", "CHANGES_REQUESTED", "COMMENTED", "DISMISSED", "PENDING".
Only the latest review per user counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple, TYPE_CHECKING

from common_classification import normalize_user_id
from common_http import expect_list

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient


PER_PAGE = 100


@dataclass(frozen=True)
class ReviewSummary:
    acted_by_me: bool = False
    has_changes_requested: bool = False
    approval_count: int = 0


EMPTY_REVIEW_SUMMARY = ReviewSummary()


async def list_pr_reviews(client: "GitHubAPIClient", *, owner: str, repo: str, pr_number: int) -> List[Dict[str, Any]]:
    endpoint = f"/repos/{owner}/{repo}/pulls/{int(pr_number)}/reviews"
    out: List[Dict[str, Any]] = []
    page = 1
    while True:
        data = await client.transport.get_json(
            endpoint, {"per_page": str(PER_PAGE), "page": str(page)}, label="pr_reviews"
        )
        rows = expect_list(data, provider=client.provider, endpoint=endpoint)
        out.extend(r for r in rows if isinstance(r, dict))
        if len(rows) < PER_PAGE:
            return out
        page += 1


def summarize_reviews(reviews: List[Dict[str, Any]], *, my_user_id: str) -> ReviewSummary:
    """Reduce a review list to what classification needs (latest review per user)."""
    latest_by_user: Dict[str, Tuple[str, str]] = {}
    for r in reviews:
        user = r.get("user") if isinstance(r.get("user"), dict) else {}
        uid = normalize_user_id((user or {}).get("id"))
        if not uid:
            continue
        state = str(r.get("state") or "").strip().upper()
        submitted_at = str(r.get("submitted_at") or "").strip()
        if not submitted_at:
            continue
        prev = latest_by_user.get(uid)
        if prev is None or submitted_at >= prev[0]:
            latest_by_user[uid] = (submitted_at, state)

    me = normalize_user_id(my_user_id)
    mine = latest_by_user.get(me, ("", ""))[1] if me else ""
    states = [state for (_, state) in latest_by_user.values()]
    return ReviewSummary(
        acted_by_me=mine in ("APPROVED", "CHANGES_REQUESTED"),
        has_changes_requested="CHANGES_REQUESTED" in states,
        approval_count=sum(1 for s in states if s == "APPROVED"),
    )


async def get_review_summary(client: "GitHubAPIClient", *, owner: str, repo: str, pr_number: int) -> ReviewSummary:
    reviews = await list_pr_reviews(client, owner=owner, repo=repo, pr_number=pr_number)
    me = await client.fetch_current_user()
    return summarize_reviews(reviews, my_user_id=me.id)
