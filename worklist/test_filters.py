"""
Pytest tests for worklist/filters.py.

Run from the repo root:
    pytest worklist/test_filters.py -v
"""

import dataclasses
from datetime import datetime, timezone

from common_types import BadgeCountMode, PRState
from conftest import make_item
from worklist.config import Settings
from worklist.filters import SNOOZED_GROUP, FilterOptions, apply_filters, badge_count, count_by_state, group_items

NOW = datetime.now(timezone.utc)


def _ids(items):
    return [i.id for i in items]


def test_unknown_items_are_never_shown():
    items = [make_item("a", state=PRState.UNKNOWN), make_item("b")]
    assert _ids(apply_filters(items, snoozed_ids=[], options=FilterOptions(), now=NOW)) == ["b"]


def test_toggles_hide_their_state():
    items = [
        make_item("review", state=PRState.NEEDS_REVIEW),
        make_item("team", state=PRState.TEAM_OTHER),
        make_item("mine", state=PRState.AUTHORED),
    ]
    options = FilterOptions(show_team=False, show_my_prs=False)
    assert _ids(apply_filters(items, snoozed_ids=[], options=options, now=NOW)) == ["review"]


def test_snoozed_items_are_dropped_or_tagged():
    items = [make_item("a", minutes_ago=1), make_item("b", minutes_ago=2)]

    hidden = apply_filters(items, snoozed_ids={"a"}, options=FilterOptions(), now=NOW)
    assert _ids(hidden) == ["b"]

    shown = apply_filters(items, snoozed_ids={"a"}, options=FilterOptions(show_snoozed=True), now=NOW)
    assert [(i.id, i.is_snoozed) for i in shown] == [("a", True), ("b", False)]
    assert items[0].is_snoozed is False


def test_snoozed_items_still_obey_toggles_and_display_lookback():
    items = [
        make_item("team", state=PRState.TEAM_OTHER),
        make_item("old-merged", state=PRState.MERGED_NEEDS_REVIEW, minutes_ago=60 * 24 * 30),
        make_item("review", state=PRState.NEEDS_REVIEW),
    ]
    snoozed = {"team", "old-merged", "review"}
    options = FilterOptions(show_team=False, show_snoozed=True, display_lookback_days=7)
    shown = apply_filters(items, snoozed_ids=snoozed, options=options, now=NOW)
    assert [(i.id, i.is_snoozed) for i in shown] == [("review", True)]


def test_merged_items_older_than_display_lookback_are_dropped():
    items = [
        make_item("fresh", state=PRState.MERGED_NEEDS_REVIEW, minutes_ago=60 * 24 * 2),
        make_item("stale", state=PRState.MERGED_NEEDS_REVIEW, minutes_ago=60 * 24 * 4),
        make_item("old-open", state=PRState.NEEDS_REVIEW, minutes_ago=60 * 24 * 30),
    ]
    options = FilterOptions(display_lookback_days=3)
    assert _ids(apply_filters(items, snoozed_ids=[], options=options, now=NOW)) == ["fresh", "old-open"]


def test_sorted_newest_first_with_stable_ties():
    a = make_item("b", minutes_ago=5)
    b = dataclasses.replace(make_item("a"), last_activity=a.last_activity)
    c = make_item("c", minutes_ago=1)
    assert _ids(apply_filters([a, b, c], snoozed_ids=[], options=FilterOptions(), now=NOW)) == ["c", "a", "b"]


def test_group_items_keeps_state_order_and_snoozed_group_last():
    items = apply_filters(
        [
            make_item("team", state=PRState.TEAM_OTHER, minutes_ago=1),
            make_item("review", state=PRState.NEEDS_REVIEW, minutes_ago=2),
            make_item("snoozed", state=PRState.NEEDS_REVIEW, minutes_ago=3),
        ],
        snoozed_ids={"snoozed"},
        options=FilterOptions(show_snoozed=True),
        now=NOW,
    )
    groups = group_items(items)
    assert list(groups) == [PRState.NEEDS_REVIEW.value, PRState.TEAM_OTHER.value, SNOOZED_GROUP]
    assert _ids(groups[SNOOZED_GROUP]) == ["snoozed"]


def test_badge_count_modes():
    items = apply_filters(
        [
            make_item("review", state=PRState.NEEDS_REVIEW),
            make_item("merged", state=PRState.MERGED_NEEDS_REVIEW),
            make_item("waiting", state=PRState.WAITING),
            make_item("snoozed", state=PRState.NEEDS_REVIEW),
        ],
        snoozed_ids={"snoozed"},
        options=FilterOptions(show_snoozed=True),
        now=NOW,
    )
    assert badge_count(items, BadgeCountMode.ACTIONABLE) == 2
    assert badge_count(items, BadgeCountMode.ALL) == 4
    assert count_by_state(items)[PRState.NEEDS_REVIEW] == 2


def test_options_from_settings():
    settings = Settings(show_waiting=False, merge_lookback_days=10, display_lookback_days=None)
    options = FilterOptions.from_settings(settings)
    assert options.show_waiting is False
    assert options.display_lookback_days == 10
    assert options.state_visible(PRState.UNKNOWN) is False
