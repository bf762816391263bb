"""
Pytest tests for worklist/cli.py (offline paths only: demo mode and local state edits).

Run from the repo root:
    pytest worklist/test_cli.py -v
"""

import json
from datetime import datetime, timedelta, timezone

from common_types import ProviderType
from conftest import make_item
from store.repository_store import RepositoryStore
from store.snooze_store import SnoozeStore
from worklist import demo_data
from worklist.cli import _cli, format_items


def test_demo_once_json(capsys):
    assert _cli(["--demo-data", "--once", "--json"]) == 0

    out = json.loads(capsys.readouterr().out)
    assert len(out["items"]) == 12
    assert out["status"] == demo_data.DEMO_TOOLTIP
    assert out["error"] is None
    assert out["badge"] == 4


def test_default_mode_is_once(capsys, monkeypatch):
    monkeypatch.setenv("PR_WORKLIST_DEMO_MODE", "true")
    assert _cli([]) == 0
    assert "== needs_review (2)" in capsys.readouterr().out


def test_list_repos_without_token_exits_1(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("PR_WORKLIST_GITLAB_TOKEN", raising=False)
    monkeypatch.delenv("PR_WORKLIST_DEMO_MODE", raising=False)

    assert _cli(["--list-repos", "gitlab"]) == 1
    assert "No GitLab token configured" in caplog.text


def test_add_and_remove_repository(tmp_path):
    state = tmp_path / "cli-state"
    assert _cli(["--state-dir", str(state), "--add-repo", "github", "acme/orbit"]) == 0
    assert _cli(["--state-dir", str(state), "--add-repo", "github", "acme/orbit"]) == 0

    (repo,) = RepositoryStore(state / "repositories.json").repositories()
    assert (repo.id, repo.full_name, repo.provider) == ("acme/orbit", "acme/orbit", ProviderType.GITHUB)

    assert _cli(["--state-dir", str(state), "--remove-repo", "github", "acme/orbit"]) == 0
    assert _cli(["--state-dir", str(state), "--remove-repo", "github", "acme/orbit"]) == 1


def test_gitlab_repository_needs_numeric_id(tmp_path):
    state = tmp_path / "cli-state"
    assert _cli(["--state-dir", str(state), "--add-repo", "gitlab", "platform/forge"]) == 2
    assert _cli(["--state-dir", str(state), "--add-repo", "gitlab", "platform/forge", "--repo-id", "1234"]) == 0


def test_snooze_and_unsnooze(tmp_path):
    state = tmp_path / "cli-state"
    item_id = "github:acme/orbit#7"
    assert _cli(["--state-dir", str(state), "--snooze", item_id, "--hours", "2"]) == 0

    active = SnoozeStore(state / "snoozes.json").active()
    assert item_id in active
    assert active[item_id] - datetime.now(timezone.utc) <= timedelta(hours=2)

    assert _cli(["--state-dir", str(state), "--unsnooze", item_id]) == 0
    assert _cli(["--state-dir", str(state), "--unsnooze", item_id]) == 1


def test_show_config(capsys):
    assert _cli(["--show-config"]) == 0
    assert json.loads(capsys.readouterr().out)["refresh_interval_minutes"] == 60


def test_invalid_config_exits_2(tmp_path):
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("start_hour: 99\n")
    assert _cli(["--config", str(cfg), "--show-config"]) == 2


def test_format_items_groups_and_flags():
    now = datetime.now(timezone.utc)
    text = format_items([make_item("github:acme/orbit#1", minutes_ago=90, author="Ada Lovelace")], now=now)
    assert text.splitlines()[0] == "== needs_review (1)"
    assert "[AL] Ada Lovelace" in text
    assert " 1h " in text
    assert format_items([]) == "(no pull requests)"
