"""
CLI wrapper for the worklist core.

CLI glue lives in its own module so `dashboard.py` / `scheduler.py` stay reusable from
other front-ends (menu bar apps, status bars, ...).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional, Sequence

import aiohttp

from common import is_demo_mode
from common_errors import ProviderError
from common_types import GitRepository, ProviderType, PullRequestItem
from store.rate_limit_store import RateLimitStore
from store.repository_store import RepositoryStore
from store.snooze_store import SnoozeStore
from worklist.config import Settings, default_config_path
from worklist.credentials import CredentialStore
from worklist.dashboard import Dashboard
from worklist.filters import group_items
from worklist.rate_limit import RateLimitTracker
from worklist.scheduler import RefreshScheduler

logger = logging.getLogger(__name__)

WAKE_WATCH_TICK_S = 10.0
WAKE_WATCH_SLACK_S = 30.0


def _age(ts: datetime, now: datetime) -> str:
    mins = max(0, int((now - ts).total_seconds() // 60))
    if mins < 60:
        return f"{mins}m"
    if mins < 24 * 60:
        return f"{mins // 60}h"
    return f"{mins // (24 * 60)}d"


def format_items(items: Sequence[PullRequestItem], *, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    if not items:
        return "(no pull requests)"
    lines: List[str] = []
    for group, members in group_items(items).items():
        lines.append(f"== {group} ({len(members)})")
        for i in members:
            flags = "".join(
                [
                    "D" if i.is_draft else "-",
                    "C" if i.has_changes_requested else "-",
                ]
            )
            lines.append(
                f"  {flags} {_age(i.last_activity, now):>4} {i.provider.value:<9} {i.repository:<20} "
                f"{i.title[:60]:<60} [{i.initials}] {i.author} ({i.approval_count}/{i.reviewer_count})"
            )
            lines.append(f"         {i.url}")
    return "\n".join(lines)


def _build_dashboard(args: argparse.Namespace, settings: Settings, session: Optional[aiohttp.ClientSession]) -> Dashboard:
    state_dir: Optional[Path] = Path(args.state_dir) if args.state_dir else None

    def _path(name: str) -> Optional[Path]:
        return state_dir / name if state_dir is not None else None

    credentials = CredentialStore(usernames={ProviderType.BITBUCKET: settings.bitbucket_username})
    tracker = RateLimitTracker(
        {p: settings.rate_limit_for(p) for p in ProviderType},
        store=RateLimitStore(_path("rate_limits.json")),
    )
    return Dashboard(
        settings=settings,
        repositories=RepositoryStore(_path("repositories.json")),
        snoozes=SnoozeStore(_path("snoozes.json")),
        credentials=credentials,
        rate_tracker=tracker,
        session=session,
        demo_mode=bool(args.demo_data) or is_demo_mode(),
    )


def _print_result(dashboard: Dashboard, *, as_json: bool) -> None:
    if as_json:
        print(
            json.dumps(
                {
                    "items": [i.to_dict() for i in dashboard.items],
                    "error": dashboard.last_error.message if dashboard.last_error else None,
                    "status": dashboard.status_text,
                    "badge": dashboard.badge_count,
                    "last_updated": dashboard.last_updated.isoformat() if dashboard.last_updated else None,
                },
                indent=2,
            )
        )
        return
    print(format_items(dashboard.items))
    print(f"-- {dashboard.status_text} | badge={dashboard.badge_count}")


def _print_stats(dashboard: Dashboard) -> None:
    print(json.dumps({"rate_limits": dashboard.rate_tracker.snapshot(), "overall": dashboard.rate_tracker.overall_warning_level.value}, indent=2))
    if dashboard.last_result is not None and dashboard.last_result.stats:
        print(json.dumps({"rest": dashboard.last_result.stats}, indent=2))


async def _wake_watch(scheduler: RefreshScheduler) -> None:
    """Detect system resume: wall clock jumps ahead much further than our sleep."""
    last = time.time()
    while True:
        await asyncio.sleep(WAKE_WATCH_TICK_S)
        now = time.time()
        if now - last > WAKE_WATCH_TICK_S + WAKE_WATCH_SLACK_S:
            logger.info("System resume detected (%.0fs gap)", now - last)
            scheduler.handle_wake()
        last = now


async def _run_async(args: argparse.Namespace, settings: Settings) -> int:
    timeout = aiohttp.ClientTimeout(total=60)
    connector = aiohttp.TCPConnector(limit=32)
    async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
        dashboard = _build_dashboard(args, settings, session)

        if args.list_repos:
            provider = ProviderType(args.list_repos)
            try:
                repos = await dashboard.search_repositories(provider, args.query)
            except (RuntimeError, ProviderError) as e:
                logger.error("Could not list %s repositories: %s", provider.display_name, e)
                return 1
            if args.json:
                print(json.dumps([r.to_dict() for r in repos], indent=2))
            else:
                for r in repos:
                    print(f"{r.id:<40} {r.full_name}")
            return 0

        if args.once:
            await dashboard.refresh(force=True)
            _print_result(dashboard, as_json=bool(args.json))
            if args.stats:
                _print_stats(dashboard)
            return 0 if dashboard.last_error is None or dashboard.raw_items else 1

        scheduler = RefreshScheduler(dashboard)
        dashboard.repositories.add_listener(scheduler.notify_repositories_changed)
        printed: List[Optional[datetime]] = [None]

        def _on_change(d: Dashboard) -> None:
            if d.is_refreshing or d.last_updated == printed[0]:
                return
            printed[0] = d.last_updated
            _print_result(d, as_json=bool(args.json))

        dashboard.subscribe(_on_change)
        loop = asyncio.get_running_loop()
        stop = asyncio.Event()

        def _reload_settings() -> None:
            logger.info("Reloading settings from %s", args.config or default_config_path())
            dashboard.settings = Settings.load(Path(args.config) if args.config else None)
            scheduler.settings_changed()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)
        loop.add_signal_handler(signal.SIGHUP, _reload_settings)

        scheduler.start()
        watcher = asyncio.ensure_future(_wake_watch(scheduler))
        try:
            await stop.wait()
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            await scheduler.stop()
            dashboard.rate_tracker.flush()
        return 0


def _cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Unified pull/merge request worklist across Bitbucket, GitHub and GitLab.",
        epilog="Examples:\n"
               "  %(prog)s --demo-data --once\n"
               "  %(prog)s --add-repo github acme/orbit\n"
               "  %(prog)s --add-repo gitlab platform/forge-auth --repo-id 1234\n"
               "  echo $TOKEN | %(prog)s --set-token gitlab\n"
               "  %(prog)s --watch -v",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    providers = [p.value for p in ProviderType]
    parser.add_argument("--demo-data", action="store_true", help="Use the built-in demo dataset (no network).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging (per-request REST lines).")
    parser.add_argument("--config", default="", help="Path to config.yaml (default: ~/.config/pr-worklist/config.yaml).")
    parser.add_argument("--state-dir", default="", help="State directory (default: $PR_WORKLIST_STATE_DIR or ~/.cache/pr-worklist).")
    parser.add_argument("--json", action="store_true", help="JSON output.")
    parser.add_argument("--stats", action="store_true", help="With --once: print rate-limit usage and REST call stats.")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Refresh once and print the worklist.")
    mode.add_argument("--watch", action="store_true", help="Keep polling; print the worklist after every refresh.")
    mode.add_argument("--list-repos", choices=providers, help="List repositories you can access on PROVIDER.")
    mode.add_argument("--add-repo", nargs=2, metavar=("PROVIDER", "FULL_NAME"), help="Start monitoring a repository.")
    mode.add_argument("--remove-repo", nargs=2, metavar=("PROVIDER", "REPO_ID"), help="Stop monitoring a repository.")
    mode.add_argument("--snooze", metavar="ITEM_ID", help="Snooze an item (see --hours / --until-tomorrow).")
    mode.add_argument("--unsnooze", metavar="ITEM_ID", help="Remove a snooze.")
    mode.add_argument("--set-token", choices=providers, help="Read a token from stdin and store it for PROVIDER.")
    mode.add_argument("--show-config", action="store_true", help="Print the effective settings as YAML-compatible JSON.")

    parser.add_argument("--query", default=None, help="With --list-repos: substring filter.")
    parser.add_argument("--repo-id", default="", help="With --add-repo: provider repository id (GitLab needs the numeric project id).")
    parser.add_argument("--hours", type=float, default=4.0, help="With --snooze: snooze duration in hours (default: 4).")
    parser.add_argument("--until-tomorrow", action="store_true", help="With --snooze: snooze until 09:00 tomorrow.")
    args = parser.parse_args(list(argv) if argv is not None else None)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )

    try:
        settings = Settings.load(Path(args.config) if args.config else None)
    except ValueError as e:
        logger.error("Invalid settings: %s", e)
        return 2

    if args.show_config:
        print(json.dumps(settings.to_dict(), indent=2, sort_keys=True))
        return 0

    if args.set_token:
        token = sys.stdin.readline().strip()
        if not token:
            logger.error("No token on stdin")
            return 2
        CredentialStore().set_token(ProviderType(args.set_token), token)
        return 0

    if args.add_repo or args.remove_repo or args.snooze or args.unsnooze:
        dashboard = _build_dashboard(args, settings, None)
        if args.add_repo:
            provider, full_name = ProviderType(args.add_repo[0]), args.add_repo[1]
            repo_id = args.repo_id or full_name
            if provider == ProviderType.GITLAB and not str(repo_id).isdigit():
                logger.error("GitLab repositories need --repo-id <numeric project id>")
                return 2
            repo = GitRepository(id=repo_id, name=full_name.rpartition("/")[2], full_name=full_name, provider=provider)
            if not dashboard.repositories.add(repo):
                logger.info("Already monitoring %s", full_name)
            return 0
        if args.remove_repo:
            if not dashboard.repositories.remove(args.remove_repo[1], ProviderType(args.remove_repo[0])):
                logger.error("Not monitored: %s %s", args.remove_repo[0], args.remove_repo[1])
                return 1
            return 0
        if args.snooze:
            if args.until_tomorrow:
                until = dashboard.snooze_until_tomorrow(args.snooze)
            else:
                until = dashboard.snooze(args.snooze, timedelta(hours=float(args.hours)))
            logger.info("Snoozed %s until %s", args.snooze, until.astimezone().strftime("%Y-%m-%d %H:%M"))
            return 0
        if not dashboard.unsnooze(args.unsnooze):
            logger.error("Not snoozed: %s", args.unsnooze)
            return 1
        return 0

    if not (args.once or args.watch or args.list_repos):
        args.once = True
    return asyncio.run(_run_async(args, settings))


def main() -> None:
    raise SystemExit(_cli())
