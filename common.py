"""
pr-worklist shared helpers.

Path policy, demo-mode detection, timestamp parsing and atomic file writes used by
the provider clients, the persisted stores and the worklist core.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Sequence

# Global logger for the module
_logger = logging.getLogger(__name__)


# ======================================================================================
# IMPORTANT: State/config location policy (pr-worklist)
#
# Persistent state (monitored repos, snoozes, rate-limit counters) MUST live under:
#   - $PR_WORKLIST_STATE_DIR        (explicit override), else
#   - ~/.cache/pr-worklist          (default)
#
# User-editable config (config.yaml) lives under:
#   - $PR_WORKLIST_CONFIG_DIR       (explicit override), else
#   - ~/.config/pr-worklist         (default)
#
# Tests point both env vars at a tmp_path so they never touch the real home dir.
# ======================================================================================

STATE_DIR_ENV = "PR_WORKLIST_STATE_DIR"
CONFIG_DIR_ENV = "PR_WORKLIST_CONFIG_DIR"
DEMO_MODE_ENV = "PR_WORKLIST_DEMO_MODE"
DEMO_MODE_FLAG = "--demo-data"

APP_NAME = "pr-worklist"


def pr_worklist_state_dir() -> Path:
    """Return the canonical state directory (env override, else ~/.cache/pr-worklist)."""
    override = str(os.environ.get(STATE_DIR_ENV) or "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / APP_NAME


def pr_worklist_config_dir() -> Path:
    """Return the canonical config directory (env override, else ~/.config/pr-worklist)."""
    override = str(os.environ.get(CONFIG_DIR_ENV) or "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / APP_NAME


def resolve_state_path(name: str) -> Path:
    """Resolve a state file name (e.g. `snoozes.json`) under the state directory."""
    return pr_worklist_state_dir() / str(name)


def is_demo_mode(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> bool:
    """Demo mode is on when `--demo-data` is passed or PR_WORKLIST_DEMO_MODE is truthy.

    Truthy values: 1, true, yes, on (trimmed, case-insensitive).
    """
    if argv is not None and DEMO_MODE_FLAG in list(argv):
        return True
    env = os.environ if environ is None else environ
    raw = str(env.get(DEMO_MODE_ENV) or "").strip().lower()
    return raw in ("1", "true", "yes", "on")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    """Parse provider timestamps (`2026-01-05T10:00:00Z`, `...000000+00:00`, `...123Z`).

    Returns None for missing/unparseable input. Naive results are assumed UTC.
    """
    s = str(value or "").strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        _logger.debug("Unparseable timestamp: %r", value)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def atomic_write_text(path: Path, text: str, *, mode: Optional[int] = None) -> None:
    """Write `text` to `path` atomically (tmp file + rename)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = Path(f"{path}.tmp.{os.getpid()}")
    tmp.write_text(text)
    if mode is not None:
        os.chmod(tmp, mode)
    os.replace(str(tmp), str(path))
