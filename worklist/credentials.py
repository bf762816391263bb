# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Provider credential lookup.

Token lookup order per provider (first match wins):
  1. $PR_WORKLIST_<PROVIDER>_TOKEN       (e.g. PR_WORKLIST_GITHUB_TOKEN)
  2. <config_home>/<provider>-token      (single line, e.g. ~/.config/github-token)
  3. GitHub only: <config_home>/gh/hosts.yml (GitHub CLI login; oauth_token)

The Bitbucket username (for Basic auth) comes from settings, not from the token file.
`snapshot()` returns frozen credentials for one refresh cycle so a concurrent
`set_token()` can never change credentials halfway through a cycle.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from common import atomic_write_text
from common_types import ProviderCredentials, ProviderType

_logger = logging.getLogger(__name__)


def token_env_var(provider: ProviderType) -> str:
    return f"PR_WORKLIST_{provider.value.upper()}_TOKEN"


class CredentialStore:
    def __init__(
        self,
        *,
        config_home: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        usernames: Optional[Dict[ProviderType, Optional[str]]] = None,
    ):
        self.config_home = Path(config_home) if config_home is not None else Path.home() / ".config"
        self._environ = environ if environ is not None else os.environ
        self._usernames: Dict[ProviderType, Optional[str]] = dict(usernames or {})

    def token_file(self, provider: ProviderType) -> Path:
        return self.config_home / f"{provider.value}-token"

    def _token_from_gh_cli(self) -> Optional[str]:
        """Read the token from GitHub CLI's hosts.yml if available."""
        gh_config_path = self.config_home / "gh" / "hosts.yml"
        if not gh_config_path.exists():
            return None
        try:
            config = yaml.safe_load(gh_config_path.read_text()) or {}
        except (OSError, yaml.YAMLError) as e:
            _logger.debug("Cannot read %s: %s", gh_config_path, e)
            return None
        github_config = config.get("github.com") if isinstance(config, dict) else None
        if not isinstance(github_config, dict):
            return None
        if github_config.get("oauth_token"):
            return str(github_config["oauth_token"])
        for user_config in dict(github_config.get("users") or {}).values():
            if isinstance(user_config, dict) and user_config.get("oauth_token"):
                return str(user_config["oauth_token"])
        return None

    def get_token(self, provider: ProviderType) -> Optional[str]:
        tok = str(self._environ.get(token_env_var(provider)) or "").strip()
        if tok:
            return tok
        path = self.token_file(provider)
        if path.exists():
            try:
                tok = path.read_text().strip()
            except OSError as e:
                _logger.warning("Cannot read %s: %s", path, e)
                tok = ""
            if tok:
                return tok
        if provider == ProviderType.GITHUB:
            return self._token_from_gh_cli()
        return None

    def set_token(self, provider: ProviderType, token: str) -> Path:
        """Store `token` in the provider's token file (mode 0600)."""
        path = self.token_file(provider)
        atomic_write_text(path, str(token).strip() + "\n", mode=0o600)
        _logger.info("Saved %s token to %s", provider.display_name, path)
        return path

    def set_username(self, provider: ProviderType, username: Optional[str]) -> None:
        self._usernames[provider] = username

    def snapshot(self) -> Dict[ProviderType, ProviderCredentials]:
        """Immutable credentials for every provider that has a token."""
        out: Dict[ProviderType, ProviderCredentials] = {}
        for provider in ProviderType:
            tok = self.get_token(provider)
            if tok:
                user = str(self._usernames.get(provider) or "").strip() or None
                out[provider] = ProviderCredentials(token=tok, username=user)
        return out
