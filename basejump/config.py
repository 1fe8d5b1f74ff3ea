"""Basejump service configuration.

All settings are prefixed with ``BASEJUMP_`` so they never collide with the
variables git itself reads (``GIT_*``). Defaults work for local development
against a personal access token; a deployed GitHub App sets ``APP_ID`` and
``PRIVATE_KEY`` (or ``PRIVATE_KEY_PATH``) instead of ``GITHUB_TOKEN``.
"""
from __future__ import annotations

import logging
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BasejumpSettings(BaseSettings):
    """Runtime configuration for the Basejump webhook service."""

    model_config = SettingsConfigDict(env_prefix="BASEJUMP_", env_file=".env", extra="ignore")

    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000

    # GitHub API + App credentials
    github_api_url: str = "https://api.github.com"
    app_id: int | None = None
    private_key: str | None = None
    private_key_path: Path | None = None
    github_token: str | None = None  # static token, skips installation auth
    webhook_secret: str | None = None
    request_timeout_seconds: float = 30.0

    # Trigger
    command: str = "/rebase"

    # Identity used for rewritten commits. Signing only happens when
    # ``signing_key_id`` is set AND every commit in the PR is verified.
    committer_name: str = "Basejump Bot"
    committer_email: str = "basejump@users.noreply.github.com"
    signing_key_id: str | None = None

    # Parent directory for per-request clones; system temp dir when unset.
    workdir: Path | None = None

    @model_validator(mode="after")
    def _warn_unsigned_webhooks(self) -> "BasejumpSettings":
        """Warn when webhook payloads will be accepted without a signature check."""
        if not self.debug and not self.webhook_secret:
            logging.getLogger(__name__).warning(
                "⚠️ BASEJUMP_WEBHOOK_SECRET is not set; webhook signatures are not verified."
            )
        return self

    def load_private_key(self) -> str | None:
        """Return the App private key PEM, reading ``private_key_path`` if needed."""
        if self.private_key:
            # Keys passed through env files often have literal ``\n`` sequences.
            return self.private_key.replace("\\n", "\n")
        if self.private_key_path is not None:
            return self.private_key_path.read_text()
        return None


def build_git_config(config: BasejumpSettings, sign: bool) -> list[str]:
    """Return the ordered ``key=value`` git directives for one rebase.

    The bot identity is always applied so rewritten commits carry a consistent
    committer. Signing directives depend on the all-or-nothing policy flag:
    either every replayed commit is signed or none is.
    """
    directives = [
        f"user.name={config.committer_name}",
        f"user.email={config.committer_email}",
        f"committer.name={config.committer_name}",
        f"committer.email={config.committer_email}",
    ]
    if sign and config.signing_key_id:
        directives += [
            "commit.gpgsign=true",
            f"user.signingkey={config.signing_key_id}",
        ]
    else:
        directives.append("commit.gpgsign=false")
    return directives


settings = BasejumpSettings()
