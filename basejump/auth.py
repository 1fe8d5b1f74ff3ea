"""GitHub App authentication and credential handling.

A GitHub App authenticates in two steps: a short-lived RS256 JWT signed with
the App's private key proves the App's identity, and is exchanged for an
installation access token scoped to the repository that sent the webhook.
That token is used both for REST calls and, embedded in the clone URL, for
``git clone`` / ``git push``.

When ``BASEJUMP_GITHUB_TOKEN`` is set the exchange is skipped and the static
token is used as-is (local development).

The token value is never logged; ``redact_uri`` strips it from any string
before it reaches a log line or an exception message.
"""
from __future__ import annotations

import logging
import re
import time
from urllib.parse import urlsplit, urlunsplit

import httpx
import jwt

from basejump.config import BasejumpSettings
from basejump.errors import HostApiError, InstallationTokenError

logger = logging.getLogger(__name__)

# GitHub rejects App JWTs valid for more than 10 minutes; back-date ``iat``
# by a minute to tolerate clock drift.
_JWT_BACKDATE_SECONDS = 60
_JWT_LIFETIME_SECONDS = 540

_CREDENTIALS_IN_URI = re.compile(r"(https?://)[^/@\s]+@")


def create_app_jwt(app_id: int, private_key: str, now: float | None = None) -> str:
    """Return an RS256 JWT that authenticates as the GitHub App itself."""
    issued_at = int(now if now is not None else time.time()) - _JWT_BACKDATE_SECONDS
    payload = {
        "iat": issued_at,
        "exp": issued_at + _JWT_BACKDATE_SECONDS + _JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    return jwt.encode(payload, private_key, algorithm="RS256")


async def get_installation_token(
    config: BasejumpSettings,
    installation_id: int | None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Return a token usable for REST calls and git pushes for one installation.

    Raises
    ------
    InstallationTokenError
        When neither a static token nor App credentials are configured, or
        GitHub's response carries no token.
    HostApiError
        When GitHub rejects the token exchange.
    """
    if config.github_token:
        return config.github_token

    private_key = config.load_private_key()
    if config.app_id is None or not private_key:
        raise InstallationTokenError(
            "No GitHub credentials configured. Set BASEJUMP_GITHUB_TOKEN, or "
            "BASEJUMP_APP_ID together with BASEJUMP_PRIVATE_KEY / BASEJUMP_PRIVATE_KEY_PATH."
        )
    if installation_id is None:
        raise InstallationTokenError("Webhook payload has no installation id")

    path = f"/app/installations/{installation_id}/access_tokens"
    headers = {
        "Authorization": f"Bearer {create_app_jwt(config.app_id, private_key)}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    async with httpx.AsyncClient(
        base_url=config.github_api_url,
        timeout=config.request_timeout_seconds,
        transport=transport,
    ) as client:
        resp = await client.post(path, headers=headers)

    if not resp.is_success:
        raise HostApiError("POST", path, resp.status_code, _decode(resp))

    token = _decode(resp)
    if not isinstance(token, dict) or not isinstance(token.get("token"), str):
        raise InstallationTokenError(
            f"Installation {installation_id} access token response has no token"
        )
    logger.debug("✅ Installation token issued for installation %d (token ***)", installation_id)
    return str(token["token"])


def authenticated_clone_url(clone_url: str, token: str) -> str:
    """Embed *token* into an https clone URL so git can fetch and push with it."""
    parts = urlsplit(clone_url)
    if parts.scheme not in ("http", "https"):
        return clone_url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return urlunsplit((parts.scheme, f"x-access-token:{token}@{host}", parts.path, parts.query, parts.fragment))


def redact_uri(text: str) -> str:
    """Strip ``user:password@`` credentials from every URL inside *text*."""
    return _CREDENTIALS_IN_URI.sub(r"\1", text)


def _decode(resp: httpx.Response) -> object:
    try:
        return resp.json()
    except ValueError:
        return resp.text
