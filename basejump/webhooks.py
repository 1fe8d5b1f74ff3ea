"""GitHub webhook verification and ``/rebase`` command extraction.

GitHub signs every delivery with ``X-Hub-Signature-256: sha256=<hmac_hex>``
computed over the raw request body with the App's webhook secret. The body
must be verified byte-for-byte before it is parsed.

Only one event is acted on: ``issue_comment`` with action ``created`` whose
body starts with the configured command, posted on an issue that is a pull
request. Everything else parses to ``None``.
"""
from __future__ import annotations

import hashlib
import hmac
import logging

from basejump.models import RebaseCommand

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"


def sign_payload(secret: str, body: bytes) -> str:
    """Compute the ``sha256=<hex>`` signature GitHub sends for *body*."""
    mac = hmac.new(secret.encode(), body, hashlib.sha256)
    return f"sha256={mac.hexdigest()}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of a delivery's ``X-Hub-Signature-256`` header."""
    if not signature:
        return False
    return hmac.compare_digest(sign_payload(secret, body), signature)


def parse_rebase_command(
    event: str | None,
    payload: dict[str, object],
    command: str = "/rebase",
) -> RebaseCommand | None:
    """Return the ``RebaseCommand`` a delivery asks for, or None if it asks for nothing.

    Pull request comments are just issue comments with code, so the trigger
    is an ``issue_comment`` event whose issue carries a ``pull_request`` key.
    """
    if event != "issue_comment" or payload.get("action") != "created":
        return None

    comment = payload.get("comment")
    issue = payload.get("issue")
    repository = payload.get("repository")
    if not isinstance(comment, dict) or not isinstance(issue, dict) or not isinstance(repository, dict):
        logger.warning("⚠️  issue_comment payload missing comment/issue/repository")
        return None

    body = comment.get("body") or ""
    if not isinstance(body, str) or not body.startswith(command):
        return None
    if not issue.get("pull_request"):
        return None

    pr_number = issue.get("number")
    comment_id = comment.get("id")
    if not isinstance(pr_number, int) or not isinstance(comment_id, int):
        logger.warning("⚠️  issue_comment payload missing issue number or comment id")
        return None

    owner = repository.get("owner")
    installation = payload.get("installation")
    installation_id = installation.get("id") if isinstance(installation, dict) else None
    return RebaseCommand(
        owner=str(owner.get("login", "")) if isinstance(owner, dict) else "",
        repo=str(repository.get("name", "")),
        pr_number=pr_number,
        comment_id=comment_id,
        body=body,
        clone_url=str(repository.get("clone_url", "")),
        installation_id=installation_id if isinstance(installation_id, int) else None,
    )
