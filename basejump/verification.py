"""Commit verification classifier: decides whether rewritten commits get signed.

A rebase rewrites every commit it replays, which throws away the author's
signatures. Basejump re-signs the rewritten commits with its own key, but only
when GitHub already verified *every* commit of the pull request: signing
unverified work with the bot's key would launder it. The decision is
all-or-nothing for the whole PR, never per commit.

Lookup failures fail closed: when verification cannot be checked, the PR is
treated as unverified.
"""
from __future__ import annotations

import logging

from basejump.github import GitHubClient
from basejump.log import Logger
from basejump.models import CommitVerificationRecord

_logger = logging.getLogger(__name__)


def partition_commits(
    records: list[CommitVerificationRecord],
) -> tuple[list[CommitVerificationRecord], list[CommitVerificationRecord]]:
    """Split *records* into ``(verified, unverified)``, preserving order."""
    verified: list[CommitVerificationRecord] = []
    unverified: list[CommitVerificationRecord] = []
    for record in records:
        (verified if record.is_valid else unverified).append(record)
    return verified, unverified


def signing_policy(records: list[CommitVerificationRecord]) -> bool:
    """True iff there is at least one commit and every commit is verified as ``valid``."""
    _, unverified = partition_commits(records)
    return bool(records) and not unverified


async def are_commits_verified(
    github: GitHubClient,
    pr_number: int,
    logger: Logger | None = None,
) -> bool:
    """Return the signing policy for PR *pr_number*; never raises on lookup errors."""
    log = logger or _logger
    try:
        records = await github.list_pull_request_commits(pr_number)
    except Exception as exc:
        log.error(
            "❌ Error checking commits: %s. Proceeding as if commits are unverified", exc
        )
        return False

    _, unverified = partition_commits(records)
    for record in unverified:
        log.warning("⚠️  Commit %s is unverified with reason %r", record.sha, record.reason)

    return signing_policy(records)
