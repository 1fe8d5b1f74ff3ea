"""Rebase necessity gate.

Asks GitHub how far the head branch is behind its base before anything is
cloned. A branch that is 0 commits behind cannot change under a rebase, so
the request stops here without touching a working tree or pushing a no-op.

This is a cost-saving check, not a correctness one: the branch can move after
it runs, which the rebase itself and the lease-checked push still handle.
"""
from __future__ import annotations

import logging

from basejump.github import GitHubClient

logger = logging.getLogger(__name__)


async def commits_behind(github: GitHubClient, base: str, head: str) -> int:
    """Return how many commits on *base* are missing from *head*."""
    behind_by = await github.compare_commits(base, head)
    logger.debug("✅ %s is %d commit(s) behind %s", head, behind_by, base)
    return behind_by


async def is_rebase_needed(github: GitHubClient, base: str, head: str) -> bool:
    """True when *head* is at least one commit behind *base*."""
    return await commits_behind(github, base, head) > 0
