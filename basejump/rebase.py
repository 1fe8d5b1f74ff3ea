"""Rebase executor and publish guard.

``rebase()`` is the whole working-copy side of a request:

1. acquire a private workspace,
2. clone the repository into it with the request's git directives,
3. check out the feature branch,
4. replay it onto ``origin/<base>`` with native ``git rebase``,
5. when commits were actually rewritten, push with ``--force-with-lease``,
6. remove the workspace, whatever happened.

Git's own rebase semantics are kept untouched: merge commits in the replayed
range are dropped, commits whose patch is already on the base are skipped,
and commits created with ``--allow-empty`` stay as empty commits.

Clone and checkout are not guarded. The webhook was sent for a comment on an
open PR, so the repository and branch exist; a branch deleted in the few
seconds since is reported as an unclassified failure.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path

from basejump import git_output
from basejump.auth import redact_uri
from basejump.errors import CodeConflictError, GitCommandError, RemoteChangedError
from basejump.git import GitClient
from basejump.log import Logger
from basejump.models import OutcomeKind, RebaseOutcome, RequestState
from basejump.workspace import workspace

_logger = logging.getLogger(__name__)

REMOTE = "origin"
# Ref git keeps pointing at the commit being applied while a rebase is stopped.
_REBASE_HEAD = "REBASE_HEAD"


async def clone_and_checkout(
    path: Path,
    remote_uri: str,
    feat_branch: str,
    git_config: Sequence[str] = (),
    logger: Logger | None = None,
) -> GitClient:
    """Clone *remote_uri* into *path*, check out *feat_branch*, return the client."""
    log = logger or _logger
    git = GitClient(path, git_config)

    log.debug("Cloning %s", redact_uri(remote_uri))
    await git.clone(remote_uri)

    log.debug("Checking out %s", feat_branch)
    await git.checkout(feat_branch)
    return git


async def do_rebase(git: GitClient, base_branch: str) -> RebaseOutcome:
    """Rebase the checked-out branch onto ``origin/<base_branch>``.

    Returns ``NOT_NEEDED`` when git reports the branch already up to date,
    otherwise ``PERFORMED``.

    Raises
    ------
    CodeConflictError
        When a commit conflicts. ``commit_sha`` is read from ``REBASE_HEAD``
        so it names the commit that failed, not HEAD or the last good one.
    GitCommandError
        For any other rebase failure.
    """
    try:
        output = await git.rebase(f"{REMOTE}/{base_branch}")
    except GitCommandError as exc:
        if git_output.is_conflict(exc.output):
            conflict_sha = await git.rev_parse(_REBASE_HEAD)
            raise CodeConflictError(exc.output, conflict_sha) from exc
        raise

    if git_output.is_up_to_date(output):
        return RebaseOutcome.not_needed()
    return RebaseOutcome.performed()


async def force_push_with_lease(git: GitClient, branch: str) -> None:
    """Publish *branch*, overwriting the remote only if it still matches our fetch.

    Raises
    ------
    RemoteChangedError
        When the lease check fails, either because the local remote-tracking
        ref is stale or because the server reports a different ref value.
    GitCommandError
        For any other push failure.
    """
    try:
        await git.push(REMOTE, branch, "--force-with-lease")
    except GitCommandError as exc:
        reason = git_output.remote_change_reason(exc.output)
        if reason is not None:
            raise RemoteChangedError(exc.output, reason) from exc
        raise


async def rebase(
    remote_uri: str,
    feat_branch: str,
    base_branch: str,
    git_config: Sequence[str] = (),
    logger: Logger | None = None,
    label: str = "",
    root: Path | None = None,
    progress: Callable[[RequestState], None] | None = None,
) -> RebaseOutcome:
    """Rebase *feat_branch* onto *base_branch* in a throwaway clone and publish it.

    Args:
        remote_uri: URI to clone from and push to, credentials included
                    (e.g. ``https://x-access-token:<t>@github.com/o/r.git``).
        feat_branch: Branch to rewrite, e.g. ``feature``.
        base_branch: Branch to replay onto, e.g. ``main``.
        git_config: ``key=value`` directives applied to every git command.
        logger: Request-scoped logger.
        label: Request identity mixed into the workspace directory name.
        root: Parent directory for the workspace (system temp dir if None).
        progress: Called with each orchestrator state the executor reaches.

    Returns ``PERFORMED`` after a successful push, or ``NOT_NEEDED`` without
    pushing anything. Conflicts and lease failures are raised, not returned.
    """
    log = logger or _logger
    mark = progress or (lambda state: None)
    async with workspace(label, root) as path:
        mark(RequestState.WORKSPACE_ACQUIRED)
        git = await clone_and_checkout(path, remote_uri, feat_branch, git_config, log)

        log.debug("Rebasing %s onto %s", feat_branch, base_branch)
        outcome = await do_rebase(git, base_branch)
        mark(RequestState.EXECUTED)

        if outcome.kind is OutcomeKind.PERFORMED:
            log.debug("Pushing %s to %s", feat_branch, REMOTE)
            await force_push_with_lease(git, feat_branch)
            mark(RequestState.PUBLISHED)
        return outcome
