"""Request orchestrator — one ``/rebase`` comment, start to finish.

State machine::

    START → ACKNOWLEDGED → NECESSITY_CHECKED ─┬→ EXIT_NOT_NEEDED ──────────────┐
                                              └→ POLICY_RESOLVED              │
                                                 → WORKSPACE_ACQUIRED         │
                                                 → EXECUTED → PUBLISHED       │
                                                 → NOTIFIED_SUCCESS ──────────┤
    (any failure after START) → NOTIFIED_FAILURE ─────────────────────────────┤
                                                                CLEANED_UP ←──┘
                                                                → TERMINAL

User-visible signals on the triggering comment:

- 👀  ``eyes``     — request received; deleted again on every path.
- 🚀  ``rocket``   — the branch was rebased and pushed (or was already even).
- 😕  ``confused`` — nothing to do, or the rebase failed.

Only a code conflict is explained in a PR comment. Every other failure is
visible in the logs and through the failed marker, so internal diagnostics
never leak into the PR discussion.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from basejump import rebase as rebase_executor
from basejump.auth import authenticated_clone_url
from basejump.config import BasejumpSettings, build_git_config, settings
from basejump.errors import (
    CodeConflictError,
    HostApiError,
    RemoteChangedError,
    classify_failure,
)
from basejump.github import GitHubClient, Reaction
from basejump.log import Logger, request_logger
from basejump.models import (
    OutcomeKind,
    PullRequest,
    RebaseCommand,
    RebaseOutcome,
    RebaseRequest,
    RequestReport,
    RequestState,
)
from basejump.necessity import is_rebase_needed
from basejump.verification import are_commits_verified

logger = logging.getLogger(__name__)


def conflict_comment(commit_sha: str) -> str:
    """Body of the PR comment posted when *commit_sha* could not be replayed."""
    return "\n\n".join(
        [
            f"Failed to rebase: Conflict detected when applying commit {commit_sha[:7]}.",
            "Please resolve the conflict and push again.",
        ]
    )


def build_request(
    command: RebaseCommand,
    pr: PullRequest,
    token: str,
    config: BasejumpSettings,
    sign: bool,
) -> RebaseRequest:
    """Assemble the immutable ``RebaseRequest`` for one attempt."""
    return RebaseRequest(
        owner=command.owner,
        repo=command.repo,
        pr_number=command.pr_number,
        feat_branch=pr.head.ref,
        base_branch=pr.base.ref,
        base_sha=pr.base.sha,
        head_sha=pr.head.sha,
        remote_uri=authenticated_clone_url(command.clone_url, token),
        git_config=tuple(build_git_config(config, sign)),
    )


@asynccontextmanager
async def acknowledged(
    github: GitHubClient,
    comment_id: int,
    log: Logger,
) -> AsyncIterator[int | None]:
    """React with 👀 on entry and always remove that reaction on exit.

    Yields the reaction id (None if GitHub returned none). The removal runs on
    success, on every failure, and on cancellation. A failed removal is logged
    rather than raised so it never masks the request's own outcome.
    """
    reaction_id = await github.create_comment_reaction(comment_id, Reaction.RECEIVED)
    try:
        yield reaction_id
    finally:
        if reaction_id is not None:
            try:
                await asyncio.shield(github.delete_comment_reaction(comment_id, reaction_id))
            except Exception as exc:
                log.error("❌ Failed to remove received reaction %d: %s", reaction_id, exc)


async def handle_rebase_command(
    github: GitHubClient,
    command: RebaseCommand,
    token: str,
    config: BasejumpSettings | None = None,
    root: Path | None = None,
) -> RequestReport:
    """Run one rebase request through the full state machine.

    Args:
        github: Client already scoped to ``command.owner/command.repo``.
        command: The parsed ``/rebase`` comment.
        token: Token embedded into the clone URI for fetch and push.
        config: Settings; the process-wide ``settings`` when None.
        root: Parent directory for the workspace; ``config.workdir`` when None.

    Never raises for request failures; they are reported through reactions,
    logs, and the returned ``RequestReport``. Task cancellation propagates
    after cleanup.
    """
    config = config or settings
    started = time.monotonic()
    log = request_logger(logger, command.owner, command.repo, command.pr_number)
    report = RequestReport(states=[RequestState.START])
    enter = report.states.append
    log.info("Received rebase request")

    try:
        async with acknowledged(github, command.comment_id, log):
            enter(RequestState.ACKNOWLEDGED)
            try:
                report.outcome = await _run_pipeline(
                    github, command, token, config, root or config.workdir, log, enter
                )
            except Exception as exc:
                report.failure = classify_failure(exc)
                report.outcome = _failure_outcome(exc)
                await _notify_failure(github, command, exc, log)
                enter(RequestState.NOTIFIED_FAILURE)
    except Exception as exc:
        if report.failure is None:
            # The received marker itself could not be posted.
            report.failure = classify_failure(exc)
            log.error("Failed to rebase: %s", exc)
            await _react_failed_quietly(github, command, log)
            enter(RequestState.NOTIFIED_FAILURE)
        else:
            log.error("❌ Failed to report rebase failure: %s", exc)
    finally:
        enter(RequestState.CLEANED_UP)
        report.duration_ms = int((time.monotonic() - started) * 1000)
        enter(RequestState.TERMINAL)
        log.info("Completed in %dms", report.duration_ms)

    return report


async def _run_pipeline(
    github: GitHubClient,
    command: RebaseCommand,
    token: str,
    config: BasejumpSettings,
    root: Path | None,
    log: Logger,
    enter: Callable[[RequestState], None],
) -> RebaseOutcome:
    """NecessityChecked → … → NotifiedSuccess; raises on any failure."""
    log.info("Checking rebase necessity")
    pr = await github.get_pull_request(command.pr_number)
    needed = await is_rebase_needed(github, pr.base.ref, pr.head.ref)
    enter(RequestState.NECESSITY_CHECKED)

    if not needed:
        log.warning("PR is already up to date with base branch, exiting")
        await github.create_comment_reaction(command.comment_id, Reaction.NOT_NEEDED)
        enter(RequestState.EXIT_NOT_NEEDED)
        return RebaseOutcome.not_needed()

    log.info("Proceeding with rebase")
    sign = await are_commits_verified(github, command.pr_number, log)
    request = build_request(command, pr, token, config, sign)
    enter(RequestState.POLICY_RESOLVED)
    if sign and not config.signing_key_id:
        log.warning("⚠️  All commits verified but no signing key configured; rebasing unsigned")

    outcome = await rebase_executor.rebase(
        request.remote_uri,
        request.feat_branch,
        request.base_branch,
        request.git_config,
        log,
        label=f"{request.owner}-{request.repo}-pr{request.pr_number}",
        root=root,
        progress=enter,
    )
    if outcome.kind is OutcomeKind.NOT_NEEDED:
        log.info("Branch was already up to date after clone; nothing pushed")

    await github.create_comment_reaction(command.comment_id, Reaction.SUCCESS)
    enter(RequestState.NOTIFIED_SUCCESS)
    return outcome


def _failure_outcome(exc: Exception) -> RebaseOutcome | None:
    """The tagged outcome a failure corresponds to, if it has one."""
    if isinstance(exc, CodeConflictError):
        return RebaseOutcome.conflict(exc.commit_sha)
    if isinstance(exc, RemoteChangedError):
        return RebaseOutcome.remote_changed()
    return None


async def _notify_failure(
    github: GitHubClient,
    command: RebaseCommand,
    exc: Exception,
    log: Logger,
) -> None:
    """Log *exc*, explain it in the PR when it is a conflict, react 😕.

    The failed marker is posted even when the conflict comment cannot be.
    """
    if isinstance(exc, CodeConflictError):
        body = conflict_comment(exc.commit_sha)
        log.error(body.replace("\n\n", " "))
        log.debug("Native rebase output: %s", exc)
        try:
            await github.create_issue_comment(command.pr_number, body)
        except Exception as comment_exc:
            log.error("❌ Could not post conflict comment: %s", comment_exc)
    elif isinstance(exc, RemoteChangedError):
        log.error("Failed to rebase: branch changes detected since rebase was triggered")
        log.debug("Push output: %s", exc)
    elif isinstance(exc, HostApiError):
        log.error(
            "Failed to rebase: %s\n%s", exc, json.dumps(exc.payload, indent=2, default=str)
        )
    else:
        log.error("Failed to rebase: %s", exc)

    await github.create_comment_reaction(command.comment_id, Reaction.FAILED)


async def _react_failed_quietly(github: GitHubClient, command: RebaseCommand, log: Logger) -> None:
    try:
        await github.create_comment_reaction(command.comment_id, Reaction.FAILED)
    except Exception as exc:
        log.error("❌ Could not react to comment %d: %s", command.comment_id, exc)
