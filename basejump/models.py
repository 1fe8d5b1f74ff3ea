"""Domain models for Basejump.

These types are the shared contract between the webhook route, the
orchestrator, and the rebase executor. All of them describe one request and
are discarded when it finishes. Nothing here is ever persisted.
"""
from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict

from basejump.errors import FailureKind


class OutcomeKind(str, enum.Enum):
    """Tag of a ``RebaseOutcome``."""

    NOT_NEEDED = "not_needed"
    PERFORMED = "performed"
    CONFLICT = "conflict"
    REMOTE_CHANGED = "remote_changed"


class RebaseOutcome(BaseModel):
    """Tagged result of one rebase attempt.

    ``commit_sha`` is only set for ``CONFLICT`` and names the commit that
    could not be replayed.
    """

    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    commit_sha: str | None = None

    @classmethod
    def not_needed(cls) -> RebaseOutcome:
        return cls(kind=OutcomeKind.NOT_NEEDED)

    @classmethod
    def performed(cls) -> RebaseOutcome:
        return cls(kind=OutcomeKind.PERFORMED)

    @classmethod
    def conflict(cls, commit_sha: str) -> RebaseOutcome:
        return cls(kind=OutcomeKind.CONFLICT, commit_sha=commit_sha)

    @classmethod
    def remote_changed(cls) -> RebaseOutcome:
        return cls(kind=OutcomeKind.REMOTE_CHANGED)


class CommitVerificationRecord(BaseModel):
    """Verification facts GitHub reports for one commit of a pull request."""

    model_config = ConfigDict(frozen=True)

    sha: str
    verified: bool = False
    reason: str | None = None

    @property
    def is_valid(self) -> bool:
        """True only when GitHub verified the commit AND the reason is ``valid``."""
        return self.verified and self.reason == "valid"


class BranchRef(BaseModel):
    """A ``base`` or ``head`` reference of a pull request."""

    ref: str
    sha: str | None = None


class PullRequest(BaseModel):
    """The subset of GitHub's pull request object Basejump reads."""

    number: int
    base: BranchRef
    head: BranchRef


class RebaseCommand(BaseModel):
    """Facts extracted from an ``issue_comment.created`` webhook that asked for a rebase."""

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    pr_number: int
    comment_id: int
    body: str
    clone_url: str
    installation_id: int | None = None


class RebaseRequest(BaseModel):
    """Immutable description of one rebase attempt.

    ``remote_uri`` carries credentials and must never be logged unredacted.
    ``git_config`` is the ordered list of ``key=value`` directives applied to
    every git invocation, identity and signing included.
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    pr_number: int
    feat_branch: str
    base_branch: str
    base_sha: str | None = None
    head_sha: str | None = None
    remote_uri: str
    git_config: tuple[str, ...] = ()


class RequestState(str, enum.Enum):
    """States of the request orchestrator, in the order they can be visited."""

    START = "start"
    ACKNOWLEDGED = "acknowledged"
    NECESSITY_CHECKED = "necessity_checked"
    EXIT_NOT_NEEDED = "exit_not_needed"
    POLICY_RESOLVED = "policy_resolved"
    WORKSPACE_ACQUIRED = "workspace_acquired"
    EXECUTED = "executed"
    PUBLISHED = "published"
    NOTIFIED_SUCCESS = "notified_success"
    NOTIFIED_FAILURE = "notified_failure"
    CLEANED_UP = "cleaned_up"
    TERMINAL = "terminal"


class RequestReport(BaseModel):
    """What one request did, returned by the orchestrator for logs and tests."""

    outcome: RebaseOutcome | None = None
    failure: FailureKind | None = None
    states: list[RequestState] = []
    duration_ms: int = 0
