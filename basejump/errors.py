"""Failure taxonomy for a rebase request.

Every exception that can escape the rebase pipeline is mapped onto exactly one
``FailureKind`` by ``classify_failure``. The orchestrator branches on that
enum, never on exception messages or native git output.

- ``CodeConflictError``   — a commit could not be replayed; only the PR author
                            can fix it. The only failure explained in the PR.
- ``RemoteChangedError``  — the lease check rejected the push because the
                            branch moved while we were rebasing.
- ``HostApiError``        — the GitHub API answered with a non-success status.
- anything else           — unclassified; logged with ``str(exc)``.
"""
from __future__ import annotations

import enum


class FailureKind(str, enum.Enum):
    """Closed set of failure categories the orchestrator reacts to."""

    CODE_CONFLICT = "code_conflict"
    REMOTE_CHANGED = "remote_changed"
    HOST_API = "host_api"
    UNCLASSIFIED = "unclassified"


class RemoteChangeReason(str, enum.Enum):
    """Which side noticed that the remote branch moved."""

    STALE_INFO = "stale_info"  # local client's remote-tracking ref was stale
    REMOTE_REF_MISMATCH = "remote_ref_mismatch"  # server reported a different ref value


class BasejumpError(Exception):
    """Base exception for every classified Basejump failure."""


class GitCommandError(BasejumpError):
    """Raised when a ``git`` subprocess exits non-zero.

    ``output`` joins stdout and stderr because git splits diagnostics between
    them inconsistently (``CONFLICT`` lines go to stdout during a rebase,
    push rejections go to stderr).
    """

    def __init__(self, command: list[str], returncode: int, stdout: str, stderr: str) -> None:
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"git {' '.join(command)} failed (exit {returncode}): {self.output.strip()}"
        )

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class CodeConflictError(BasejumpError):
    """Raised when a commit conflicts while being replayed onto the base branch.

    ``message`` keeps the native rebase output for the logs; only
    ``commit_sha`` is ever shown to users.
    """

    def __init__(self, message: str, commit_sha: str) -> None:
        super().__init__(message)
        self.commit_sha = commit_sha

    @property
    def short_sha(self) -> str:
        return self.commit_sha[:7]


class RemoteChangedError(BasejumpError):
    """Raised when the force-with-lease push is rejected by the lease check."""

    def __init__(self, message: str, reason: RemoteChangeReason) -> None:
        super().__init__(message)
        self.reason = reason


class HostApiError(BasejumpError):
    """Raised when the GitHub API returns a non-success status.

    ``payload`` is the decoded JSON body when the response had one, otherwise
    the raw text.
    """

    def __init__(self, method: str, path: str, status: int, payload: object) -> None:
        self.method = method
        self.path = path
        self.status = status
        self.payload = payload
        super().__init__(f"GitHub API {method} {path} failed with status {status}")


class InstallationTokenError(BasejumpError):
    """Raised when no usable token can be obtained for a webhook's installation."""


def classify_failure(exc: BaseException) -> FailureKind:
    """Map any exception raised during a rebase request onto a ``FailureKind``."""
    if isinstance(exc, CodeConflictError):
        return FailureKind.CODE_CONFLICT
    if isinstance(exc, RemoteChangedError):
        return FailureKind.REMOTE_CHANGED
    if isinstance(exc, HostApiError):
        return FailureKind.HOST_API
    return FailureKind.UNCLASSIFIED
