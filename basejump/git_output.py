"""Translation of native git diagnostics into Basejump's outcome vocabulary.

This is the only module that pattern-matches text printed by ``git``. The
rest of the service depends on ``RebaseOutcome`` and the exception types in
``basejump.errors``. If a git release rewords one of these messages, this is
the single place to update.
"""
from __future__ import annotations

import re

from basejump.errors import RemoteChangeReason

# ``git rebase`` prints this when HEAD already contains the upstream.
_UP_TO_DATE = re.compile(r"^Current branch .* is up to date", re.MULTILINE)

# Every merge-strategy conflict line starts with ``CONFLICT (<kind>):``.
_CONFLICT_MARKER = "CONFLICT"

# Local client: the remote-tracking ref no longer matches what the server has.
_STALE_INFO = re.compile(r"\[rejected\].*\(stale info\)")

# Server side: the ref moved between our fetch and our push.
_REF_MISMATCH = re.compile(r"is at [a-f0-9]{40} but expected [a-f0-9]{40}")


def is_up_to_date(output: str) -> bool:
    """True when a successful ``git rebase`` reported that nothing needed replaying."""
    return bool(_UP_TO_DATE.search(output))


def is_conflict(output: str) -> bool:
    """True when a failed ``git rebase`` stopped on a merge conflict."""
    return _CONFLICT_MARKER in output


def remote_change_reason(output: str) -> RemoteChangeReason | None:
    """Return why a ``--force-with-lease`` push was rejected, or None if it wasn't the lease."""
    if _STALE_INFO.search(output):
        return RemoteChangeReason.STALE_INFO
    if _REF_MISMATCH.search(output):
        return RemoteChangeReason.REMOTE_REF_MISMATCH
    return None
