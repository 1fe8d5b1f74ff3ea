"""Thin async wrapper around the ``git`` executable.

Every call runs ``git`` through ``asyncio.create_subprocess_exec`` with the
client's configuration directives prepended as ``-c key=value`` pairs, so
identity and signing settings apply to the clone and to every command after
it without touching any global git config.

A non-zero exit raises ``GitCommandError`` carrying both output streams.
Interpreting that output is ``basejump.git_output``'s job, not this module's.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from basejump.auth import redact_uri
from basejump.errors import GitCommandError

logger = logging.getLogger(__name__)

# Never let git block on a credential or editor prompt inside a worker task.
_GIT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_EDITOR": "true",
    "GIT_SEQUENCE_EDITOR": "true",
    "LC_ALL": "C",
}


class GitClient:
    """Run git commands inside one working directory.

    Args:
        cwd: Directory every command runs in. For ``clone`` this is the
             destination, which may be an empty directory.
        config: Ordered ``key=value`` directives passed as ``-c`` options.
    """

    def __init__(self, cwd: Path, config: Sequence[str] = ()) -> None:
        self.cwd = cwd
        self.config = list(config)

    def _command(self, args: Sequence[str]) -> list[str]:
        cmd = ["git"]
        for directive in self.config:
            cmd += ["-c", directive]
        return cmd + list(args)

    async def run(self, *args: str) -> tuple[str, str]:
        """Run ``git <args>`` and return ``(stdout, stderr)``, credentials redacted.

        Raises
        ------
        GitCommandError
            When git exits with a non-zero status.
        """
        cmd = self._command(args)
        safe_args = [redact_uri(a) for a in args]
        logger.debug("⏱️  git %s (cwd=%s)", " ".join(safe_args), self.cwd)

        proc = await asyncio.create_subprocess_exec(
            *cmd,
            cwd=str(self.cwd),
            env={**os.environ, **_GIT_ENV},
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await proc.communicate()
        except asyncio.CancelledError:
            # Don't leave git writing into a workspace that is about to be removed.
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise
        out = redact_uri(stdout.decode(errors="replace"))
        err = redact_uri(stderr.decode(errors="replace"))

        if proc.returncode != 0:
            raise GitCommandError(safe_args, proc.returncode or 1, out, err)
        return out, err

    async def raw(self, *args: str) -> str:
        """Run ``git <args>`` and return stdout and stderr joined."""
        out, err = await self.run(*args)
        return "\n".join(part for part in (out, err) if part)

    async def clone(self, remote_uri: str) -> str:
        """Clone *remote_uri* into ``cwd``."""
        return await self.raw("clone", remote_uri, str(self.cwd))

    async def checkout(self, branch: str) -> str:
        return await self.raw("checkout", branch)

    async def rebase(self, upstream: str) -> str:
        """Replay the current branch onto *upstream* with git's default strategy."""
        return await self.raw("rebase", upstream)

    async def rev_parse(self, ref: str) -> str:
        """Resolve *ref* to a full commit SHA."""
        out, _ = await self.run("rev-parse", ref)
        return out.strip()

    async def push(self, remote: str, branch: str, *options: str) -> str:
        return await self.raw("push", *options, remote, branch)
