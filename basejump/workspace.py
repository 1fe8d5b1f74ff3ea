"""Per-request temporary workspaces.

Each rebase clones into its own directory, created atomically by
``tempfile.mkdtemp`` under a name that combines a monotonic timestamp, the
request's identity, and mkdtemp's random suffix. No two requests ever share a
directory, so concurrent rebases of the same PR cannot trample each other.

``workspace()`` is the only way the rest of the service obtains one: its
``finally`` removes the directory on success, on failure, and when the task
running the request is cancelled.
"""
from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

_PREFIX = "basejump"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def workspace_prefix(label: str) -> str:
    """Return the directory-name prefix for a workspace tagged with *label*."""
    safe_label = _UNSAFE_CHARS.sub("-", label).strip("-")
    return f"{_PREFIX}-{time.monotonic_ns()}-{safe_label}-" if safe_label else f"{_PREFIX}-{time.monotonic_ns()}-"


async def acquire(label: str = "", root: Path | None = None) -> Path:
    """Create a fresh, empty, uniquely named directory and return its path.

    If the caller is cancelled while ``mkdtemp`` is still running in its
    thread, the directory it goes on to create is removed before the
    cancellation propagates.
    """
    prefix = workspace_prefix(label)
    future = asyncio.get_running_loop().run_in_executor(
        None, lambda: tempfile.mkdtemp(prefix=prefix, dir=str(root) if root else None)
    )
    try:
        path = await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        if future.exception() is None:
            await release(Path(future.result()))
        raise
    logger.debug("✅ Workspace acquired: %s", path)
    return Path(path)


def _remove(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)


async def release(path: Path) -> None:
    """Recursively delete *path*. A path that no longer exists is not an error."""
    await asyncio.get_running_loop().run_in_executor(None, _remove, path)
    logger.debug("✅ Workspace released: %s", path)


@asynccontextmanager
async def workspace(label: str = "", root: Path | None = None) -> AsyncIterator[Path]:
    """Yield a fresh workspace and remove it on every exit path.

    The removal is shielded: if the task is cancelled while the directory is
    being deleted, the deletion still runs to completion in the executor.
    """
    path = await acquire(label, root)
    try:
        yield path
    finally:
        await asyncio.shield(release(path))
