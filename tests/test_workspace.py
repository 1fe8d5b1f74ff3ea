"""Tests for basejump/workspace.py.

Run targeted:
    pytest tests/test_workspace.py -v
"""
from __future__ import annotations

import asyncio
import tempfile
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

from basejump.workspace import acquire, release, workspace, workspace_prefix


def test_prefix_carries_label() -> None:
    prefix = workspace_prefix("octo-repo-pr7")

    assert prefix.startswith("basejump-")
    assert prefix.endswith("-octo-repo-pr7-")


def test_prefix_sanitises_label() -> None:
    assert "/" not in workspace_prefix("octo/repo #7")


def test_prefix_without_label() -> None:
    assert workspace_prefix("").startswith("basejump-")
    assert workspace_prefix("").count("--") == 0


@pytest.mark.anyio
async def test_acquire_creates_empty_unique_directories(tmp_path: Path) -> None:
    paths = await asyncio.gather(*(acquire("same-label", tmp_path) for _ in range(10)))

    assert len(set(paths)) == 10
    for path in paths:
        assert path.is_dir()
        assert path.parent == tmp_path
        assert list(path.iterdir()) == []


@pytest.mark.anyio
async def test_release_removes_tree(tmp_path: Path) -> None:
    path = await acquire("x", tmp_path)
    (path / "nested").mkdir()
    (path / "nested" / "file.txt").write_text("data")

    await release(path)

    assert not path.exists()


@pytest.mark.anyio
async def test_release_missing_path_is_noop(tmp_path: Path) -> None:
    await release(tmp_path / "never-created")


@pytest.mark.anyio
async def test_workspace_removed_on_success(tmp_path: Path) -> None:
    async with workspace("ok", tmp_path) as path:
        (path / "file.txt").write_text("data")

    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_workspace_removed_on_exception(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        async with workspace("err", tmp_path) as path:
            (path / "file.txt").write_text("data")
            raise ValueError("boom")

    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_workspace_removed_on_cancellation(tmp_path: Path) -> None:
    entered = asyncio.Event()

    async def hold() -> None:
        async with workspace("cancel", tmp_path) as path:
            (path / "file.txt").write_text("data")
            entered.set()
            await asyncio.sleep(60)

    task = asyncio.create_task(hold())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_cancellation_during_acquire_removes_created_directory(tmp_path: Path) -> None:
    """mkdtemp finishing after the caller was cancelled must not leak its directory."""
    created = threading.Event()
    proceed = threading.Event()
    real_mkdtemp = tempfile.mkdtemp

    def slow_mkdtemp(*args: object, **kwargs: object) -> str:
        path = real_mkdtemp(*args, **kwargs)  # type: ignore[arg-type]
        created.set()
        proceed.wait(timeout=5)
        return path

    async def hold() -> None:
        async with workspace("cancel-acquire", tmp_path):
            await asyncio.sleep(60)

    loop = asyncio.get_running_loop()
    with patch("basejump.workspace.tempfile.mkdtemp", slow_mkdtemp):
        task = asyncio.create_task(hold())
        assert await loop.run_in_executor(None, created.wait, 5)
        task.cancel()
        await asyncio.sleep(0)
        proceed.set()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert list(tmp_path.iterdir()) == []
