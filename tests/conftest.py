"""Pytest configuration and fixtures.

Git-backed tests run against throwaway bare repositories under ``tmp_path``
with an isolated global git config, so they never read or modify the
developer's own ``~/.gitconfig``.
"""
from __future__ import annotations

import json
import logging
import shutil
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import httpx
import pytest

_GIT_IDENTITY_VARS = (
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
)


def pytest_configure(config: pytest.Config) -> None:
    logging.getLogger("httpcore").setLevel(logging.CRITICAL)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_git_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point git at a private global config with a known identity."""
    home = tmp_path_factory.mktemp("git-home")
    gitconfig = home / ".gitconfig"
    gitconfig.write_text(
        "[user]\n"
        "\tname = Basejump Tests\n"
        "\temail = tests@basejump.invalid\n"
        "[init]\n"
        "\tdefaultBranch = main\n"
        "[commit]\n"
        "\tgpgsign = false\n"
    )
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(gitconfig))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in _GIT_IDENTITY_VARS:
        monkeypatch.delenv(var, raising=False)
    return gitconfig


def run_git(cwd: Path, *args: str) -> str:
    """Run git synchronously for test setup and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


@dataclass
class GitRemote:
    """A bare "remote" repository plus a working clone used to author commits."""

    bare: Path
    local: Path

    @property
    def uri(self) -> str:
        return str(self.bare)

    def git(self, *args: str) -> str:
        return run_git(self.local, *args)

    def commit(
        self,
        filename: str,
        content: str = "test",
        branch: str | None = None,
        message: str | None = None,
    ) -> str:
        """Write *filename* and commit it, optionally on *branch*; return the sha."""
        if branch:
            self.git("checkout", branch)
        (self.local / filename).write_text(content)
        self.git("add", filename)
        self.git("commit", "-m", message or f"Add {filename}")
        return self.git("rev-parse", "HEAD").strip()

    def empty_commit(self, message: str, branch: str | None = None) -> str:
        if branch:
            self.git("checkout", branch)
        self.git("commit", "--allow-empty", "-m", message)
        return self.git("rev-parse", "HEAD").strip()

    def branch(self, name: str, start: str) -> None:
        self.git("checkout", "-b", name, start)

    def push(self, branch: str) -> None:
        self.git("push", "origin", branch)

    def remote_log(self, branch: str) -> list[str]:
        """``<sha> <subject>`` lines of *branch* on the remote, newest first."""
        out = run_git(self.bare, "log", "--format=%H %s", branch)
        return [line for line in out.splitlines() if line.strip()]

    def remote_subjects(self, branch: str) -> list[str]:
        return [line.split(" ", 1)[1] for line in self.remote_log(branch)]

    def remote_head(self, branch: str) -> str:
        return run_git(self.bare, "rev-parse", branch).strip()


@pytest.fixture
def remote(tmp_path: Path) -> Iterator[GitRemote]:
    """A remote with one commit (``Add 0``) on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git executable not installed")
    bare = tmp_path / "test.git"
    local = tmp_path / "test"
    bare.mkdir()
    run_git(bare, "init", "--bare", "--initial-branch=main")
    run_git(tmp_path, "clone", str(bare), str(local))

    repo = GitRemote(bare=bare, local=local)
    repo.commit("0")
    repo.push("main")
    yield repo


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Parent directory for rebase workspaces, so tests can assert it is left empty."""
    path = tmp_path / "work"
    path.mkdir()
    return path


# ── Fake GitHub API ────────────────────────────────────────────────────────────


@dataclass
class RecordedCall:
    method: str
    path: str
    params: dict[str, str]
    json: object


class FakeGitHub:
    """In-memory GitHub REST API for one repository, served through ``httpx.MockTransport``.

    Tests tweak the public attributes to shape responses and read ``calls`` to
    assert what the client sent. ``failures`` maps ``(method, path)`` to a
    status code returned instead of the normal response.
    """

    API = "https://api.github.test"

    def __init__(self, owner: str = "octo", repo: str = "repo", pr_number: int = 7) -> None:
        self.owner = owner
        self.repo = repo
        self.pr_number = pr_number
        self.base = "main"
        self.head = "feature"
        self.behind_by = 1
        self.commits: list[dict[str, object]] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.existing_reactions: set[str] = set()
        self.calls: list[RecordedCall] = []
        self._next_id = 1000

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    def reactions(self) -> list[str]:
        """Contents of every reaction created, in order."""
        return [
            str(call.json["content"])  # type: ignore[index]
            for call in self.calls
            if call.method == "POST" and call.path.endswith("/reactions")
        ]

    def deleted_reactions(self) -> list[str]:
        return [call.path.rsplit("/", 1)[1] for call in self.calls if call.method == "DELETE"]

    def comments(self) -> list[str]:
        return [
            str(call.json["body"])  # type: ignore[index]
            for call in self.calls
            if call.method == "POST" and call.path.endswith(f"/issues/{self.pr_number}/comments")
        ]

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append(
            RecordedCall(request.method, path, dict(request.url.params), body)
        )
        failure = self.failures.get((request.method, path))
        if failure is not None:
            return httpx.Response(failure, json={"message": "Simulated failure"})

        repo = self.repo_path
        if request.method == "GET" and path == f"{repo}/pulls/{self.pr_number}":
            return httpx.Response(
                200,
                json={
                    "number": self.pr_number,
                    "base": {"ref": self.base, "sha": "b" * 40},
                    "head": {"ref": self.head, "sha": "h" * 40},
                },
            )
        if request.method == "GET" and path == f"{repo}/compare/{self.base}...{self.head}":
            return httpx.Response(200, json={"behind_by": self.behind_by, "ahead_by": 1})
        if request.method == "GET" and path == f"{repo}/pulls/{self.pr_number}/commits":
            per_page = int(request.url.params.get("per_page", "30"))
            page = int(request.url.params.get("page", "1"))
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.commits[start : start + per_page])
        if request.method == "POST" and path.startswith(f"{repo}/issues/comments/") and path.endswith("/reactions"):
            content = str(body["content"]) if isinstance(body, dict) else ""
            code = 200 if content in self.existing_reactions else 201
            self.existing_reactions.add(content)
            return httpx.Response(code, json={"id": self._id(), "content": content})
        if request.method == "DELETE" and "/reactions/" in path:
            return httpx.Response(204)
        if request.method == "POST" and path == f"{repo}/issues/{self.pr_number}/comments":
            return httpx.Response(201, json={"id": self._id(), "body": body["body"]})  # type: ignore[index]
        return httpx.Response(404, json={"message": "Not Found"})


def verified_commit(sha: str, verified: bool = True, reason: str = "valid") -> dict[str, object]:
    """A PR commit object as returned by ``GET /pulls/{n}/commits``."""
    return {"sha": sha, "commit": {"verification": {"verified": verified, "reason": reason}}}


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()
