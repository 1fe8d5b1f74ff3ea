"""GitHub REST client scoped to one repository.

Wraps :class:`httpx.AsyncClient` and injects the installation token into every
request. Only the handful of endpoints a rebase request needs are exposed:

- ``get_pull_request``            — ``GET  /repos/{o}/{r}/pulls/{n}``
- ``compare_commits``             — ``GET  /repos/{o}/{r}/compare/{base}...{head}``
- ``list_pull_request_commits``   — ``GET  /repos/{o}/{r}/pulls/{n}/commits``
- ``create_issue_comment``        — ``POST /repos/{o}/{r}/issues/{n}/comments``
- ``create_comment_reaction``     — ``POST /repos/{o}/{r}/issues/comments/{id}/reactions``
- ``delete_comment_reaction``     — ``DELETE …/reactions/{reaction_id}``

Pull requests are issues with code, so PR conversation comments and their
reactions use the issue endpoints.

Any non-2xx response raises :class:`~basejump.errors.HostApiError` with the
status and decoded payload. Nothing is retried here.

Usage::

    async with GitHubClient("octo", "repo", token=token) as gh:
        pr = await gh.get_pull_request(42)
"""
from __future__ import annotations

import enum
import logging
import types
from typing import cast

import httpx

from basejump.config import settings
from basejump.errors import HostApiError
from basejump.models import CommitVerificationRecord, PullRequest

logger = logging.getLogger(__name__)

_PER_PAGE = 100


class Reaction(str, enum.Enum):
    """Marker reactions Basejump leaves on the triggering comment."""

    RECEIVED = "eyes"
    NOT_NEEDED = "confused"
    SUCCESS = "rocket"
    FAILED = "confused"  # alias of NOT_NEEDED


class GitHubClient:
    """Async GitHub REST client for a single ``owner/repo``.

    Args:
        owner: Repository owner login.
        repo: Repository name.
        token: Installation (or personal) access token.
        base_url: API root; defaults to ``settings.github_api_url``.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests inject ``MockTransport``).
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self._token = token
        self._base_url = base_url or settings.github_api_url
        self._timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> GitHubClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "basejump",
            },
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def _request(self, method: str, path: str, **kwargs: object) -> httpx.Response:
        """Send one request and raise ``HostApiError`` on a non-2xx status."""
        if self._client is None:
            raise RuntimeError("GitHubClient must be used as an async context manager.")
        resp = await self._client.request(method, path, **kwargs)  # type: ignore[arg-type]  # httpx stubs use Any for kwargs
        if not resp.is_success:
            try:
                payload: object = resp.json()
            except ValueError:
                payload = resp.text
            raise HostApiError(method, path, resp.status_code, payload)
        return resp

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_pull_request(self, number: int) -> PullRequest:
        resp = await self._request("GET", f"{self._repo_path}/pulls/{number}")
        return PullRequest.model_validate(resp.json())

    async def compare_commits(self, base: str, head: str) -> int:
        """Return how many commits *head* is behind *base* (``behind_by``)."""
        resp = await self._request("GET", f"{self._repo_path}/compare/{base}...{head}")
        data = cast(dict[str, object], resp.json())
        return int(cast(int, data.get("behind_by", 0)))

    async def list_pull_request_commits(self, number: int) -> list[CommitVerificationRecord]:
        """Return every commit of the PR in order, with its verification facts.

        Follows pagination until a short page is returned.
        """
        records: list[CommitVerificationRecord] = []
        page = 1
        while True:
            resp = await self._request(
                "GET",
                f"{self._repo_path}/pulls/{number}/commits",
                params={"per_page": _PER_PAGE, "page": page},
            )
            items = cast(list[dict[str, object]], resp.json())
            records.extend(_to_verification_record(item) for item in items)
            if len(items) < _PER_PAGE:
                return records
            page += 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_issue_comment(self, number: int, body: str) -> int:
        """Post *body* on issue/PR *number* and return the new comment id."""
        resp = await self._request(
            "POST", f"{self._repo_path}/issues/{number}/comments", json={"body": body}
        )
        data = cast(dict[str, object], resp.json())
        return int(cast(int, data.get("id", 0)))

    async def create_comment_reaction(self, comment_id: int, content: Reaction) -> int | None:
        """React to an issue comment and return the reaction id.

        GitHub answers 200 instead of 201 when the same reaction already
        exists; that is logged and treated as success.
        """
        resp = await self._request(
            "POST",
            f"{self._repo_path}/issues/comments/{comment_id}/reactions",
            json={"content": content.value},
        )
        if resp.status_code == 200:
            logger.warning("⚠️  Already reacted with %s emoji to issue comment", content.value)
        try:
            data = resp.json()
        except ValueError:
            return None
        reaction_id = data.get("id") if isinstance(data, dict) else None
        return reaction_id if isinstance(reaction_id, int) else None

    async def delete_comment_reaction(self, comment_id: int, reaction_id: int) -> None:
        await self._request(
            "DELETE",
            f"{self._repo_path}/issues/comments/{comment_id}/reactions/{reaction_id}",
        )


def _to_verification_record(item: dict[str, object]) -> CommitVerificationRecord:
    """Extract sha + ``commit.verification`` from one PR commit object."""
    commit = item.get("commit")
    verification = commit.get("verification") if isinstance(commit, dict) else None
    if not isinstance(verification, dict):
        verification = {}
    reason = verification.get("reason")
    return CommitVerificationRecord(
        sha=str(item.get("sha", "")),
        verified=verification.get("verified") is True,
        reason=reason if isinstance(reason, str) else None,
    )
