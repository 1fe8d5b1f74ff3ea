"""Logging setup and per-request log prefixes.

Every rebase request runs as its own task, so interleaved log lines from
concurrent requests are only readable when each one names its pull request.
``request_logger`` wraps a module logger in an adapter that prefixes every
message with ``[basejump/<owner>/<repo>/pr-<n>]``.
"""
from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(debug: bool = False) -> None:
    """Configure the root logger once for the whole process."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
    )
    # httpx logs every request at INFO, which drowns out request logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)


class RequestLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that prefixes messages with the request's identity."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        prefix = self.extra["prefix"] if self.extra else "basejump"
        return f"[{prefix}] {msg}", kwargs


def request_logger(logger: logging.Logger, owner: str, repo: str, pr_number: int) -> RequestLogger:
    """Return an adapter that tags every line with ``owner/repo`` and the PR number."""
    return RequestLogger(logger, {"prefix": f"basejump/{owner}/{repo}/pr-{pr_number}"})


Logger = logging.Logger | logging.LoggerAdapter  # type: ignore[type-arg]
