"""Basejump FastAPI application.

Entry point: ``uvicorn basejump.app:app --port 3000`` (or ``python -m basejump``).

Architecture:
- ``POST /webhook`` verifies the delivery signature, extracts a
  ``RebaseCommand`` and, when there is one, spawns an independent
  ``asyncio`` task for it and answers ``202`` immediately. GitHub times out
  deliveries after 10 s; a rebase can take much longer.
- Tasks share no state. ``_tasks`` only holds references so running tasks are
  not garbage-collected; shutdown cancels whatever is still running, which
  runs each request's workspace and reaction cleanup.
- ``GET /health`` is the liveness probe.
"""
from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from basejump.auth import get_installation_token
from basejump.config import settings
from basejump.github import GitHubClient
from basejump.log import configure_logging
from basejump.models import RebaseCommand
from basejump.orchestrator import handle_rebase_command
from basejump.webhooks import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    parse_rebase_command,
    verify_signature,
)

logger = logging.getLogger(__name__)

_tasks: set[asyncio.Task[None]] = set()


async def run_command(command: RebaseCommand) -> None:
    """Authenticate for the command's installation and run the request."""
    try:
        token = await get_installation_token(settings, command.installation_id)
    except Exception as exc:
        logger.error(
            "❌ [basejump/%s/%s/pr-%d] Cannot authenticate: %s",
            command.owner, command.repo, command.pr_number, exc,
        )
        return

    async with GitHubClient(command.owner, command.repo, token) as github:
        await handle_rebase_command(github, command, token)


def spawn(command: RebaseCommand) -> asyncio.Task[None]:
    """Start *command* as its own task and keep a reference until it finishes."""
    task = asyncio.create_task(
        run_command(command),
        name=f"basejump-{command.owner}-{command.repo}-pr{command.pr_number}-{command.comment_id}",
    )
    _tasks.add(task)
    task.add_done_callback(_tasks.discard)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Configure logging on startup; cancel in-flight rebases on shutdown."""
    configure_logging(settings.debug)
    logger.info("✅ Basejump listening for %r comments", settings.command)
    try:
        yield
    finally:
        pending = list(_tasks)
        for task in pending:
            task.cancel()
        if pending:
            logger.info("Cancelling %d in-flight rebase(s)", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)


app = FastAPI(
    title="Basejump",
    description="Rebase pull requests on demand with a /rebase comment",
    version="0.2.3",
    lifespan=lifespan,
)


@app.get("/health", tags=["health"])
async def health() -> dict[str, str]:
    """Liveness probe — returns ``{"status": "ok"}`` when the service is up."""
    return {"status": "ok"}


@app.post("/webhook", tags=["webhook"])
async def webhook(request: Request) -> JSONResponse:
    """Receive a GitHub delivery and start a rebase when it asks for one."""
    body = await request.body()
    if settings.webhook_secret and not verify_signature(
        settings.webhook_secret, body, request.headers.get(SIGNATURE_HEADER)
    ):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not a JSON object")

    event = request.headers.get(EVENT_HEADER)
    command = parse_rebase_command(event, payload, settings.command)
    if command is None:
        return JSONResponse({"status": "ignored"}, status_code=status.HTTP_200_OK)

    logger.debug(
        "Delivery %s: rebase requested on %s/%s#%d",
        request.headers.get(DELIVERY_HEADER), command.owner, command.repo, command.pr_number,
    )
    spawn(command)
    return JSONResponse({"status": "accepted"}, status_code=status.HTTP_202_ACCEPTED)
