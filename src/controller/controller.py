"""Controller: polls the tracking issue and dispatches publish pipelines.

Poll-loop failures propagate out of run(); the supervisor in src.main
logs them and rebuilds everything from scratch.
"""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Coroutine
from datetime import datetime, timedelta
from typing import Any

import structlog

from src.builder.builder import ArtifactBuilder
from src.constants import SOURCE_SCHEMES
from src.controller.command import PublishCommand, parse_command
from src.controller.publish import PublishPipeline
from src.controller.report import CommandErrorReport, render_report
from src.github.client import GithubClient, GithubComment
from src.infra.errors import CommandParseError
from src.ledger.ledger import Comment, Ledger, User
from src.workspace.repo import GitIdentity
from src.workspace.workspace import Workspace

logger = structlog.get_logger()


class Controller:
    """Owns the ledger and the workspace; pipelines borrow them."""

    def __init__(
        self,
        *,
        github: GithubClient,
        ledger: Ledger,
        workspace: Workspace,
        builder: ArtifactBuilder,
        identity: GitIdentity,
        issue_number: int,
        web_url: str,
        late_tolerance_s: float = 60.0,
        source_schemes: Collection[str] = SOURCE_SCHEMES,
    ) -> None:
        self._github = github
        self._ledger = ledger
        self._bot_name = identity.name
        self._issue_number = issue_number
        self._late_tolerance = timedelta(seconds=late_tolerance_s)
        self._pipeline = PublishPipeline(
            github=github,
            ledger=ledger,
            workspace=workspace,
            builder=builder,
            identity=identity,
            web_url=web_url,
            source_schemes=source_schemes,
        )
        self._last_seen: datetime | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def last_seen(self) -> datetime | None:
        return self._last_seen

    @property
    def in_flight(self) -> frozenset[asyncio.Task]:
        """Publish tasks still running. They outlive the poll that spawned them."""
        return frozenset(self._tasks)

    async def run(self) -> None:
        """Poll forever. Returns only by raising."""
        logger.info("controller_polling_started", issue=self._issue_number)
        while True:
            await self.poll_once()

    async def poll_once(self) -> None:
        """Wait for the next changed comment listing and handle it.

        The first call only records the server time as the baseline, so
        history from before startup is never replayed.
        """
        viewer = await self._github.viewer()
        comments, server_time = await self._github.poll_comments(
            self._issue_number, since=self._last_seen,
        )
        if self._last_seen is None:
            self._last_seen = server_time
            logger.info("poll_baseline_established", since=server_time.isoformat())
            return

        for comment in comments:
            if comment.created_at < self._last_seen - self._late_tolerance:
                continue
            if comment.user.id == viewer.id:
                continue
            await self.handle_comment(comment)

        self._last_seen = server_time

    async def handle_comment(self, comment: GithubComment) -> asyncio.Task | None:
        """Ledger a new comment, then parse it and dispatch its command.

        Returns the spawned publish task, or None if nothing was dispatched.
        """
        if await self._ledger.query_comment(comment.id) is not None:
            return None

        # Ledgered before the command runs: at most one attempt per comment
        await self._ledger.upsert_user(User(id=comment.user.id, name=comment.user.name))
        await self._ledger.insert_comment(Comment(
            id=comment.id,
            user_id=comment.user.id,
            body=comment.body,
            created_at=comment.created_at,
        ))

        try:
            command = parse_command(comment.body, self._bot_name)
        except CommandParseError as exc:
            logger.info("command_rejected", comment_id=comment.id, reason=str(exc))
            await self._github.update_comment(
                comment.id, render_report(CommandErrorReport(self._bot_name), comment),
            )
            return None
        if command is None:
            return None

        logger.info("command_dispatched", comment_id=comment.id, command=repr(command))
        if isinstance(command, PublishCommand):
            return self._spawn(
                self._pipeline.run(command, comment), name=f"publish-{comment.id}",
            )
        return None

    async def wait_in_flight(self, timeout: float | None = None) -> None:
        """Block until every dispatched pipeline has finished, or until `timeout`.

        Pipelines still running after the timeout are cancelled and named in a
        warning. Blocking git work they started in a worker thread keeps running.
        """
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=timeout)
        if pending:
            logger.warning(
                "publish_tasks_abandoned",
                tasks=sorted(task.get_name() for task in pending),
                timeout_s=timeout,
            )
            for task in pending:
                task.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, Any], *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("publish_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("publish_task_crashed", task=task.get_name(), exc_info=exc)
