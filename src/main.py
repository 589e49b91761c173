"""Process entry point: supervised controller loop.

Run directly: python -m src.main

Crash-only recovery: any failure of the poll loop tears the controller
down, waits a fixed delay, and builds a new one with fresh connections
and a freshly opened workspace. Nothing is resumed.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from src.builder.builder import TarballBuilder
from src.config.settings import Settings, get_settings
from src.controller.controller import Controller
from src.github.client import GithubClient
from src.infra.logging import setup_logging
from src.ledger.database import create_db_engine, ensure_schema, make_session_factory
from src.ledger.ledger import Ledger
from src.workspace.repo import GitIdentity
from src.workspace.workspace import open_workspace

logger = structlog.get_logger()

_HTTP_TIMEOUT_S = 30.0


async def run_controller(settings: Settings) -> None:
    """Build a controller from settings and run it until it fails.

    The failure is logged before in-flight pipelines are drained, and the
    drain is bounded by `drain_timeout_s` so a hung publish cannot hold up
    the restart.
    """
    engine = await create_db_engine(settings.ledger)
    try:
        async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT_S) as http:
            controller: Controller | None = None
            try:
                await ensure_schema(engine)
                ledger = Ledger(make_session_factory(engine))
                github = GithubClient(
                    http,
                    api_url=settings.github.api_url,
                    repo=settings.github.index_repo,
                    access_token=settings.bot.access_token,
                    user_agent=settings.bot.name,
                    poll_interval_s=settings.github.poll_interval_s,
                )
                workspace = await open_workspace(
                    workspace=settings.workspace,
                    github=settings.github,
                    bot=settings.bot,
                    http=http,
                )
                controller = Controller(
                    github=github,
                    ledger=ledger,
                    workspace=workspace,
                    builder=TarballBuilder(),
                    identity=GitIdentity(name=settings.bot.name, email=settings.bot.email),
                    issue_number=settings.github.issue_number,
                    web_url=settings.github.web_url,
                    late_tolerance_s=settings.controller.late_tolerance_s,
                    source_schemes=settings.workspace.source_schemes,
                )
                await controller.run()
            except Exception:
                logger.exception("controller_failed")
                raise
            finally:
                # Pipelines borrow these checkouts and this client
                if controller is not None:
                    await controller.wait_in_flight(timeout=settings.controller.drain_timeout_s)
    finally:
        await engine.dispose()
        logger.info("db_engine_disposed")


async def supervise(settings: Settings) -> None:
    """Run the controller forever, restarting it after every failure."""
    while True:
        logger.info("controller_started")
        try:
            await run_controller(settings)
        except Exception as exc:
            logger.warning(
                "controller_restarting",
                delay_s=settings.controller.restart_delay_s,
                error=type(exc).__name__,
            )
        await asyncio.sleep(settings.controller.restart_delay_s)


def main() -> None:
    settings = get_settings()
    setup_logging(json_output=settings.log_json)
    asyncio.run(supervise(settings))


if __name__ == "__main__":
    main()
