"""Shared publish workspace: the long-lived index and store checkouts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import httpx
import structlog

from src.config.settings import BotSettings, GithubSettings, WorkspaceSettings
from src.workspace.index import Index
from src.workspace.repo import GitCredentials, GitIdentity, Repo
from src.workspace.store import Store

logger = structlog.get_logger()


def github_repo_url(web_url: str, repo_name: str) -> str:
    return f"{web_url.rstrip('/')}/{repo_name}.git"


def github_raw_url(web_url: str, repo_name: str, commit: str, relpath: str) -> str:
    return f"{web_url.rstrip('/')}/{repo_name}/blob/{commit}/{relpath}?raw=true"


@dataclass
class Workspace:
    """Index and store handles, mutated only while `lock` is held.

    git checkouts are stateful, so the lock covers both handles as one unit
    for the whole span of a publish.
    """

    index: Index
    store: Store
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


async def open_workspace(
    *,
    workspace: WorkspaceSettings,
    github: GithubSettings,
    bot: BotSettings,
    http: httpx.AsyncClient,
) -> Workspace:
    """Open or clone the index and store checkouts."""
    identity = GitIdentity(name=bot.name, email=bot.email)
    credentials = GitCredentials(username=bot.email, password=bot.password) if bot.password else None

    index_repo = await asyncio.to_thread(
        Repo.open_or_clone,
        github_repo_url(github.web_url, github.index_repo),
        workspace.index_checkout,
        identity=identity,
        branch=workspace.branch,
        credentials=credentials,
    )
    store_repo = await asyncio.to_thread(
        Repo.open_or_clone,
        github_repo_url(github.web_url, github.store_repo),
        workspace.store_checkout,
        identity=identity,
        branch=workspace.branch,
        credentials=credentials,
    )

    store = Store(
        store_repo,
        http=http,
        raw_url=lambda commit, relpath: github_raw_url(
            github.web_url, github.store_repo, commit, relpath,
        ),
        max_size=workspace.store_max_size,
    )
    logger.info(
        "workspace_opened",
        index=str(workspace.index_checkout),
        store=str(workspace.store_checkout),
        branch=workspace.branch,
    )
    return Workspace(index=Index(index_repo), store=store)
