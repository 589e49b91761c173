"""Shared pytest fixtures for registry bot tests.

Git-backed fixtures build real bare remotes under tmp_path (the `git`
executable must be on PATH). The ledger runs on a throwaway SQLite file.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio

from src.config.settings import LedgerSettings
from src.constants import README_TEMPLATE_FILE
from src.ledger.database import create_db_engine, ensure_schema, make_session_factory
from src.ledger.ledger import Ledger
from src.workspace.index import Index
from src.workspace.repo import Repo
from src.workspace.store import Store
from tests.helpers import (
    BOT,
    README_TEMPLATE,
    STORE_MAX_SIZE,
    make_remote,
    raw_store_transport,
    raw_url_for,
)


@pytest_asyncio.fixture
async def ledger(tmp_path: Path) -> AsyncGenerator[Ledger, None]:
    """A Ledger on a fresh SQLite file with the schema created."""
    engine = await create_db_engine(LedgerSettings(path=tmp_path / "ledger" / "registry.db"))
    await ensure_schema(engine)
    yield Ledger(make_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def index_remote(tmp_path: Path) -> Path:
    return make_remote(tmp_path, "index", {README_TEMPLATE_FILE: README_TEMPLATE})


@pytest.fixture
def store_remote(tmp_path: Path) -> Path:
    return make_remote(tmp_path, "store", {".gitkeep": ""})


@pytest.fixture
def index(tmp_path: Path, index_remote: Path) -> Index:
    repo = Repo.open_or_clone(
        str(index_remote), tmp_path / "checkouts" / "index", identity=BOT, branch="master",
    )
    return Index(repo)


@pytest_asyncio.fixture
async def store_http(store_remote: Path) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=raw_store_transport(store_remote)) as http:
        yield http


@pytest.fixture
def store(tmp_path: Path, store_remote: Path, store_http: httpx.AsyncClient) -> Store:
    repo = Repo.open_or_clone(
        str(store_remote), tmp_path / "checkouts" / "store", identity=BOT, branch="master",
    )
    return Store(repo, http=store_http, raw_url=raw_url_for, max_size=STORE_MAX_SIZE)
