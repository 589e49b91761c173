"""End-to-end publish against real git remotes, a real ledger and the tarball builder.

Only GitHub comment editing and the raw download host are faked.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from src.builder.builder import TarballBuilder
from src.constants import MANIFEST_FILE, README_FILE
from src.controller.command import PublishCommand
from src.controller.publish import PublishPipeline
from src.controller.report import PublishStep
from src.ledger.ledger import Ledger
from src.workspace.index import Index
from src.workspace.store import Store
from src.workspace.workspace import Workspace
from tests.helpers import BOT, make_comment, make_remote, manifest_toml, push_files, remote_file

pytestmark = pytest.mark.integration


@pytest.fixture
def pipeline(ledger: Ledger, index: Index, store: Store) -> PublishPipeline:
    return PublishPipeline(
        github=AsyncMock(),
        ledger=ledger,
        workspace=Workspace(index=index, store=store),
        builder=TarballBuilder(),
        identity=BOT,
        web_url="https://github.test",
        source_schemes={"file"},
    )


@pytest.fixture
def source_remote(tmp_path: Path) -> Path:
    return make_remote(tmp_path, "source", {
        MANIFEST_FILE: manifest_toml("alice/pkg", "1.0.0"),
        "src/lib.elb": "module Lib",
    })


@pytest.mark.asyncio
async def test_two_versions_then_foreign_namespace(
    tmp_path: Path,
    pipeline: PublishPipeline,
    ledger: Ledger,
    index_remote: Path,
    source_remote: Path,
) -> None:
    first = await pipeline.run(PublishCommand(git=source_remote.as_uri()), make_comment(1))
    assert first.error is None, first.error

    push_files(
        tmp_path, source_remote, {MANIFEST_FILE: manifest_toml("alice/pkg", "1.0.1")},
        message="Bump", tag="v1.0.1",
    )
    push_files(
        tmp_path, source_remote, {MANIFEST_FILE: manifest_toml("alice/pkg", "2.0.0-broken")},
        message="Work in progress",
    )
    second = await pipeline.run(
        PublishCommand(git=source_remote.as_uri(), ref="v1.0.1"), make_comment(2),
    )
    assert second.step == PublishStep.done, second.error

    packages = await ledger.query_package("alice")
    assert [p.version for p in packages] == ["1.0.0", "1.0.1"]

    entries = [json.loads(line) for line in remote_file(index_remote, "alice/pkg").splitlines()]
    assert [e["version"] for e in entries] == ["1.0.0", "1.0.1"]
    assert all(e["location"]["checksum"].startswith("sha256=") for e in entries)

    readme = remote_file(index_remote, README_FILE)
    assert "`alice/pkg 1.0.1` *A test package* @[alice](https://github.test/alice)" in readme
    assert "`alice/pkg 1.0.0`" not in readme

    other_source = make_remote(tmp_path, "other", {
        MANIFEST_FILE: manifest_toml("alice/other", "0.1.0"),
    })
    taken = await pipeline.run(
        PublishCommand(git=other_source.as_uri()),
        make_comment(3, user_id=200, user_name="bob"),
    )
    assert taken.step == PublishStep.verifying
    assert taken.error == "Namespace `alice` has been taken by @alice"
    assert len(await ledger.query_package()) == 2


@pytest.mark.asyncio
async def test_same_version_twice_is_refused(
    pipeline: PublishPipeline, ledger: Ledger, source_remote: Path,
) -> None:
    await pipeline.run(PublishCommand(git=source_remote.as_uri()), make_comment(1))

    again = await pipeline.run(PublishCommand(git=source_remote.as_uri()), make_comment(2))

    assert again.error == "Package `alice/pkg 1.0.0` has been published"
    assert len(await ledger.query_package()) == 1


@pytest.mark.asyncio
async def test_unknown_ref_fails_while_pulling(
    pipeline: PublishPipeline, source_remote: Path,
) -> None:
    report = await pipeline.run(
        PublishCommand(git=source_remote.as_uri(), ref="v9.9.9"), make_comment(1),
    )

    assert report.step == PublishStep.pulling
    assert report.error == "Reference `v9.9.9` not found in repository"


@pytest.mark.asyncio
async def test_prefixed_version_cannot_republish(
    tmp_path: Path, pipeline: PublishPipeline, ledger: Ledger, index_remote: Path,
    source_remote: Path,
) -> None:
    await pipeline.run(PublishCommand(git=source_remote.as_uri()), make_comment(1))
    push_files(
        tmp_path, source_remote, {MANIFEST_FILE: manifest_toml("alice/pkg", "v1.0.0")},
        message="Prefix version",
    )

    again = await pipeline.run(PublishCommand(git=source_remote.as_uri()), make_comment(2))

    assert again.step == PublishStep.verifying
    assert "invalid package version 'v1.0.0'" in again.error
    assert [p.version for p in await ledger.query_package()] == ["1.0.0"]
    entries = remote_file(index_remote, "alice/pkg").splitlines()
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_local_path_source_refused(pipeline: PublishPipeline, source_remote: Path) -> None:
    report = await pipeline.run(PublishCommand(git=str(source_remote)), make_comment(1))

    assert report.step == PublishStep.pulling
    assert report.error.startswith(f"Source `{source_remote}` is not a repository URL")
