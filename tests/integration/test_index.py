"""Integration tests for the catalog index against a real git remote."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.builder.manifest import Manifest, PackageName
from src.constants import README_FILE
from src.infra.errors import CatalogError, DependencyNotFound, NonIndexDependency
from src.workspace.index import Index
from src.workspace.repo import Repo
from src.workspace.store import Location
from tests.helpers import BOT, git, make_remote, push_files, remote_file

pytestmark = pytest.mark.integration

LOCATION = Location(url="https://github.test/raw/pkg.tar.gz", checksum="cd" * 32)


def _manifest(
    name: str = "Alice/My_Pkg", version: str = "1.0.0", dependencies: dict | None = None,
) -> Manifest:
    return Manifest.model_validate({
        "package": {"name": name, "version": version},
        "dependencies": dependencies or {},
    })


def _remote_entries(remote: Path, relpath: str) -> list[dict]:
    return [json.loads(line) for line in remote_file(remote, relpath).splitlines() if line]


class TestUpdatePackage:
    @pytest.mark.asyncio
    async def test_entry_written_under_normalized_path(
        self, index: Index, index_remote: Path,
    ) -> None:
        await index.update_package(_manifest(), LOCATION)

        [entry] = _remote_entries(index_remote, "alice/my-pkg")
        assert entry == {
            "name": "alice/my-pkg",
            "version": "1.0.0",
            "location": {"url": LOCATION.url, "checksum": f"sha256={'cd' * 32}"},
            "dependencies": [],
            "yanked": False,
        }
        assert git(index_remote, "log", "-1", "--format=%s") == (
            "Update package `Alice/My_Pkg 1.0.0`"
        )

    @pytest.mark.asyncio
    async def test_versions_accumulate_and_republish_replaces(
        self, index: Index, index_remote: Path,
    ) -> None:
        await index.update_package(_manifest(version="1.0.0"), LOCATION)
        await index.update_package(_manifest(version="1.0.1"), LOCATION)
        moved = Location(url="https://github.test/raw/moved.tar.gz", checksum="ef" * 32)
        await index.update_package(_manifest(version="1.0.0"), moved)

        entries = _remote_entries(index_remote, "alice/my-pkg")
        assert sorted(e["version"] for e in entries) == ["1.0.0", "1.0.1"]
        assert next(e for e in entries if e["version"] == "1.0.0")["location"]["url"] == moved.url

    @pytest.mark.asyncio
    async def test_unparsable_lines_skipped(
        self, tmp_path: Path, index: Index, index_remote: Path,
    ) -> None:
        valid = json.dumps({"name": "alice/my-pkg", "version": "0.9.0"})
        push_files(
            tmp_path, index_remote, {"alice/my-pkg": f"not json\n{valid}\n\n"}, message="seed",
        )

        await index.update_package(_manifest(), LOCATION)

        entries = _remote_entries(index_remote, "alice/my-pkg")
        assert [e["version"] for e in entries] == ["0.9.0", "1.0.0"]
        assert index.load_entries(PackageName.parse("alice/my-pkg"))[0].version == "0.9.0"

    @pytest.mark.asyncio
    async def test_registry_dependency_recorded(
        self, tmp_path: Path, index: Index, index_remote: Path,
    ) -> None:
        push_files(tmp_path, index_remote, {"bob/util": ""}, message="seed bob/util")

        await index.update_package(_manifest(dependencies={"Bob/Util": "^1.2"}), LOCATION)

        [entry] = _remote_entries(index_remote, "alice/my-pkg")
        assert entry["dependencies"] == [{"name": "bob/util", "req": "^1.2", "index": None}]

    @pytest.mark.asyncio
    async def test_non_registry_dependency_rejected(
        self, index: Index, index_remote: Path,
    ) -> None:
        before = git(index_remote, "rev-parse", "HEAD")
        deps = {"bob/util": {"git": "https://example.com/util.git"}}

        with pytest.raises(NonIndexDependency, match="bob/util"):
            await index.update_package(_manifest(dependencies=deps), LOCATION)

        assert git(index_remote, "rev-parse", "HEAD") == before

    @pytest.mark.asyncio
    async def test_missing_dependency_rejected(self, index: Index) -> None:
        with pytest.raises(DependencyNotFound, match="bob/missing"):
            await index.update_package(_manifest(dependencies={"bob/missing": "1.0"}), LOCATION)


class TestUpdateReadme:
    @pytest.mark.asyncio
    async def test_placeholder_substituted(self, index: Index, index_remote: Path) -> None:
        listing = "- `alice/my-pkg 1.0.0` *no description* @[alice](https://github.test/alice)\n"

        await index.update_readme(listing)

        readme = remote_file(index_remote, README_FILE)
        assert listing.strip() in readme
        assert "{#package-list#}" not in readme
        assert readme.startswith("# Index")

    @pytest.mark.asyncio
    async def test_unchanged_readme_still_commits(self, index: Index, index_remote: Path) -> None:
        await index.update_readme("")
        first = git(index_remote, "rev-parse", "HEAD")

        await index.update_readme("")

        assert git(index_remote, "rev-parse", "HEAD") != first

    @pytest.mark.asyncio
    async def test_missing_template(self, tmp_path: Path) -> None:
        remote = make_remote(tmp_path, "bare-index", {"other": "x"})
        index = Index(Repo.open_or_clone(
            str(remote), tmp_path / "co", identity=BOT, branch="master",
        ))

        with pytest.raises(CatalogError, match="README.TEMPLATE"):
            await index.update_readme("")
