"""Catalog index: per-package metadata files in a git repository.

Layout: `<group>/<name>` holds one JSON entry per line, one line per
published version. The repository README is regenerated from
README.TEMPLATE with the package listing substituted in.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from src.builder.manifest import Manifest, PackageName
from src.constants import README_FILE, README_PLACEHOLDER, README_TEMPLATE_FILE
from src.infra.errors import CatalogError, DependencyNotFound, NonIndexDependency
from src.workspace.repo import Repo
from src.workspace.store import Location

logger = structlog.get_logger()


class IndexDependency(BaseModel):
    name: str
    req: str
    index: str | None = None  # always None: only intra-registry edges are expressed


class IndexLocation(BaseModel):
    url: str
    checksum: str  # "sha256=<hex>"


class IndexEntry(BaseModel):
    name: str
    version: str
    location: IndexLocation | None = None
    dependencies: list[IndexDependency] = Field(default_factory=list)
    yanked: bool = False


class Entries:
    """All entries of one index file, unique by (name, version)."""

    def __init__(self, entries: list[IndexEntry] | None = None) -> None:
        self.entries: list[IndexEntry] = entries or []

    @classmethod
    def load(cls, path: Path) -> Entries:
        """Read an index file. Unparsable lines are skipped, not fatal."""
        entries: list[IndexEntry] = []
        for lineno, line in enumerate(path.read_text(encoding="utf-8").split("\n"), start=1):
            if not line.strip():
                continue
            try:
                entries.append(IndexEntry.model_validate_json(line))
            except ValidationError:
                logger.warning("index_line_skipped", path=str(path), line=lineno)
        return cls(entries)

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = "\n".join(entry.model_dump_json() for entry in self.entries)
        path.write_text(content, encoding="utf-8")

    def upsert(self, entry: IndexEntry) -> None:
        """Replace any entry with the same (name, version), keep all other versions."""
        self.entries = [
            other for other in self.entries
            if other.name != entry.name or other.version != entry.version
        ]
        self.entries.append(entry)


class Index:
    def __init__(self, repo: Repo) -> None:
        self._repo = repo

    @property
    def repo(self) -> Repo:
        return self._repo

    def metafile_path(self, name: PackageName) -> Path:
        return self._repo.workdir / name.normalized_group / name.normalized_name

    def load_entries(self, name: PackageName) -> list[IndexEntry]:
        """Entries currently in the local checkout for one package (no fetch)."""
        path = self.metafile_path(name)
        if not path.exists():
            return []
        return Entries.load(path).entries

    async def update_package(self, manifest: Manifest, location: Location) -> None:
        await asyncio.to_thread(self._update_package, manifest, location)

    async def update_readme(self, package_list: str) -> None:
        await asyncio.to_thread(self._update_readme, package_list)

    def _update_package(self, manifest: Manifest, location: Location) -> None:
        package, version = str(manifest.name), manifest.version
        logger.info("index_update_started", package=package, version=version)

        self._repo.fetch_and_reset()

        metafile = self.metafile_path(manifest.name)
        entries = Entries.load(metafile) if metafile.exists() else Entries()
        entries.upsert(IndexEntry(
            name=manifest.name.normalized,
            version=version,
            location=IndexLocation(url=location.url, checksum=location.checksum_spec),
            dependencies=self._dependencies(manifest),
        ))
        entries.save(metafile)

        self._repo.commit_and_push(f"Update package `{package} {version}`", metafile)
        logger.info("index_update_done", package=package, version=version)

    def _dependencies(self, manifest: Manifest) -> list[IndexDependency]:
        deps: list[IndexDependency] = []
        for dep in manifest.dependencies:
            if not dep.is_registry:
                raise NonIndexDependency(str(dep.name), dep.resolution or "unknown")
            if not self.metafile_path(dep.name).exists():
                raise DependencyNotFound(str(dep.name))
            deps.append(IndexDependency(name=dep.name.normalized, req=dep.req))
        return deps

    def _update_readme(self, package_list: str) -> None:
        logger.info("index_readme_update_started")

        self._repo.fetch_and_reset()

        workdir = self._repo.workdir
        template_path = workdir / README_TEMPLATE_FILE
        if not template_path.is_file():
            raise CatalogError(f"Index repository has no `{README_TEMPLATE_FILE}`")
        readme_path = workdir / README_FILE
        content = template_path.read_text(encoding="utf-8")
        readme_path.write_text(content.replace(README_PLACEHOLDER, package_list), encoding="utf-8")

        self._repo.commit_and_push("Update README", readme_path)
        logger.info("index_readme_update_done")
