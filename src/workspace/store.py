"""Artifact store: built tarballs kept in a git repository and served raw.

Upload is verified end to end: after the push, the artifact is fetched
back from its public URL and must hash to what was pushed.
"""

from __future__ import annotations

import asyncio
import hashlib
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
import structlog

from src.builder.builder import artifact_name
from src.builder.manifest import Manifest
from src.infra.errors import DownloadVerification, GithubError, PackageOversize
from src.workspace.repo import Repo

logger = structlog.get_logger()

_CHUNK_SIZE = 64 * 1024

RawUrlFn = Callable[[str, str], str]  # (commit, relpath) -> download url


@dataclass(frozen=True)
class Location:
    """Where a published artifact lives, with the digest it was verified against."""

    url: str
    checksum: str  # sha256 hex digest

    @property
    def checksum_spec(self) -> str:
        return f"sha256={self.checksum}"


def artifact_relpath(manifest: Manifest) -> Path:
    name = manifest.name
    return Path(name.normalized_group) / name.normalized_name / artifact_name(manifest)


def file_sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class Store:
    def __init__(
        self,
        repo: Repo,
        *,
        http: httpx.AsyncClient,
        raw_url: RawUrlFn,
        max_size: int,
    ) -> None:
        self._repo = repo
        self._http = http
        self._raw_url = raw_url
        self._max_size = max_size

    @property
    def repo(self) -> Repo:
        return self._repo

    async def upload(self, manifest: Manifest, artifact_path: Path) -> Location:
        """Push the artifact, verify its public copy, and return its Location.

        Raises PackageOversize before touching the repository, GitError on
        push failure, DownloadVerification if the served bytes differ.
        """
        package, version = str(manifest.name), manifest.version
        logger.info("store_upload_started", package=package, version=version)

        size = artifact_path.stat().st_size
        if size > self._max_size:
            raise PackageOversize(size, self._max_size)

        relpath, checksum, head = await asyncio.to_thread(
            self._push_artifact, manifest, artifact_path,
        )
        logger.info("store_artifact_pushed", package=package, version=version, checksum=checksum)

        url = self._raw_url(head, relpath.as_posix())
        logger.info("store_download_verifying", package=package, version=version, url=url)
        remote_checksum = await self._download_sha256(url)
        if remote_checksum != checksum:
            raise DownloadVerification(checksum, remote_checksum)

        logger.info("store_upload_done", package=package, version=version, url=url)
        return Location(url=url, checksum=checksum)

    def _push_artifact(self, manifest: Manifest, artifact_path: Path) -> tuple[Path, str, str]:
        self._repo.fetch_and_reset()

        relpath = artifact_relpath(manifest)
        target = self._repo.workdir / relpath
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(artifact_path, target)
        checksum = file_sha256(target)

        self._repo.commit_and_push(
            f"Update package `{manifest.name} {manifest.version}`", target,
        )
        return relpath, checksum, self._repo.head_hash()

    async def _download_sha256(self, url: str) -> str:
        digest = hashlib.sha256()
        try:
            async with self._http.stream("GET", url, follow_redirects=True) as resp:
                if resp.status_code != httpx.codes.OK:
                    raise GithubError(
                        f"Downloading {url} failed with HTTP {resp.status_code}",
                        code="DOWNLOAD_FAILED",
                    )
                async for chunk in resp.aiter_bytes():
                    digest.update(chunk)
        except httpx.HTTPError as exc:
            raise GithubError(f"Downloading {url} failed: {exc}", code="DOWNLOAD_FAILED") from exc
        return digest.hexdigest()
