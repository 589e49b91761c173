"""Artifact builder: turns a pulled source tree into a manifest and a tarball.

The publish pipeline treats the builder as an opaque validating transform;
anything it rejects surfaces to the requester verbatim as a
PackageValidationError.
"""

from __future__ import annotations

import os
import tarfile
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from src.builder.manifest import Manifest
from src.constants import ARTIFACT_EXT, MANIFEST_FILE
from src.infra.errors import PackageValidationError

logger = structlog.get_logger()

_EXCLUDED_DIRS = {".git", ".hg", ".svn"}


@dataclass(frozen=True)
class BuildOutput:
    artifact_path: Path
    manifest: Manifest


class ArtifactBuilder(Protocol):
    def build(self, working_tree: Path) -> BuildOutput: ...


def artifact_name(manifest: Manifest) -> str:
    """Deterministic artifact file name: <group>_<name>_<version>.tar.gz."""
    name = manifest.name
    return f"{name.normalized_group}_{name.normalized_name}_{manifest.version}.{ARTIFACT_EXT}"


def load_manifest(working_tree: Path) -> Manifest:
    path = working_tree / MANIFEST_FILE
    if not path.is_file():
        raise PackageValidationError(f"Manifest `{MANIFEST_FILE}` not found in repository root")
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise PackageValidationError(f"Manifest `{MANIFEST_FILE}` is not valid TOML: {exc}") from exc
    try:
        return Manifest.model_validate(raw)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'manifest'}: {err['msg']}"
            for err in exc.errors()
        )
        raise PackageValidationError(f"Invalid manifest: {details}") from exc


class TarballBuilder:
    """Packs the source tree (minus VCS metadata) into a gzip tarball.

    Entries are added in sorted order with zeroed mtimes and owners so the
    same tree always produces the same archive members.
    """

    def __init__(self, output_dir: Path | None = None) -> None:
        self._output_dir = output_dir

    def build(self, working_tree: Path) -> BuildOutput:
        manifest = load_manifest(working_tree)
        output_dir = self._output_dir or working_tree.parent
        output_dir.mkdir(parents=True, exist_ok=True)
        artifact_path = output_dir / artifact_name(manifest)
        prefix = artifact_path.name.removesuffix(f".{ARTIFACT_EXT}")

        with tarfile.open(artifact_path, "w:gz") as tar:
            for path in _walk_sorted(working_tree):
                tar.add(
                    path,
                    arcname=f"{prefix}/{path.relative_to(working_tree).as_posix()}",
                    recursive=False,
                    filter=_normalize_member,
                )

        logger.info(
            "artifact_built",
            package=str(manifest.name),
            version=manifest.version,
            path=str(artifact_path),
            size=artifact_path.stat().st_size,
        )
        return BuildOutput(artifact_path=artifact_path, manifest=manifest)


def _walk_sorted(root: Path) -> list[Path]:
    paths: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in _EXCLUDED_DIRS)
        base = Path(dirpath)
        if base != root:
            paths.append(base)
        paths.extend(base / f for f in sorted(filenames))
    return paths


def _normalize_member(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info
