"""Builder module: manifest parsing and artifact packaging."""

from src.builder.builder import (
    ArtifactBuilder,
    BuildOutput,
    TarballBuilder,
    artifact_name,
    load_manifest,
)
from src.builder.manifest import Dependency, Manifest, PackageInfo, PackageName, version_key

__all__ = [
    "ArtifactBuilder",
    "BuildOutput",
    "Dependency",
    "Manifest",
    "PackageInfo",
    "PackageName",
    "TarballBuilder",
    "artifact_name",
    "load_manifest",
    "version_key",
]
