"""Package manifest model (elba.toml) and package name normalization."""

from __future__ import annotations

import re
from typing import Any

import semver
from pydantic import BaseModel, Field, field_validator, model_validator

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _normalize(segment: str) -> str:
    return segment.lower().replace("_", "-")


class PackageName(BaseModel, frozen=True):
    """A `group/name` package coordinate as written by the author."""

    group: str
    name: str

    @classmethod
    def parse(cls, raw: str) -> PackageName:
        group, sep, name = raw.partition("/")
        if not sep:
            raise ValueError(f"package name must look like 'group/name' (got '{raw}')")
        return cls(group=group, name=name)

    @field_validator("group", "name")
    @classmethod
    def _validate_segment(cls, v: str) -> str:
        if not _SEGMENT_RE.match(v):
            raise ValueError(f"invalid package name segment '{v}'")
        return v

    @property
    def normalized_group(self) -> str:
        return _normalize(self.group)

    @property
    def normalized_name(self) -> str:
        return _normalize(self.name)

    @property
    def normalized(self) -> str:
        return f"{self.normalized_group}/{self.normalized_name}"

    def __str__(self) -> str:
        return f"{self.group}/{self.name}"


class Dependency(BaseModel, frozen=True):
    """One manifest dependency.

    `req` is set for registry dependencies (a version requirement string).
    Anything else (git, path, ...) keeps a printable `resolution` instead.
    """

    name: PackageName
    req: str | None = None
    resolution: str | None = None

    @property
    def is_registry(self) -> bool:
        return self.req is not None

    @classmethod
    def from_raw(cls, raw_name: str, raw: Any) -> Dependency:
        name = PackageName.parse(raw_name)
        if isinstance(raw, str):
            return cls(name=name, req=raw)
        if isinstance(raw, dict):
            if set(raw) == {"version"} and isinstance(raw["version"], str):
                return cls(name=name, req=raw["version"])
            resolution = ", ".join(f"{k}: {v}" for k, v in sorted(raw.items()))
            return cls(name=name, resolution=resolution)
        raise ValueError(f"dependency '{raw_name}' has an unsupported specification")


class PackageInfo(BaseModel):
    name: PackageName
    version: str
    description: str | None = None
    authors: list[str] = Field(default_factory=list)
    license: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _parse_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return PackageName.parse(v)
        return v

    @field_validator("version")
    @classmethod
    def _validate_version(cls, v: str) -> str:
        """Semantic version, stored in canonical form so equal versions compare equal."""
        try:
            return str(semver.Version.parse(v.strip()))
        except ValueError as exc:
            raise ValueError(f"invalid package version '{v}' (expected MAJOR.MINOR.PATCH)") from exc


class Manifest(BaseModel):
    package: PackageInfo
    dependencies: list[Dependency] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _parse_dependencies(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("dependencies"), dict):
            data = dict(data)
            data["dependencies"] = [
                Dependency.from_raw(name, spec) for name, spec in data["dependencies"].items()
            ]
        return data

    @property
    def name(self) -> PackageName:
        return self.package.name

    @property
    def version(self) -> str:
        return self.package.version


def version_key(version: str) -> semver.Version:
    """Sort key ordering versions by semver precedence. Unparsable versions sort first."""
    try:
        return semver.Version.parse(version)
    except ValueError:
        return semver.Version(0, 0, 0, prerelease="0")
