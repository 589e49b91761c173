"""Helpers shared by tests: real git remotes, comments, manifests, raw download transport."""

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from pathlib import Path

import httpx

from src.constants import README_PLACEHOLDER
from src.github.client import GithubComment, GithubUser
from src.workspace.repo import GitIdentity

BOT = GitIdentity(name="elba-bot", email="bot@elba.test")

README_TEMPLATE = f"# Index\n\n## Packages\n\n{README_PLACEHOLDER}\n"

STORE_MAX_SIZE = 1024 * 1024


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, check=True, text=True,
    )
    return result.stdout.strip()


def git_bytes(cwd: Path, *args: str) -> bytes:
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True, check=True).stdout


def make_remote(root: Path, name: str, files: dict[str, str] | None = None) -> Path:
    """Create a bare repository on branch master, seeded with `files` if given."""
    remote = root / f"{name}.git"
    git(root, "init", "--bare", "--initial-branch=master", str(remote))
    if files:
        push_files(root, remote, files, message="Initial commit")
    return remote


def push_files(
    root: Path,
    remote: Path,
    files: dict[str, str],
    *,
    message: str,
    branch: str = "master",
    tag: str | None = None,
) -> str:
    """Commit files onto `branch` of the remote from a scratch clone. Returns the new commit."""
    scratch = root / f"scratch-{remote.stem}-{len(list(root.iterdir()))}"
    git(root, "clone", str(remote), str(scratch))
    git(scratch, "config", "user.name", "Test Author")
    git(scratch, "config", "user.email", "author@elba.test")
    if branch != "master":
        git(scratch, "checkout", "-b", branch)
    for relpath, content in files.items():
        path = scratch / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        git(scratch, "add", "--", relpath)
    git(scratch, "commit", "--allow-empty", "-m", message)
    git(scratch, "push", "origin", f"HEAD:refs/heads/{branch}")
    if tag:
        git(scratch, "tag", tag)
        git(scratch, "push", "origin", f"refs/tags/{tag}")
    return git(scratch, "rev-parse", "HEAD")


def remote_head(remote: Path, branch: str = "master") -> str:
    return git(remote, "rev-parse", f"refs/heads/{branch}")


def remote_file(remote: Path, relpath: str, rev: str = "refs/heads/master") -> str:
    return git(remote, "show", f"{rev}:{relpath}")


def manifest_toml(
    name: str = "alice/pkg",
    version: str = "1.0.0",
    *,
    description: str | None = "A test package",
    dependencies: dict[str, str] | None = None,
) -> str:
    lines = ["[package]", f'name = "{name}"', f'version = "{version}"']
    if description is not None:
        lines.append(f'description = "{description}"')
    lines.append('authors = ["Alice <alice@elba.test>"]')
    if dependencies:
        lines.append("")
        lines.append("[dependencies]")
        lines.extend(f'"{dep}" = {spec}' for dep, spec in dependencies.items())
    return "\n".join(lines) + "\n"


def make_comment(
    comment_id: int = 1,
    *,
    user_id: int = 100,
    user_name: str = "alice",
    body: str = "@elba-bot /publish https://example.com/pkg.git",
    created_at: datetime | None = None,
) -> GithubComment:
    return GithubComment(
        id=comment_id,
        user=GithubUser(id=user_id, name=user_name),
        body=body,
        created_at=created_at or datetime(2026, 10, 19, 12, 0, tzinfo=UTC),
    )


def raw_url_for(commit: str, relpath: str) -> str:
    return f"https://github.test/elba/store/blob/{commit}/{relpath}?raw=true"


def raw_store_transport(store_remote: Path, *, corrupt: bool = False) -> httpx.MockTransport:
    """Serve `/<owner>/<repo>/blob/<commit>/<path>?raw=true` straight out of a bare remote."""

    def handler(request: httpx.Request) -> httpx.Response:
        parts = request.url.path.strip("/").split("/")
        # owner / repo / "blob" / commit / relpath...
        commit, relpath = parts[3], "/".join(parts[4:])
        try:
            content = git_bytes(store_remote, "show", f"{commit}:{relpath}")
        except subprocess.CalledProcessError:
            return httpx.Response(404)
        if corrupt:
            content = content[:-1] + bytes([content[-1] ^ 0xFF])
        return httpx.Response(200, content=content)

    return httpx.MockTransport(handler)
