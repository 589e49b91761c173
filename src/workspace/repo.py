"""Repository handle: one local git working copy bound to one remote.

All operations shell out to the `git` executable and block; async callers
run them through asyncio.to_thread so a slow clone or push never stalls
the event loop.
"""

from __future__ import annotations

import base64
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import structlog

from src.infra.errors import (
    GitCommandError,
    GitError,
    GitPushError,
    NoInitialCommit,
    RefNotFound,
    RepoBare,
    RepoError,
)

logger = structlog.get_logger()

_USERINFO_RE = re.compile(r"(://)[^/@\s]+@")

# Never block on an interactive credential prompt
_GIT_ENV = {**os.environ, "GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "true"}


@dataclass(frozen=True)
class GitIdentity:
    """Committer identity written into every checkout's git config."""

    name: str
    email: str


@dataclass(frozen=True)
class GitCredentials:
    username: str
    password: str


def _redact(text: str) -> str:
    return _USERINFO_RE.sub(r"\1***@", text)


def _git_output(cwd: Path, *args: str, env: dict[str, str] | None = None) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            env={**_GIT_ENV, **env} if env else _GIT_ENV,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=True,
            text=True,
        )
    except subprocess.CalledProcessError as exc:
        stderr = exc.stderr.strip() or exc.stdout.strip()
        raise GitCommandError(args[0], _redact(stderr)) from exc
    except OSError as exc:
        raise GitError(f"git {args[0]} could not be started: {exc}") from exc
    return result.stdout.strip()


class Repo:
    """A checkout plus the branch it tracks on `origin`.

    Mutations follow an optimistic pattern: fetch_and_reset() right before
    changing anything, then commit_and_push(). If the remote moved in
    between, the push is rejected and reported, never rebased and retried.
    """

    def __init__(
        self,
        path: Path,
        remote_url: str,
        *,
        branch: str | None = None,
        credentials: GitCredentials | None = None,
    ) -> None:
        self._path = path
        self._remote_url = remote_url
        self._branch = branch
        self._credentials = credentials
        self._bare = _git_output(path, "rev-parse", "--is-bare-repository") == "true"

    @classmethod
    def open_or_clone(
        cls,
        remote_url: str,
        local_path: Path,
        *,
        identity: GitIdentity | None = None,
        branch: str | None = None,
        credentials: GitCredentials | None = None,
    ) -> Repo:
        """Open the checkout at local_path, cloning remote_url there if none exists.

        Raises RepoError if the checkout is unreadable or the remote cannot be cloned.
        """
        local_path = Path(local_path)
        if (local_path / ".git").exists():
            try:
                _git_output(local_path, "rev-parse", "--git-dir")
            except GitError as exc:
                raise RepoError(f"Checkout at {local_path} is unreadable: {exc}") from exc
            logger.info("repo_opened", path=str(local_path))
        else:
            logger.info("repo_cloning", remote=_redact(remote_url), path=str(local_path))
            local_path.mkdir(parents=True, exist_ok=True)
            try:
                _git_output(local_path.parent, "clone", "--", remote_url, str(local_path))
            except GitError as exc:
                raise RepoError(f"Failed to clone {_redact(remote_url)}: {exc}") from exc
            logger.info("repo_cloned", remote=_redact(remote_url), path=str(local_path))

        try:
            if identity is not None:
                _git_output(local_path, "config", "user.name", identity.name)
                _git_output(local_path, "config", "user.email", identity.email)
            repo = cls(local_path, remote_url, branch=branch, credentials=credentials)
        except GitError as exc:
            raise RepoError(f"Checkout at {local_path} is unusable: {exc}") from exc
        return repo

    @property
    def path(self) -> Path:
        return self._path

    @property
    def remote_url(self) -> str:
        return self._remote_url

    @property
    def workdir(self) -> Path:
        if self._bare:
            raise RepoBare()
        return self._path

    def head_hash(self) -> str:
        return _git_output(self._path, "rev-parse", "HEAD")

    def checkout(self, ref: str) -> None:
        """Detach HEAD at a branch, tag or commit and force the working tree to it."""
        workdir = self.workdir
        if not ref or ref.startswith("-"):
            raise RefNotFound(ref)

        commit: str | None = None
        for candidate in (ref, f"origin/{ref}"):
            try:
                commit = _git_output(
                    workdir, "rev-parse", "--verify", "--quiet", f"{candidate}^{{commit}}",
                )
                break
            except GitCommandError:
                continue
        if not commit:
            raise RefNotFound(ref)

        _git_output(workdir, "checkout", "--force", "--detach", commit)
        logger.info("repo_checked_out", path=str(workdir), ref=ref, commit=commit)

    def fetch_and_reset(self) -> None:
        """Fetch the tracked branch and hard-reset the checkout onto it, dropping local drift."""
        workdir = self.workdir
        branch = self._tracked_branch()
        remote_ref = f"refs/remotes/origin/{branch}"
        try:
            _git_output(workdir, "fetch", "origin", f"+refs/heads/{branch}:{remote_ref}")
        except GitCommandError as exc:
            if "couldn't find remote ref" in exc.detail:
                raise NoInitialCommit() from exc
            raise
        _git_output(workdir, "checkout", "--force", "-B", branch, remote_ref)
        _git_output(workdir, "reset", "--hard", remote_ref)
        _git_output(workdir, "clean", "-fd")
        logger.debug("repo_reset", path=str(workdir), branch=branch)

    def commit_and_push(self, message: str, changed_path: Path) -> None:
        """Commit exactly changed_path on top of HEAD and push the tracked branch.

        A rejected push (remote advanced, bad credentials) raises GitPushError.
        """
        workdir = self.workdir
        branch = self._tracked_branch()
        relpath = Path(changed_path).resolve().relative_to(workdir.resolve())

        try:
            _git_output(workdir, "rev-parse", "--verify", "HEAD")
        except GitCommandError as exc:
            raise NoInitialCommit() from exc

        _git_output(workdir, "add", "--", relpath.as_posix())
        # The tree is clean after fetch_and_reset, so the index holds only changed_path
        _git_output(workdir, "commit", "--allow-empty", "-m", message)

        try:
            _git_output(
                workdir, "push", "--porcelain", "origin", f"HEAD:refs/heads/{branch}",
                env=self._auth_env(),
            )
        except GitCommandError as exc:
            logger.warning("repo_push_rejected", path=str(workdir), branch=branch, detail=exc.detail)
            raise GitPushError(exc.detail) from exc
        logger.info("repo_pushed", path=str(workdir), branch=branch, message=message)

    def _tracked_branch(self) -> str:
        if not self._branch:
            raise GitError(f"Repository {_redact(self._remote_url)} does not track a branch")
        return self._branch

    def _auth_env(self) -> dict[str, str]:
        """Environment that makes git send the credentials as an HTTP Basic header.

        Credentials travel through the environment, never the command line, and
        only to http(s) remotes.
        """
        if self._credentials is None:
            return {}
        if urlsplit(self._remote_url).scheme not in ("http", "https"):
            return {}
        token = base64.b64encode(
            f"{self._credentials.username}:{self._credentials.password}".encode(),
        ).decode("ascii")
        return {
            "GIT_CONFIG_COUNT": "1",
            "GIT_CONFIG_KEY_0": "http.extraHeader",
            "GIT_CONFIG_VALUE_0": f"Authorization: Basic {token}",
        }
