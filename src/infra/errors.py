"""Custom exception hierarchy for the registry bot.

All application-specific exceptions inherit from RegistryBotError,
which carries an error code. The message of every exception is what
the requester sees in the tracking comment, so keep it user-facing.
"""

from __future__ import annotations


class RegistryBotError(Exception):
    """Base exception for all registry bot errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class CommandParseError(RegistryBotError):
    """A comment mentions the bot but the command after it is malformed."""

    def __init__(self, message: str, *, code: str = "COMMAND_PARSE_ERROR") -> None:
        super().__init__(message, code=code)


class PackageValidationError(RegistryBotError):
    """The artifact builder rejected the source tree."""

    def __init__(self, message: str, *, code: str = "PACKAGE_INVALID") -> None:
        super().__init__(message, code=code)


class PublishPermissionError(RegistryBotError):
    """The requester may not publish this package."""

    def __init__(self, message: str, *, code: str = "PERMISSION_DENIED") -> None:
        super().__init__(message, code=code)


class NamespaceIsTaken(PublishPermissionError):
    def __init__(self, group: str, owner: str) -> None:
        super().__init__(
            f"Namespace `{group}` has been taken by @{owner}", code="NAMESPACE_TAKEN",
        )
        self.group = group
        self.owner = owner


class PackageExists(PublishPermissionError):
    def __init__(self, name: str, version: str) -> None:
        super().__init__(
            f"Package `{name} {version}` has been published", code="PACKAGE_EXISTS",
        )
        self.name = name
        self.version = version


class PackageOversize(RegistryBotError):
    """Artifact exceeds the store size ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"Package tarball is too big ({size} bytes) while the maximum size is {limit}",
            code="PACKAGE_OVERSIZE",
        )
        self.size = size
        self.limit = limit


class DownloadVerification(RegistryBotError):
    """Published artifact does not hash to what was pushed."""

    def __init__(self, local: str, remote: str) -> None:
        super().__init__(
            f"Tarball checksum mismatched between local {local} and store {remote}",
            code="DOWNLOAD_VERIFICATION",
        )
        self.local = local
        self.remote = remote


class GitError(RegistryBotError):
    """Errors from git clone/fetch/checkout/commit/push."""

    def __init__(self, message: str, *, code: str = "GIT_ERROR") -> None:
        super().__init__(message, code=code)


class GitCommandError(GitError):
    """A git subprocess exited non-zero. `detail` is its (redacted) stderr."""

    def __init__(self, command: str, detail: str) -> None:
        super().__init__(f"git {command} failed: {detail}", code="GIT_COMMAND_FAILED")
        self.command = command
        self.detail = detail


class RepoError(GitError):
    """Checkout is unusable or the remote is unreachable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="REPO_ERROR")


class RefNotFound(GitError):
    def __init__(self, ref: str) -> None:
        super().__init__(f"Reference `{ref}` not found in repository", code="REF_NOT_FOUND")
        self.ref = ref


class RepoBare(GitError):
    def __init__(self, message: str = "Repository is bare") -> None:
        super().__init__(message, code="REPO_BARE")


class NoInitialCommit(GitError):
    def __init__(self, message: str = "No initial commit in remote repository") -> None:
        super().__init__(message, code="NO_INITIAL_COMMIT")


class GitPushError(GitError):
    """Push rejected by the remote (non-fast-forward or authentication). Never retried."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Git push failed: {reason}", code="GIT_PUSH_FAILED")
        self.reason = reason


class CatalogError(RegistryBotError):
    """Errors translating a manifest into catalog entries."""

    def __init__(self, message: str, *, code: str = "CATALOG_ERROR") -> None:
        super().__init__(message, code=code)


class NonIndexDependency(CatalogError):
    def __init__(self, dependency: str, resolution: str) -> None:
        super().__init__(
            f"Package contains non-index dependency `{dependency}`({resolution})",
            code="NON_INDEX_DEPENDENCY",
        )
        self.dependency = dependency
        self.resolution = resolution


class DependencyNotFound(CatalogError):
    def __init__(self, dependency: str) -> None:
        super().__init__(
            f"Package have dependency `{dependency}` that do not exist in index",
            code="DEPENDENCY_NOT_FOUND",
        )
        self.dependency = dependency


class GithubError(RegistryBotError):
    """GitHub API or download transport failures."""

    def __init__(self, message: str, *, code: str = "GITHUB_ERROR") -> None:
        super().__init__(message, code=code)


class LedgerError(RegistryBotError):
    """Ledger persistence failures (constraint violations, I/O)."""

    def __init__(self, message: str, *, code: str = "LEDGER_ERROR") -> None:
        super().__init__(message, code=code)
