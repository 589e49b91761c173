"""Publish pipeline: Blocked → Pulling → Verifying → Uploading → UpdatingIndex → Done.

One pipeline runs per accepted /publish command, as a detached task. The
workspace lock is held from Pulling through UpdatingIndex, which makes
every pipeline the single writer of the index, the store and the package
records while it runs. Each step transition edits the triggering comment.
"""

from __future__ import annotations

import asyncio
import re
import tempfile
from collections.abc import Collection
from pathlib import Path
from urllib.parse import urlsplit

import structlog

from src.builder.builder import ArtifactBuilder
from src.builder.manifest import Manifest
from src.constants import SOURCE_SCHEMES
from src.controller.command import PublishCommand
from src.controller.listing import render_package_list
from src.controller.report import PublishReport, PublishStep, render_report
from src.github.client import GithubClient, GithubComment, GithubUser
from src.infra.errors import (
    GithubError,
    NamespaceIsTaken,
    PackageExists,
    RegistryBotError,
    RepoError,
)
from src.ledger.ledger import Ledger, Package, User
from src.workspace.repo import GitIdentity, Repo
from src.workspace.workspace import Workspace

logger = structlog.get_logger()

# git's scp-like ssh form: user@host:path
_SCP_LIKE = re.compile(r"^[\w.-]+@[\w.-]+:(?!//)")


class PublishPipeline:
    def __init__(
        self,
        *,
        github: GithubClient,
        ledger: Ledger,
        workspace: Workspace,
        builder: ArtifactBuilder,
        identity: GitIdentity,
        web_url: str,
        source_schemes: Collection[str] = SOURCE_SCHEMES,
    ) -> None:
        self._github = github
        self._ledger = ledger
        self._workspace = workspace
        self._builder = builder
        self._identity = identity
        self._web_url = web_url
        self._source_schemes = frozenset(s.lower() for s in source_schemes)

    async def run(self, command: PublishCommand, comment: GithubComment) -> PublishReport:
        """Run the pipeline to Done or Failed. Never raises; the outcome is in the report."""
        report = PublishReport(source_url=command.git)
        log = logger.bind(comment_id=comment.id, source=command.git, ref=command.ref)
        log.info("publish_started")

        try:
            await self._report(comment, report)
            async with self._workspace.lock:
                await self._publish(command, comment, report)
            report.advance(PublishStep.done)
        except RegistryBotError as exc:
            report.error = str(exc)
        except Exception as exc:
            log.exception("publish_unexpected_error", step=report.step.name)
            report.error = str(exc) or type(exc).__name__

        try:
            await self._report(comment, report)
        except GithubError:
            log.exception("publish_report_failed", step=report.step.name)

        if report.error is None:
            log.info("publish_done", package=report.name, version=report.version)
        else:
            log.info("publish_failed", step=report.step.name, error=report.error)
        return report

    async def _publish(
        self, command: PublishCommand, comment: GithubComment, report: PublishReport,
    ) -> None:
        await self._transition(comment, report, PublishStep.pulling)
        self._check_source(command.git)
        with tempfile.TemporaryDirectory(prefix=f"{self._identity.name}-") as tmp:
            source = await asyncio.to_thread(
                Repo.open_or_clone, command.git, Path(tmp) / "source", identity=self._identity,
            )
            if command.ref:
                await asyncio.to_thread(source.checkout, command.ref)

            await self._transition(comment, report, PublishStep.verifying)
            output = await asyncio.to_thread(self._builder.build, source.workdir)
            manifest = output.manifest
            await self._check_permission(manifest, comment.user)
            report.name, report.version = str(manifest.name), manifest.version

            await self._transition(comment, report, PublishStep.uploading)
            location = await self._workspace.store.upload(manifest, output.artifact_path)

            await self._transition(comment, report, PublishStep.updating_index)
            await self._workspace.index.update_package(manifest, location)
            # The ledger never records a package the index does not have
            await self._commit_publish(manifest, comment.user)
            package_list = await render_package_list(self._ledger, self._web_url)
            await self._workspace.index.update_readme(package_list)

    def _check_source(self, url: str) -> None:
        scheme = "ssh" if _SCP_LIKE.match(url) else urlsplit(url).scheme.lower()
        if scheme not in self._source_schemes:
            allowed = ", ".join(sorted(self._source_schemes))
            raise RepoError(
                f"Source `{url}` is not a repository URL this registry accepts ({allowed})",
            )

    async def _check_permission(self, manifest: Manifest, user: GithubUser) -> None:
        """Reject if another user owns the namespace or the exact version exists."""
        name = manifest.name
        packages = await self._ledger.query_package(name.normalized_group)

        conflict = next((p for p in packages if p.user_id != user.id), None)
        if conflict is not None:
            owner = await self._ledger.query_user(conflict.user_id)
            raise NamespaceIsTaken(
                conflict.group, owner.name if owner is not None else str(conflict.user_id),
            )

        if any(
            p.name == name.normalized_name and p.version == manifest.version for p in packages
        ):
            raise PackageExists(str(name), manifest.version)

    async def _commit_publish(self, manifest: Manifest, user: GithubUser) -> None:
        await self._ledger.upsert_user(User(id=user.id, name=user.name))
        await self._ledger.insert_package(Package(
            group=manifest.name.normalized_group,
            name=manifest.name.normalized_name,
            version=manifest.version,
            description=manifest.package.description,
            user_id=user.id,
        ))

    async def _transition(
        self, comment: GithubComment, report: PublishReport, step: PublishStep,
    ) -> None:
        report.advance(step)
        logger.debug("publish_step", comment_id=comment.id, step=step.name)
        await self._report(comment, report)

    async def _report(self, comment: GithubComment, report: PublishReport) -> None:
        await self._github.update_comment(comment.id, render_report(report, comment))
