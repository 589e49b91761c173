from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.infra.errors import LedgerError
from src.ledger.models import CommentRecord, PackageRecord, UserRecord

logger = structlog.get_logger()


@dataclass(frozen=True)
class User:
    id: int
    name: str


@dataclass(frozen=True)
class Comment:
    id: int
    user_id: int
    body: str
    created_at: datetime


@dataclass(frozen=True)
class Package:
    """Ledger view of a published coordinate. group/name are normalized."""

    group: str
    name: str
    version: str
    description: str | None
    user_id: int


class Ledger:
    """Users, handled comments and published packages.

    Every call is its own transaction. Calls are serialized by an internal
    lock; nothing is held across calls, so read-then-decide sequences are
    only safe when the caller serializes them (the workspace lock does).
    """

    def __init__(self, db_session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._db = db_session_factory
        self._lock = asyncio.Lock()

    async def query_user(self, user_id: int) -> User | None:
        async with self._lock, self._db() as db:
            row = await db.get(UserRecord, user_id)
            if row is None:
                return None
            return User(id=row.id, name=row.name)

    async def upsert_user(self, user: User) -> None:
        """Insert the user or refresh the display name if the id is known."""
        stmt = (
            sqlite_insert(UserRecord)
            .values(id=user.id, name=user.name)
            .on_conflict_do_update(index_elements=["id"], set_={"name": user.name})
        )
        async with self._lock, self._db() as db:
            try:
                await db.execute(stmt)
                await db.commit()
            except SQLAlchemyError as exc:
                raise LedgerError(f"Failed to save user {user.id}: {exc}") from exc

    async def query_comment(self, comment_id: int) -> Comment | None:
        async with self._lock, self._db() as db:
            row = await db.get(CommentRecord, comment_id)
            if row is None:
                return None
            return Comment(
                id=row.id, user_id=row.user_id, body=row.body, created_at=row.created_at,
            )

    async def insert_comment(self, comment: Comment) -> None:
        """Record a comment as handled. Raises LedgerError if the id is already ledgered."""
        async with self._lock, self._db() as db:
            db.add(CommentRecord(
                id=comment.id,
                user_id=comment.user_id,
                body=comment.body,
                created_at=comment.created_at,
            ))
            try:
                await db.commit()
            except IntegrityError as exc:
                raise LedgerError(f"Comment {comment.id} has already been handled") from exc
        logger.debug("comment_ledgered", comment_id=comment.id, user_id=comment.user_id)

    async def query_package(self, group: str | None = None) -> list[Package]:
        """All package records, or those of one namespace group."""
        stmt = select(PackageRecord).order_by(PackageRecord.id)
        if group is not None:
            stmt = stmt.where(PackageRecord.group_name == group)
        async with self._lock, self._db() as db:
            result = await db.execute(stmt)
            return [
                Package(
                    group=row.group_name,
                    name=row.name,
                    version=row.version,
                    description=row.description,
                    user_id=row.user_id,
                )
                for row in result.scalars()
            ]

    async def insert_package(self, package: Package) -> None:
        async with self._lock, self._db() as db:
            db.add(PackageRecord(
                group_name=package.group,
                name=package.name,
                version=package.version,
                description=package.description,
                user_id=package.user_id,
            ))
            try:
                await db.commit()
            except IntegrityError as exc:
                raise LedgerError(
                    f"Package `{package.group}/{package.name} {package.version}` "
                    "is already recorded"
                ) from exc
        logger.info(
            "package_ledgered",
            group=package.group,
            name=package.name,
            version=package.version,
            user_id=package.user_id,
        )
