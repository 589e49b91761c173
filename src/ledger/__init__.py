"""Ledger module: durable record of users, handled comments and published packages."""

from src.ledger.database import create_db_engine, ensure_schema, make_session_factory
from src.ledger.ledger import Comment, Ledger, Package, User
from src.ledger.models import Base, CommentRecord, PackageRecord, UserRecord

__all__ = [
    "Base",
    "Comment",
    "CommentRecord",
    "Ledger",
    "Package",
    "PackageRecord",
    "User",
    "UserRecord",
    "create_db_engine",
    "ensure_schema",
    "make_session_factory",
]
