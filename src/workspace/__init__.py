"""Workspace module: git-backed index and artifact store."""

from src.workspace.index import Entries, Index, IndexDependency, IndexEntry, IndexLocation
from src.workspace.repo import GitCredentials, GitIdentity, Repo
from src.workspace.store import Location, Store
from src.workspace.workspace import Workspace, open_workspace

__all__ = [
    "Entries",
    "GitCredentials",
    "GitIdentity",
    "Index",
    "IndexDependency",
    "IndexEntry",
    "IndexLocation",
    "Location",
    "Repo",
    "Store",
    "Workspace",
    "open_workspace",
]
