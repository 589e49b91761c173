"""GitHub module: comment source and comment editing."""

from src.github.client import (
    GithubClient,
    GithubComment,
    GithubResponse,
    GithubUser,
    user_profile_url,
)

__all__ = [
    "GithubClient",
    "GithubComment",
    "GithubResponse",
    "GithubUser",
    "user_profile_url",
]
