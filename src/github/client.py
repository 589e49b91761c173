"""GitHub REST v3 client: issue comment polling and editing.

Polling is conditional: the last ETag per endpoint is replayed in
If-None-Match, so "nothing new" costs a 304 and no rate limit.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx
import structlog

from src.infra.errors import GithubError

logger = structlog.get_logger()

_PER_PAGE = 100


@dataclass(frozen=True)
class GithubUser:
    id: int
    name: str  # login


@dataclass(frozen=True)
class GithubComment:
    id: int
    user: GithubUser
    body: str
    created_at: datetime


@dataclass(frozen=True)
class GithubResponse:
    value: Any
    date: datetime  # server clock, from the Date header


def user_profile_url(web_url: str, user_name: str) -> str:
    return f"{web_url.rstrip('/')}/{user_name}"


def authenticated_user_url(api_url: str) -> str:
    return f"{api_url.rstrip('/')}/user"


def issue_comments_url(api_url: str, repo: str, issue_number: int) -> str:
    return f"{api_url.rstrip('/')}/repos/{repo}/issues/{issue_number}/comments"


def issue_comment_url(api_url: str, repo: str, comment_id: int) -> str:
    return f"{api_url.rstrip('/')}/repos/{repo}/issues/comments/{comment_id}"


def format_since(ts: datetime) -> str:
    return ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_comment(raw: dict[str, Any]) -> GithubComment:
    user = raw["user"]
    return GithubComment(
        id=int(raw["id"]),
        user=GithubUser(id=int(user["id"]), name=user["login"]),
        body=raw.get("body") or "",
        created_at=datetime.fromisoformat(raw["created_at"].replace("Z", "+00:00")),
    )


class GithubClient:
    """Thin async wrapper over the endpoints the bot needs."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_url: str,
        repo: str,
        access_token: str,
        user_agent: str,
        poll_interval_s: float = 0.1,
    ) -> None:
        self._http = http
        self._api_url = api_url
        self._repo = repo
        self._headers = {
            "Authorization": f"token {access_token}",
            "Accept": "application/vnd.github+json",
            "User-Agent": user_agent,
        }
        self._poll_interval_s = poll_interval_s
        self._etags: dict[str, str] = {}
        self._etags_lock = asyncio.Lock()
        self._viewer: GithubUser | None = None

    async def viewer(self) -> GithubUser:
        """The authenticated account, i.e. the bot itself. Cached after first call."""
        if self._viewer is None:
            resp = await self._request("GET", authenticated_user_url(self._api_url))
            data = resp.json()
            self._viewer = GithubUser(id=int(data["id"]), name=data["login"])
            logger.info("github_viewer_resolved", user_id=self._viewer.id, login=self._viewer.name)
        return self._viewer

    async def query(self, url: str, params: dict[str, str] | None = None) -> GithubResponse | None:
        """GET url. Returns None when the content is unchanged since the last call.

        The ETag is cached per url without its query string: a poll whose
        result is identical to the previous one is reported unchanged even
        if its parameters moved on.
        """
        headers = dict(self._headers)
        async with self._etags_lock:
            etag = self._etags.get(url)
        if etag is not None:
            headers["If-None-Match"] = etag

        try:
            resp = await self._http.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise GithubError(f"GitHub request to {url} failed: {exc}") from exc

        if resp.status_code == httpx.codes.NOT_MODIFIED:
            return None
        if resp.status_code != httpx.codes.OK:
            raise GithubError(f"GitHub API error ({resp.status_code}): {resp.text}")

        new_etag = resp.headers.get("ETag")
        if new_etag:
            async with self._etags_lock:
                self._etags[url] = new_etag

        date_header = resp.headers.get("Date")
        date = parsedate_to_datetime(date_header) if date_header else datetime.now(UTC)
        return GithubResponse(value=resp.json(), date=date)

    async def query_poll(self, url: str, params: dict[str, str] | None = None) -> GithubResponse:
        """Query until the content changes, backing off a fixed interval between tries."""
        while True:
            resp = await self.query(url, params)
            if resp is not None:
                return resp
            await asyncio.sleep(self._poll_interval_s)

    async def poll_comments(
        self, issue_number: int, since: datetime | None = None,
    ) -> tuple[list[GithubComment], datetime]:
        """Wait for a changed comment listing. Returns (comments, server_time)."""
        params = {"per_page": str(_PER_PAGE)}
        if since is not None:
            params["since"] = format_since(since)
        resp = await self.query_poll(
            issue_comments_url(self._api_url, self._repo, issue_number), params,
        )
        return [parse_comment(raw) for raw in resp.value], resp.date

    async def update_comment(self, comment_id: int, body: str) -> None:
        await self._request(
            "PATCH",
            issue_comment_url(self._api_url, self._repo, comment_id),
            json={"body": body},
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise GithubError(f"GitHub request to {url} failed: {exc}") from exc
        if resp.is_error:
            raise GithubError(f"GitHub API error ({resp.status_code}): {resp.text}")
        return resp
