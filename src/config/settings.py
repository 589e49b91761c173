from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.constants import SOURCE_SCHEMES

# Load .env once at module import so every BaseSettings subclass sees the env vars
load_dotenv()


class LedgerSettings(BaseSettings):
    """Local SQLite ledger. Env vars prefixed with LEDGER_."""

    model_config = SettingsConfigDict(env_prefix="LEDGER_")

    path: Path = Path("registry.db")


class BotSettings(BaseSettings):
    """Bot identity and credentials. Env vars prefixed with BOT_."""

    model_config = SettingsConfigDict(env_prefix="BOT_")

    name: str  # required: mention handle and git committer name
    email: str  # required: git committer email, also push username
    password: str = ""  # git push password; empty = push without credentials
    access_token: str  # required: GitHub API token

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        v = v.strip().lstrip("@")
        if not v or any(c.isspace() for c in v):
            raise ValueError(f"BOT_NAME must be a single non-empty handle (got '{v}')")
        return v


class GithubSettings(BaseSettings):
    """GitHub endpoints and repositories. Env vars prefixed with GITHUB_."""

    model_config = SettingsConfigDict(env_prefix="GITHUB_")

    api_url: str = "https://api.github.com"
    web_url: str = "https://github.com"
    index_repo: str  # required: "owner/repo" of the catalog index
    store_repo: str  # required: "owner/repo" of the artifact store
    issue_number: int  # required: tracking issue polled for commands
    poll_interval_s: float = Field(0.1, gt=0)

    @field_validator("index_repo", "store_repo")
    @classmethod
    def _validate_repo(cls, v: str) -> str:
        owner, sep, repo = v.partition("/")
        if not sep or not owner or not repo or "/" in repo:
            raise ValueError(f"repository must look like 'owner/repo' (got '{v}')")
        return v


class WorkspaceSettings(BaseSettings):
    """Long-lived index/store checkouts. Env vars prefixed with WORKSPACE_."""

    model_config = SettingsConfigDict(env_prefix="WORKSPACE_")

    index_checkout: Path = Path("workspace/index")
    store_checkout: Path = Path("workspace/store")
    branch: str = "master"
    store_max_size: int = Field(10 * 1024 * 1024, gt=0)  # bytes
    # local paths and file:// sources are never cloned unless listed here
    source_schemes: list[str] = Field(default_factory=lambda: list(SOURCE_SCHEMES))


class ControllerSettings(BaseSettings):
    """Polling and supervision. Env vars prefixed with CONTROLLER_."""

    model_config = SettingsConfigDict(env_prefix="CONTROLLER_")

    restart_delay_s: float = Field(5.0, ge=0)
    late_tolerance_s: float = Field(60.0, ge=0)  # out-of-order delivery window
    drain_timeout_s: float = Field(30.0, ge=0)  # wait for in-flight publishes on teardown


class Settings(BaseSettings):
    """Root settings composing all sub-configurations."""

    model_config = SettingsConfigDict(extra="ignore")

    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    bot: BotSettings = Field(default_factory=BotSettings)
    github: GithubSettings = Field(default_factory=GithubSettings)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
    controller: ControllerSettings = Field(default_factory=ControllerSettings)
    log_json: bool = True


def get_settings() -> Settings:
    """Load and validate settings. Raises ValidationError on missing required fields."""
    return Settings()
