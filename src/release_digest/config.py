"""Configuration: the declarative sources file plus environment settings.

Two independent pieces live here:

1. SourcesConfig, loaded from YAML by `load_sources_config()`. It lists the
   source groups (label + source shorthand or explicit kind/config) and the
   orchestrator knobs (max_releases, per-context excluded repos). String
   values may reference the environment with `${VAR}` or `${VAR:-default}`.
   Configuration is loaded once per process and is immutable afterwards.

2. Settings, read from environment variables by `Settings.from_env()`: the
   environment name, log level, OpenAI and Slack credentials, and where the
   key-value store persists.

Example sources.yaml:

    max_releases: 35
    groups:
      - label: Nimiq Core
        token: ${GITHUB_TOKEN:-}
        source: gh:nimiq/core-rs-albatross
      - label: Nimiq Pay
        token: ${GITLAB_TOKEN:-}
        requiresEnv: [GITLAB_TOKEN, GITLAB_PROJECTS]
        source:
          kind: gitlab
          config:
            projects: ${GITLAB_PROJECTS:-}
            baseUrl: ${GITLAB_BASE_URL:-}
"""

from __future__ import annotations

import os
import re
from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from release_digest.errors import ConfigError

DEFAULT_MAX_RELEASES = 35
# personal side projects stay in the feed but out of the weekly recap
DEFAULT_SUMMARY_EXCLUDED_REPOS = ("onmax/",)

# ---------------------------------------------------------------------------
# Source configuration
# ---------------------------------------------------------------------------


class SourceKind(StrEnum):
    """Every source kind the registry knows how to fetch."""

    GITHUB = "github"
    GITLAB = "gitlab"
    NPM = "npm"
    GH_PR = "gh_pr"
    NIMIQ_WALLET = "nimiq-wallet"
    NIMIQ_BLOG = "nimiq-blog"
    GITHUB_ISSUES_FEEDBACK = "github-issues-feedback"


class ProjectRef(BaseModel):
    """A GitLab project: numeric (or path) id plus the display name."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class SourceConfig(BaseModel):
    """Parameters handed to a fetcher.

    Each fetcher reads only the fields it needs and returns no releases
    when a required one is missing.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    enabled: bool = True
    repos: list[str] | None = None
    projects: list[ProjectRef] | None = None
    packages: list[str] | None = None
    base_url: str | None = Field(None, alias="baseUrl")
    token: str | None = None
    since: str | None = None
    labels: list[str] | None = None
    state: str | None = None
    branches: dict[str, list[str]] | None = None
    link_mentions: bool | None = Field(None, alias="linkMentions")

    @field_validator("projects", mode="before")
    @classmethod
    def _parse_projects(cls, value: Any) -> Any:
        # "123:group/app,456:group/api"; entries without both parts are dropped
        if not isinstance(value, str):
            return value
        projects = []
        for entry in _split_csv(value):
            project_id, _, name = entry.partition(":")
            if project_id.strip() and name.strip():
                projects.append({"id": project_id.strip(), "name": name.strip()})
        return projects

    @field_validator("repos", "packages", "labels", mode="before")
    @classmethod
    def _parse_csv_list(cls, value: Any) -> Any:
        return _split_csv(value) if isinstance(value, str) else value

    @field_validator("base_url", "token", "since", "state", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class ExplicitSource(BaseModel):
    """The long form of a group's source: `{kind, config}`."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: SourceKind
    config: SourceConfig = Field(default_factory=SourceConfig)


class SourceGroup(BaseModel):
    """A labeled binding of one source to its parameters and visibility flags.

    Attributes:
        label: Human label, copied onto every release as group_label
        source: Shorthand ("gh:owner/repo", "npm:pkg", "nimiq-blog", ...)
                or an explicit {kind, config}
        token: Credential injected as config.token
        show_in_releases: Include in the public releases listing
        show_in_summary: Include in the weekly summary
        internal: Never include in the weekly summary
        requires_env: Skip the group unless all these variables are set
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    label: str
    source: str | ExplicitSource
    token: str | None = None
    show_in_releases: bool = Field(True, alias="showInReleases")
    show_in_summary: bool = Field(True, alias="showInSummary")
    internal: bool = False
    requires_env: list[str] = Field(default_factory=list, alias="requiresEnv")

    @field_validator("token", mode="before")
    @classmethod
    def _blank_token(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def env_satisfied(self) -> bool:
        return all(os.environ.get(name, "").strip() for name in self.requires_env)


class SourcesConfig(BaseModel):
    """Top-level sources file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    groups: list[SourceGroup] = Field(default_factory=list)
    max_releases: int = Field(DEFAULT_MAX_RELEASES, ge=1, alias="maxReleases")
    # substrings matched against Release.repo
    release_excluded_repos: list[str] = Field(
        default_factory=list, alias="releaseExcludedRepos"
    )
    summary_excluded_repos: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUMMARY_EXCLUDED_REPOS),
        alias="summaryExcludedRepos",
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_ENV_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


def expand_env(value: Any) -> Any:
    """Recursively replace ${VAR} / ${VAR:-default} in strings.

    An unset variable without a default expands to the empty string.
    """
    if isinstance(value, str):
        return _ENV_PLACEHOLDER.sub(
            lambda m: os.environ.get(m.group(1)) or (m.group(2) or ""), value
        )
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(item) for key, item in value.items()}
    return value


def parse_sources_config(raw: Any, origin: str = "<memory>") -> SourcesConfig:
    """Validate already-parsed YAML/JSON data into a SourcesConfig.

    A bare list is accepted as the list of groups.

    Raises:
        ConfigError: If the data does not match the schema
    """
    if raw is None:
        raw = {}
    if isinstance(raw, list):
        raw = {"groups": raw}
    try:
        return SourcesConfig.model_validate(expand_env(raw))
    except ValidationError as exc:
        raise ConfigError(f"Invalid sources config in {origin}: {exc}") from exc


def load_sources_config(path: str | Path) -> SourcesConfig:
    """Load and validate a YAML sources file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A validated SourcesConfig. Returns the built-in default
        configuration if the file doesn't exist.

    Raises:
        ConfigError: If the YAML content is invalid or fails validation.
    """
    config_path = Path(path)
    if not config_path.exists():
        return default_sources_config()

    try:
        raw = yaml.safe_load(config_path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    return parse_sources_config(raw, origin=str(path))


def default_sources_config() -> SourcesConfig:
    """The built-in source groups, resolved against the current environment."""
    github_token = os.environ.get("GITHUB_TOKEN", "")
    private_token = os.environ.get("PRIVATE_GITHUB_TOKEN") or github_token
    raw: list[dict[str, Any]] = [
        {"label": "Nimiq Core", "token": github_token, "source": "gh:nimiq/core-rs-albatross"},
        {
            "label": os.environ.get("INTERNAL_PROJECT_LABEL") or "Internal Project",
            "token": private_token,
            "source": os.environ.get("INTERNAL_PROJECT_SOURCE", "") or "github",
            "showInReleases": False,
            "requiresEnv": ["INTERNAL_PROJECT_SOURCE"],
        },
        {"label": "Nimiq MCP", "token": github_token, "source": "gh:onmax/nimiq-mcp"},
        {
            "label": "Albatross RPC Client",
            "token": github_token,
            "source": "gh:onmax/albatross-rpc-client-ts",
        },
        {"label": "Developer Center", "token": github_token, "source": "gh:nimiq/developer-center"},
        {
            "label": "Developer Center PRs",
            "token": github_token,
            "source": {
                "kind": "gh_pr",
                "config": {"repos": ["nimiq/developer-center"], "state": "closed"},
            },
        },
        {
            "label": "Tutorial",
            "token": github_token,
            "source": {
                "kind": "gh_pr",
                "config": {"repos": ["nimiq/tutorial"], "state": "closed"},
            },
        },
        {
            "label": "Nimiq Pay",
            "token": os.environ.get("GITLAB_TOKEN", ""),
            "requiresEnv": ["GITLAB_TOKEN", "GITLAB_PROJECTS"],
            "source": {
                "kind": "gitlab",
                "config": {
                    "projects": os.environ.get("GITLAB_PROJECTS", ""),
                    "baseUrl": os.environ.get("GITLAB_BASE_URL", ""),
                },
            },
        },
        {"label": "Nimiq Utils", "source": "npm:@nimiq/utils"},
        {"label": "Nimiq Wallet", "source": "nimiq-wallet"},
        {"label": "Nimiq Blog", "source": "nimiq-blog"},
        {
            "label": "Nimiq Feedback",
            "token": os.environ.get("FEEDBACK_GITHUB_TOKEN", ""),
            "source": f"gh_issues_feedback:{os.environ.get('FEEDBACK_REPO') or 'nimiq/feedback'}",
            "showInReleases": False,
            "requiresEnv": ["FEEDBACK_GITHUB_TOKEN"],
        },
    ]
    return SourcesConfig.model_validate({"groups": raw})


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def is_production() -> bool:
    return os.environ.get("ENVIRONMENT", "development").strip().lower() == "production"


class Settings(BaseModel):
    """Process-wide settings read from the environment.

    Attributes:
        environment: "development" or "production"
        log_level: DEBUG, INFO, WARNING or ERROR
        sources_config: Path of the YAML sources file
        openai_api_key: Falls back to the SDK's own OPENAI_API_KEY lookup
        openai_model: Chat model used for the weekly summary
        slack_webhook_url: Incoming webhook, used when no bot token is set
        slack_bot_token: Bot token for chat.postMessage and file uploads
        slack_channel: Channel id the bot posts to
        slack_force_dev: Send status notifications outside production too
        kv_path: JSON file backing the key-value store (in memory if unset)
        linear_api_key: Personal API key for the Linear recap
    """

    environment: str = "development"
    log_level: str = "INFO"
    sources_config: str = "sources.yaml"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    slack_webhook_url: str | None = None
    slack_bot_token: str | None = None
    slack_channel: str | None = None
    slack_force_dev: bool = False
    kv_path: str | None = None
    linear_api_key: str | None = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @classmethod
    def from_env(cls) -> Settings:
        def _get(name: str) -> str | None:
            value = os.environ.get(name, "").strip()
            return value or None

        return cls(
            environment=_get("ENVIRONMENT") or "development",
            log_level=_get("LOG_LEVEL") or "INFO",
            sources_config=_get("SOURCES_CONFIG") or "sources.yaml",
            openai_api_key=_get("OPENAI_API_KEY"),
            openai_model=_get("OPENAI_MODEL") or "gpt-4o-mini",
            slack_webhook_url=_get("SLACK_WEBHOOK_URL"),
            slack_bot_token=_get("SLACK_BOT_TOKEN"),
            slack_channel=_get("SLACK_CHANNEL"),
            slack_force_dev=_env_flag("SLACK_FORCE_DEV"),
            kv_path=_get("KV_PATH"),
            linear_api_key=_get("LINEAR_API_KEY"),
        )
