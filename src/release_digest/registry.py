"""Source registry: which fetcher serves which source kind.

SOURCE_REGISTRY maps every SourceKind to its definition. The mapping is
checked when this module is imported, so adding a kind without a fetcher
fails at startup instead of at the first request.

Groups in the sources file name their source either with a shorthand
("gh:owner/repo", "gh_pr:owner/repo", "npm:@scope/pkg",
"gh_issues_feedback:owner/repo"), a bare kind ("nimiq-blog"), or an
explicit {kind, config}. `normalize_source_item` resolves all three forms.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from release_digest.config import ExplicitSource, SourceConfig, SourceGroup, SourceKind
from release_digest.errors import ConfigError
from release_digest.logging_config import get_logger
from release_digest.schemas import Release
from release_digest.sources import (
    fetch_github_issues_feedback,
    fetch_github_pull_requests,
    fetch_github_releases,
    fetch_gitlab_releases,
    fetch_nimiq_blog_releases,
    fetch_nimiq_wallet_releases,
    fetch_npm_releases,
)

logger = get_logger(__name__)

Fetcher = Callable[[SourceConfig, str | None], Awaitable[list[Release]]]


class ReleaseContext(StrEnum):
    """Who is asking: the public listing or the weekly summary."""

    RELEASES = "releases"
    SUMMARY = "summary"


@dataclass(frozen=True)
class SourceDefinition:
    name: str
    description: str
    fetcher: Fetcher


@dataclass(frozen=True)
class ResolvedSource:
    kind: SourceKind
    config: SourceConfig


@dataclass(frozen=True)
class FetchUnit:
    """One fetcher invocation: a kind, its config and the group it came from."""

    kind: SourceKind
    config: SourceConfig
    group_label: str


SOURCE_REGISTRY: dict[SourceKind, SourceDefinition] = {
    SourceKind.GITHUB: SourceDefinition(
        name="GitHub",
        description="Releases of GitHub repositories, derived from tags when there are none",
        fetcher=fetch_github_releases,
    ),
    SourceKind.GITLAB: SourceDefinition(
        name="GitLab",
        description="Releases of GitLab projects",
        fetcher=fetch_gitlab_releases,
    ),
    SourceKind.NPM: SourceDefinition(
        name="npm",
        description="Published versions from the npm registry",
        fetcher=fetch_npm_releases,
    ),
    SourceKind.GH_PR: SourceDefinition(
        name="GitHub Pull Requests",
        description="Recently merged pull requests, grouped by week",
        fetcher=fetch_github_pull_requests,
    ),
    SourceKind.NIMIQ_WALLET: SourceDefinition(
        name="Nimiq Wallet",
        description="Release notes of the Nimiq frontend apps",
        fetcher=fetch_nimiq_wallet_releases,
    ),
    SourceKind.NIMIQ_BLOG: SourceDefinition(
        name="Nimiq Blog",
        description="Latest posts scraped from the Nimiq blog",
        fetcher=fetch_nimiq_blog_releases,
    ),
    SourceKind.GITHUB_ISSUES_FEEDBACK: SourceDefinition(
        name="GitHub Issues Feedback",
        description="Recently updated issues of a feedback repository",
        fetcher=fetch_github_issues_feedback,
    ),
}

_unregistered = [kind.value for kind in SourceKind if kind not in SOURCE_REGISTRY]
if _unregistered:
    raise ConfigError(f"Source kinds without a fetcher: {', '.join(_unregistered)}")


SHORTHAND_PREFIXES: dict[str, SourceKind] = {
    "gh": SourceKind.GITHUB,
    "gh_pr": SourceKind.GH_PR,
    "npm": SourceKind.NPM,
    "gh_issues_feedback": SourceKind.GITHUB_ISSUES_FEEDBACK,
}


def kind_for_prefix(prefix: str) -> SourceKind | None:
    """Resolve a filter/shorthand prefix: either a shorthand or a kind value."""
    if prefix in SHORTHAND_PREFIXES:
        return SHORTHAND_PREFIXES[prefix]
    try:
        return SourceKind(prefix)
    except ValueError:
        return None


def normalize_source_item(
    item: str | ExplicitSource | dict[str, Any],
    group_token: str | None = None,
) -> ResolvedSource:
    """Resolve a group's `source` into a kind plus config.

    The group token, when set, replaces `config.token`.

    Raises:
        ConfigError: Unknown shorthand, empty target or invalid explicit form
    """
    if isinstance(item, dict):
        try:
            item = ExplicitSource.model_validate(item)
        except ValidationError as exc:
            raise ConfigError(f"Invalid source definition {item!r}: {exc}") from exc

    if isinstance(item, ExplicitSource):
        kind, config = item.kind, item.config
    else:
        value = item.strip()
        prefix, separator, target = value.partition(":")
        target = target.strip()
        if separator and prefix in SHORTHAND_PREFIXES:
            if not target:
                raise ConfigError(f"Source shorthand {item!r} has no target")
            kind = SHORTHAND_PREFIXES[prefix]
            if kind is SourceKind.NPM:
                config = SourceConfig(packages=[target])
            else:
                config = SourceConfig(repos=[target])
        elif not separator and value in {kind.value for kind in SourceKind}:
            kind, config = SourceKind(value), SourceConfig()
        else:
            raise ConfigError(f"Unknown source shorthand: {item!r}")

    if group_token:
        config = config.model_copy(update={"token": group_token})
    return ResolvedSource(kind=kind, config=config)


def flatten_source_groups(
    groups: list[SourceGroup],
    context: ReleaseContext | None = None,
) -> list[FetchUnit]:
    """Expand groups into fetch units visible in `context`.

    Groups whose `requiresEnv` variables are not all set are skipped. With
    no context every remaining group is included.
    """
    units: list[FetchUnit] = []
    for group in groups:
        if not group.env_satisfied():
            logger.debug("source_group_skipped", group=group.label, reason="requires_env")
            continue
        if context is ReleaseContext.RELEASES and not group.show_in_releases:
            continue
        if context is ReleaseContext.SUMMARY and (not group.show_in_summary or group.internal):
            continue
        resolved = normalize_source_item(group.source, group.token)
        units.append(FetchUnit(kind=resolved.kind, config=resolved.config, group_label=group.label))
    return units
