"""GitHub releases fetcher, with a tag-derived changelog fallback.

For each configured repo:
- GET /repos/{repo}/releases; every non-draft release becomes a Release
  whose notes are enhanced, regrouped when they are a flat commit list,
  and cleaned of a doubled "What's Changed" heading.
- If the repo has no releases at all, synthesize one per recent tag (5 at
  most) from the commits between that tag and the previous one. The oldest
  tag gets the 10 most recent commits reachable from it.

GitHub API docs: https://docs.github.com/en/rest/releases
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx

from release_digest.commits import enhance_commit_message
from release_digest.config import SourceConfig
from release_digest.errors import RateLimitError
from release_digest.logging_config import get_logger
from release_digest.schemas import Release
from release_digest.sources.body import (
    changelog_body,
    process_release_body,
    remove_duplicate_whats_changed,
)
from release_digest.sources.http import GITHUB_API, get_json, github_headers, http_client

logger = get_logger(__name__)

TAG_LIMIT = 5
INITIAL_COMMITS = 10
RELEASE_COMMIT_PREFIX = "chore: release"


def release_url(repo: str, tag: str) -> str:
    return f"https://github.com/{repo}/releases/tag/{tag}"


async def fetch_github_releases(
    config: SourceConfig,
    repo_filter: str | None = None,
) -> list[Release]:
    """Fetch releases (or tag changelogs) for every repo in `config.repos`.

    Args:
        config: Needs `repos`; `token` is optional but raises the rate limit.
                `link_mentions` defaults to True for this source.
        repo_filter: Only repos whose name contains this substring

    Returns:
        Releases from every repo that could be fetched; never raises
    """
    if not config.enabled:
        return []
    if not config.repos:
        logger.warning("source_config_missing", source="github", field="repos")
        return []

    repos = [repo for repo in config.repos if not repo_filter or repo_filter in repo]
    link_mentions = True if config.link_mentions is None else config.link_mentions

    async with http_client(headers=github_headers(config.token)) as client:
        batches = await asyncio.gather(
            *(_fetch_repo(client, repo, link_mentions) for repo in repos)
        )
    return [release for batch in batches for release in batch]


async def _fetch_repo(
    client: httpx.AsyncClient,
    repo: str,
    link_mentions: bool,
) -> list[Release]:
    try:
        items = await get_json(
            client, f"{GITHUB_API}/repos/{repo}/releases", params={"per_page": 100}
        )
        if not items:
            logger.info("github_no_releases", repo=repo, fallback="tags")
            return await _releases_from_tags(client, repo, link_mentions)

        releases = []
        for item in items:
            if item.get("draft"):
                continue
            try:
                releases.append(_release_from_api(item, repo, link_mentions))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("github_release_skipped", repo=repo, error=str(exc))
        return releases
    except RateLimitError as exc:
        logger.warning("github_rate_limited", repo=repo, reset_at=exc.reset_at)
        return []
    except Exception as exc:
        logger.warning("github_fetch_failed", repo=repo, error=str(exc))
        return []


def _release_from_api(item: dict[str, Any], repo: str, link_mentions: bool) -> Release:
    tag = item["tag_name"]
    markdown = enhance_commit_message(item.get("body") or "", repo, link_mentions=link_mentions)
    body = process_release_body(markdown, repo, link_mentions=link_mentions)
    return Release(
        url=item.get("html_url") or release_url(repo, tag),
        repo=repo,
        tag=tag,
        title=item.get("name") or tag,
        date=item.get("published_at") or item.get("created_at") or "",
        body=remove_duplicate_whats_changed(body),
    )


# ---------------------------------------------------------------------------
# Tags fallback
# ---------------------------------------------------------------------------


async def _releases_from_tags(
    client: httpx.AsyncClient,
    repo: str,
    link_mentions: bool,
) -> list[Release]:
    # one extra tag so the last kept one still has a predecessor to diff against
    tags = await get_json(
        client, f"{GITHUB_API}/repos/{repo}/tags", params={"per_page": TAG_LIMIT + 1}
    )
    if not tags:
        return []

    recent = tags[:TAG_LIMIT]
    previous = [tags[i + 1] if i + 1 < len(tags) else None for i in range(len(recent))]
    return list(
        await asyncio.gather(
            *(
                _tag_release(client, repo, tag, prev, link_mentions)
                for tag, prev in zip(recent, previous)
            )
        )
    )


async def _tag_release(
    client: httpx.AsyncClient,
    repo: str,
    tag: dict[str, Any],
    previous: dict[str, Any] | None,
    link_mentions: bool,
) -> Release:
    name = tag["name"]
    commits: list[dict[str, Any]] = []
    tag_commit: dict[str, Any] | None = None

    try:
        if previous is not None:
            comparison = await get_json(
                client, f"{GITHUB_API}/repos/{repo}/compare/{previous['name']}...{name}"
            )
            commits = comparison.get("commits") or []
            # compare lists oldest first; the tag points at the last one
            tag_commit = commits[-1] if commits else None
        else:
            commits = await get_json(
                client,
                f"{GITHUB_API}/repos/{repo}/commits",
                params={"sha": tag["commit"]["sha"], "per_page": INITIAL_COMMITS},
            ) or []
            tag_commit = commits[0] if commits else None
    except Exception as exc:
        logger.warning("github_tag_commits_failed", repo=repo, tag=name, error=str(exc))

    messages = []
    for commit in commits:
        message = (commit.get("commit") or {}).get("message") or ""
        if not message or message.startswith(RELEASE_COMMIT_PREFIX):
            continue
        messages.append(message.split("\n")[0])

    return Release(
        url=release_url(repo, name),
        repo=repo,
        tag=name,
        title=name,
        date=_commit_date(tag_commit) or datetime.now(timezone.utc).isoformat(),
        body=changelog_body(messages, repo, link_mentions=link_mentions),
    )


def _commit_date(commit: dict[str, Any] | None) -> str | None:
    if not commit:
        return None
    details = commit.get("commit") or {}
    for role in ("committer", "author"):
        date = (details.get(role) or {}).get("date")
        if date:
            return date
    return None
