"""GitHub issues used as a feedback channel.

Each issue updated in the window (default: the last 7 days) becomes a
Release tagged "#N". Pull requests, which the issues endpoint also
returns, are dropped. Images are stripped from the body and the issue's
labels are appended as a bold "Labels:" line. In production, issues
labeled `test` are hidden.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from release_digest.config import SourceConfig, is_production
from release_digest.errors import RateLimitError
from release_digest.logging_config import get_logger
from release_digest.markup import paragraph_tree, render_to_tree
from release_digest.schemas import Release
from release_digest.sources.http import GITHUB_API, github_headers, http_client, paginate

logger = get_logger(__name__)

DEFAULT_WINDOW = timedelta(days=7)
TEST_LABEL = "test"

_MARKDOWN_IMAGE = re.compile(r"!\[.*?\]\(.*?\)")
_HTML_IMAGE = re.compile(r"<img[^>]*>", re.IGNORECASE)
_IMAGE_URL = re.compile(
    r"https?://\S*?\.(?:jpg|jpeg|png|gif|webp|svg)(?:\?\S*)?", re.IGNORECASE
)


def strip_images(markdown: str | None) -> str:
    """Remove markdown images, <img> tags and bare image URLs."""
    if not markdown:
        return ""
    cleaned = _MARKDOWN_IMAGE.sub("", markdown)
    cleaned = _HTML_IMAGE.sub("", cleaned)
    cleaned = _IMAGE_URL.sub("", cleaned)
    return cleaned.strip()


def _label_names(issue: dict[str, Any]) -> list[str]:
    names = []
    for label in issue.get("labels") or []:
        name = label.get("name") if isinstance(label, dict) else label
        if name:
            names.append(name)
    return names


def issue_to_release(issue: dict[str, Any], repo: str) -> Release:
    labels = _label_names(issue)
    content = strip_images(issue.get("body"))
    if labels:
        content += f"\n\n**Labels:** {', '.join(labels)}"

    title = issue.get("title") or f"#{issue['number']}"
    body = render_to_tree(content) if content.strip() else paragraph_tree(title)
    return Release(
        url=issue["html_url"],
        repo=repo,
        tag=f"#{issue['number']}",
        title=title,
        date=issue.get("created_at") or "",
        body=body,
    )


async def fetch_github_issues_feedback(
    config: SourceConfig,
    repo_filter: str | None = None,
    *,
    now: datetime | None = None,
) -> list[Release]:
    """Fetch recently updated issues of every repo in `config.repos`.

    Args:
        config: Needs `repos`; honors `token`, `since`, `state`, `labels`
        repo_filter: Only repos whose name contains this substring
        now: Reference time for the default 7-day window
    """
    if not config.enabled:
        return []
    if not config.repos:
        logger.warning("source_config_missing", source="github-issues-feedback", field="repos")
        return []

    repos = [repo for repo in config.repos if not repo_filter or repo_filter in repo]
    if not repos:
        return []

    since = config.since or ((now or datetime.now(timezone.utc)) - DEFAULT_WINDOW).isoformat()
    params: dict[str, Any] = {
        "state": config.state or "all",
        "since": since,
        "sort": "updated",
        "direction": "desc",
    }
    if config.labels:
        params["labels"] = ",".join(config.labels)

    hide_test_issues = is_production()
    async with http_client(headers=github_headers(config.token)) as client:
        batches = await asyncio.gather(
            *(_fetch_repo(client, repo, params, hide_test_issues) for repo in repos)
        )
    return [release for batch in batches for release in batch]


async def _fetch_repo(
    client: httpx.AsyncClient,
    repo: str,
    params: dict[str, Any],
    hide_test_issues: bool,
) -> list[Release]:
    try:
        issues = await paginate(client, f"{GITHUB_API}/repos/{repo}/issues", params=params)
    except RateLimitError as exc:
        logger.warning("github_rate_limited", repo=repo, reset_at=exc.reset_at)
        return []
    except Exception as exc:
        logger.warning("github_issues_failed", repo=repo, error=str(exc))
        return []

    releases = []
    for issue in issues:
        if "/pull/" in (issue.get("html_url") or "") or issue.get("pull_request"):
            continue
        if hide_test_issues and TEST_LABEL in _label_names(issue):
            continue
        try:
            release = issue_to_release(issue, repo)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("github_issue_skipped", repo=repo, error=str(exc))
            continue
        if release.date:
            releases.append(release)
    return releases
