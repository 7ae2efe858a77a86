"""GitHub pull requests fetcher: merged PRs regrouped into weekly releases.

Closed PRs are listed per repo, newest update first, and only those merged
within the last 7 days (or since `config.since`, whichever is later) are
kept. The PRs of all repos are then folded into synthetic "Week of
YYYY-MM-DD" releases holding at most three PRs each.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any

import httpx

from release_digest.config import SourceConfig
from release_digest.errors import RateLimitError
from release_digest.logging_config import get_logger
from release_digest.markup import element, paragraph_tree, text
from release_digest.schemas import Release, RootNode, parse_timestamp
from release_digest.sources.http import GITHUB_API, github_headers, http_client, paginate

logger = get_logger(__name__)

WINDOW = timedelta(days=7)
PRS_PER_RELEASE = 3
TITLE_LIMIT = 100


def _sorted_by_update_desc(params: Mapping[str, Any]) -> bool:
    return params.get("sort") == "updated" and params.get("direction") == "desc"


async def fetch_github_pull_requests(
    config: SourceConfig,
    repo_filter: str | None = None,
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[Release]:
    """Fetch recently merged PRs and group them into weekly releases.

    Args:
        config: Needs `repos`; honors `token`, `state`, `since`, `branches`
        repo_filter: Only repos whose name contains this substring
        now: Reference time for the 7-day window (defaults to now, UTC)
        tz: Time zone whose Sunday midnight starts a week (defaults to local)
    """
    if not config.enabled:
        return []
    if not config.repos:
        logger.warning("source_config_missing", source="gh_pr", field="repos")
        return []

    repos = [repo for repo in config.repos if not repo_filter or repo_filter in repo]
    if not repos:
        return []

    now = now or datetime.now(timezone.utc)
    cutoff = now - WINDOW
    since = parse_timestamp(config.since)
    if since is not None and since > cutoff:
        cutoff = since

    async with http_client(headers=github_headers(config.token)) as client:
        batches = await asyncio.gather(
            *(_fetch_repo(client, repo, config, cutoff) for repo in repos)
        )

    pull_requests = [release for batch in batches for release in batch]
    return group_into_weekly_releases(pull_requests, tz=tz)


async def _fetch_repo(
    client: httpx.AsyncClient,
    repo: str,
    config: SourceConfig,
    cutoff: datetime,
) -> list[Release]:
    params = {
        "state": config.state or "closed",
        "sort": "updated",
        "direction": "desc",
    }

    def _past_cutoff(page: list[dict]) -> bool:
        # only valid while the listing is ordered by update time, newest first
        if not _sorted_by_update_desc(params):
            return False
        for item in page:
            updated = parse_timestamp(item.get("updated_at"))
            if updated is not None and updated < cutoff:
                return True
        return False

    try:
        items = await paginate(
            client, f"{GITHUB_API}/repos/{repo}/pulls", params=params, stop=_past_cutoff
        )
    except RateLimitError as exc:
        logger.warning("github_rate_limited", repo=repo, reset_at=exc.reset_at)
        return []
    except Exception as exc:
        logger.warning("github_pulls_failed", repo=repo, error=str(exc))
        return []

    branches = (config.branches or {}).get(repo)
    releases = []
    for item in items:
        merged_at = parse_timestamp(item.get("merged_at"))
        if merged_at is None or merged_at < cutoff:
            continue
        if branches and ((item.get("base") or {}).get("ref") not in branches):
            continue
        title = item.get("title") or f"#{item.get('number')}"
        releases.append(
            Release(
                url=item.get("html_url") or f"https://github.com/{repo}/pull/{item.get('number')}",
                repo=repo,
                tag=f"#{item.get('number')}",
                title=title,
                date=item["merged_at"],
                body=paragraph_tree(title),
            )
        )
    return releases


# ---------------------------------------------------------------------------
# Weekly grouping
# ---------------------------------------------------------------------------


def week_start(moment: datetime, tz: tzinfo | None = None) -> str:
    """The Sunday (local midnight) starting the week of `moment`, as YYYY-MM-DD."""
    local = moment.astimezone(tz)
    start = local.date() - timedelta(days=(local.weekday() + 1) % 7)
    return start.isoformat()


def _truncate(title: str) -> str:
    if len(title) > TITLE_LIMIT:
        return title[: TITLE_LIMIT - 3] + "..."
    return title


def _weekly_release(week: str, bucket: list[Release]) -> Release:
    newest = bucket[0]
    body = RootNode(
        children=[element("ul", [element("li", [text(pr.title)]) for pr in bucket])]
    )
    return Release(
        url=newest.url,
        repo=newest.repo,
        tag=f"Week of {week}",
        title=_truncate("; ".join(pr.title for pr in bucket)),
        date=newest.date,
        body=body,
    )


def group_into_weekly_releases(
    pull_requests: list[Release],
    tz: tzinfo | None = None,
) -> list[Release]:
    """Fold per-PR releases into weekly releases of at most three PRs.

    PRs are taken newest first; a new release starts whenever the week
    changes or the current one already holds three PRs.
    """
    dated = [(pr.published_at, pr) for pr in pull_requests if pr.published_at is not None]
    dated.sort(key=lambda pair: pair[0], reverse=True)

    weekly: list[Release] = []
    bucket: list[Release] = []
    current_week: str | None = None

    for published, pr in dated:
        week = week_start(published, tz)
        if bucket and (week != current_week or len(bucket) >= PRS_PER_RELEASE):
            weekly.append(_weekly_release(current_week, bucket))
            bucket = []
        current_week = week
        bucket.append(pr)

    if bucket and current_week is not None:
        weekly.append(_weekly_release(current_week, bucket))

    return weekly
