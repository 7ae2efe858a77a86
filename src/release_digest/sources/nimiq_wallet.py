"""Internal release feed for the Nimiq frontend apps.

The feed is a JSON array of {version, date, message, app}. There is no
per-release page, so every record links to "#".
"""

from __future__ import annotations

from release_digest.config import SourceConfig
from release_digest.logging_config import get_logger
from release_digest.markup import extract_list_items, render_to_tree
from release_digest.schemas import NO_URL, Release, RootNode
from release_digest.sources.body import changelog_body
from release_digest.sources.http import get_json, http_client

logger = get_logger(__name__)

FEED_URL = "https://nimiq-frontend-release-notes.netlify.app/mainnet_releases.json"


async def fetch_nimiq_wallet_releases(
    config: SourceConfig,
    repo_filter: str | None = None,
) -> list[Release]:
    if not config.enabled:
        return []

    try:
        async with http_client() as client:
            records = await get_json(client, FEED_URL)
    except Exception as exc:
        logger.warning("wallet_feed_failed", url=FEED_URL, error=str(exc))
        return []

    releases = []
    for record in records or []:
        try:
            repo = f"nimiq/{record['app'].lower()}"
            if repo_filter and repo_filter not in repo:
                continue
            releases.append(
                Release(
                    url=NO_URL,
                    repo=repo,
                    tag=record["version"],
                    title=record["version"],
                    date=record.get("date") or "",
                    body=_message_body(record.get("message") or "", repo),
                )
            )
        except (KeyError, TypeError, AttributeError, ValueError) as exc:
            logger.warning("wallet_record_skipped", error=str(exc))
    return releases


def _message_body(message: str, repo: str) -> RootNode:
    messages = extract_list_items(render_to_tree(message))
    if not messages:
        return render_to_tree(message)
    return changelog_body(messages, repo)
