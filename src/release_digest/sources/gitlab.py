"""GitLab releases fetcher.

`projects` is a list of {id, name} (or the "id:name,id:name" CSV form,
parsed by SourceConfig). Each project is fetched independently with the
configured bearer token from `{baseUrl}/api/v4/projects/{id}/releases`.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from release_digest.config import ProjectRef, SourceConfig
from release_digest.logging_config import get_logger
from release_digest.schemas import Release, RootNode
from release_digest.sources.body import process_release_body
from release_digest.sources.http import get_json, http_client

logger = get_logger(__name__)


async def fetch_gitlab_releases(
    config: SourceConfig,
    repo_filter: str | None = None,
) -> list[Release]:
    if not config.enabled:
        return []

    missing = [
        field
        for field, value in (("token", config.token), ("baseUrl", config.base_url), ("projects", config.projects))
        if not value
    ]
    if missing:
        for field in missing:
            logger.warning("source_config_missing", source="gitlab", field=field)
        return []

    base_url = config.base_url.rstrip("/")
    projects = [
        project for project in config.projects if not repo_filter or repo_filter in project.name
    ]

    async with http_client(headers={"Authorization": f"Bearer {config.token}"}) as client:
        batches = await asyncio.gather(
            *(_fetch_project(client, base_url, project) for project in projects)
        )
    return [release for batch in batches for release in batch]


async def _fetch_project(
    client: httpx.AsyncClient,
    base_url: str,
    project: ProjectRef,
) -> list[Release]:
    try:
        items = await get_json(client, f"{base_url}/api/v4/projects/{project.id}/releases")
    except Exception as exc:
        logger.warning("gitlab_fetch_failed", project=project.id, name=project.name, error=str(exc))
        return []

    releases = []
    for item in items or []:
        try:
            releases.append(_release_from_api(item, base_url, project))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("gitlab_release_skipped", project=project.id, error=str(exc))
    return releases


def _release_from_api(item: dict[str, Any], base_url: str, project: ProjectRef) -> Release:
    tag = item["tag_name"]
    description = item.get("description") or ""
    body = process_release_body(description, project.name) if description.strip() else RootNode()
    return Release(
        url=f"{base_url}/{project.name}/-/releases/{tag}",
        repo=project.name,
        tag=tag,
        title=item.get("name") or tag,
        date=item.get("released_at") or item.get("created_at") or "",
        body=body,
    )
