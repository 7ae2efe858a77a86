"""npm registry fetcher: the most recent published versions of each package."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from release_digest.config import SourceConfig
from release_digest.logging_config import get_logger
from release_digest.markup import render_to_tree
from release_digest.schemas import Release, parse_timestamp
from release_digest.sources.http import get_json, http_client

logger = get_logger(__name__)

NPM_REGISTRY = "https://registry.npmjs.org"
VERSION_LIMIT = 10


def version_changelog(version: str, previous: str | None) -> str:
    lines = [f"- Updated to version {version}"]
    if previous:
        lines.append(f"- Previous version: {previous}")
    return "\n".join(lines)


def releases_from_packument(package: str, info: dict[str, Any]) -> list[Release]:
    """Turn a registry document into releases for the 10 newest versions."""
    versions = info.get("versions") or {}
    times = info.get("time") or {}

    # only versions with a parseable publish time, newest first
    published = [
        (parse_timestamp(times.get(version)), version)
        for version in versions
        if parse_timestamp(times.get(version)) is not None
    ]
    published.sort(key=lambda pair: pair[0], reverse=True)
    recent = [version for _, version in published[:VERSION_LIMIT]]

    releases = []
    for index, version in enumerate(recent):
        previous = recent[index + 1] if index + 1 < len(recent) else None
        releases.append(
            Release(
                url=f"https://www.npmjs.com/package/{package}/v/{version}",
                repo=f"npm/{package}",
                tag=version,
                title=f"{package}@{version}",
                date=times[version],
                body=render_to_tree(version_changelog(version, previous)),
            )
        )
    return releases


async def fetch_npm_releases(
    config: SourceConfig,
    repo_filter: str | None = None,
) -> list[Release]:
    if not config.enabled:
        return []
    if not config.packages:
        logger.warning("source_config_missing", source="npm", field="packages")
        return []

    packages = [pkg for pkg in config.packages if not repo_filter or repo_filter in pkg]
    async with http_client() as client:
        batches = await asyncio.gather(*(_fetch_package(client, pkg) for pkg in packages))
    return [release for batch in batches for release in batch]


async def _fetch_package(client: httpx.AsyncClient, package: str) -> list[Release]:
    try:
        info = await get_json(client, f"{NPM_REGISTRY}/{package}")
        if not info.get("versions") or not info.get("time"):
            logger.warning("npm_no_versions", package=package)
            return []
        return releases_from_packument(package, info)
    except Exception as exc:
        logger.warning("npm_fetch_failed", package=package, error=str(exc))
        return []
