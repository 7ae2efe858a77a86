"""Shared HTTP plumbing for the source fetchers.

Every upstream call goes through here so that:
- all requests carry a bounded timeout (HTTP_TIMEOUT)
- GitHub's "403 + X-RateLimit-Remaining: 0" surfaces as RateLimitError,
  distinct from a generic UpstreamError
- pagination loops stop after MAX_PAGES pages at most, and keep the pages
  they already have when a later page fails

Fetchers catch these errors at the smallest unit (repo, project, package,
post), log them and carry on with an empty contribution. Nothing here
retries.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from release_digest.errors import RateLimitError, UpstreamError
from release_digest.logging_config import get_logger

HTTP_TIMEOUT = 20.0
MAX_PAGES = 10
PER_PAGE = 100

GITHUB_API = "https://api.github.com"

logger = get_logger(__name__)


def http_client(**kwargs: Any) -> httpx.AsyncClient:
    """An AsyncClient with the shared timeout; use as an async context manager."""
    kwargs.setdefault("timeout", HTTP_TIMEOUT)
    kwargs.setdefault("follow_redirects", True)
    return httpx.AsyncClient(**kwargs)


def github_headers(token: str | None = None) -> dict[str, str]:
    headers = {
        "Accept": "application/vnd.github.v3+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def check_rate_limit(response: httpx.Response) -> None:
    """Raise RateLimitError for an exhausted GitHub rate limit.

    Raises:
        RateLimitError: On 403 with X-RateLimit-Remaining of 0; the reset
                        time comes from X-RateLimit-Reset (epoch seconds)
    """
    if response.status_code != 403:
        return
    if response.headers.get("x-ratelimit-remaining") != "0":
        return
    reset = response.headers.get("x-ratelimit-reset", "")
    try:
        reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat()
    except ValueError:
        reset_at = reset or "unknown"
    raise RateLimitError(str(response.request.url), reset_at)


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> Any:
    """GET a URL and decode its JSON body.

    Raises:
        RateLimitError: GitHub rate limit exhausted
        UpstreamError: Any other non-2xx status or an undecodable body
    """
    try:
        response = await client.get(url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Request to {url} failed: {exc}") from exc
    check_rate_limit(response)
    if response.is_error:
        raise UpstreamError(
            f"HTTP {response.status_code} for {response.request.url}",
            status_code=response.status_code,
        )
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(f"Invalid JSON from {url}: {exc}") from exc


async def get_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    headers: dict[str, str] | None = None,
) -> str:
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Request to {url} failed: {exc}") from exc
    if response.is_error:
        raise UpstreamError(
            f"HTTP {response.status_code} for {url}", status_code=response.status_code
        )
    return response.text


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    payload: Any,
    headers: dict[str, str] | None = None,
) -> Any:
    """POST a JSON payload and decode the JSON answer (GraphQL endpoints).

    Raises:
        UpstreamError: Transport failure, non-2xx status or an undecodable body
    """
    try:
        response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Request to {url} failed: {exc}") from exc
    if response.is_error:
        raise UpstreamError(
            f"HTTP {response.status_code} for {url}", status_code=response.status_code
        )
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(f"Invalid JSON from {url}: {exc}") from exc


async def paginate(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    max_pages: int = MAX_PAGES,
    stop: Callable[[list[dict]], bool] | None = None,
) -> list[dict]:
    """Collect a page-numbered list endpoint.

    Stops on an empty or short page, after `max_pages` pages, or as soon
    as `stop(page_items)` returns True (the page itself is still kept).

    Raises:
        UpstreamError: Only when the first page fails; a later failure
                       is logged and the pages collected so far are returned
    """
    base_params = {"per_page": PER_PAGE, **(params or {})}
    per_page = int(base_params["per_page"])
    items: list[dict] = []

    for page in range(1, max_pages + 1):
        try:
            data = await get_json(
                client, url, params={**base_params, "page": page}, headers=headers
            )
        except UpstreamError as exc:
            if page == 1:
                raise
            logger.warning(
                "pagination_truncated", url=url, page=page, kept=len(items), error=str(exc)
            )
            break
        if not isinstance(data, list) or not data:
            break
        items.extend(data)
        if stop is not None and stop(data):
            break
        if len(data) < per_page:
            break

    return items
