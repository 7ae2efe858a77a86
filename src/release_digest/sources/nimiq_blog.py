"""Nimiq blog scraper.

The blog has no feed, so the index page is scraped: the first 8 distinct
/blog/ links (document order, i.e. newest first) are fetched and each post
yields its h1, its <time> element and the first paragraph of the article.
The markup can change under us at any time, so every post is isolated:
one broken page only costs that post.
"""

from __future__ import annotations

import asyncio
import re
from datetime import date, datetime, timezone
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from release_digest.config import SourceConfig
from release_digest.logging_config import get_logger
from release_digest.markup import paragraph_tree
from release_digest.schemas import Release, parse_timestamp
from release_digest.sources.http import get_text, http_client

logger = get_logger(__name__)

BLOG_URL = "https://www.nimiq.com/blog"
BLOG_REPO = "Nimiq Blog"
POST_LIMIT = 8
FALLBACK_DATE = datetime(2025, 1, 1, tzinfo=timezone.utc)

# the blog serves an empty shell to unknown agents
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )
}

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_MONTH_DAY = re.compile(r"^([A-Za-z]{3})[a-z]*\.?\s+(\d{1,2})(?:,\s*(\d{4}))?$")


def parse_blog_date(value: str | None, today: date | None = None) -> datetime:
    """Parse "Aug 28", "Aug 28, 2024" or an ISO date; fall back to 2025-01-01.

    A date without a year is placed in the current year.
    """
    if not value or not value.strip():
        return FALLBACK_DATE
    cleaned = value.strip()

    match = _MONTH_DAY.match(cleaned)
    if match:
        month = MONTHS.get(match.group(1).lower())
        day = int(match.group(2))
        year = int(match.group(3)) if match.group(3) else (today or date.today()).year
        if month is None:
            return FALLBACK_DATE
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return FALLBACK_DATE

    return parse_timestamp(cleaned) or FALLBACK_DATE


def extract_post_links(html: str, base_url: str = BLOG_URL) -> list[str]:
    """First POST_LIMIT distinct post URLs under /blog/, absolute, in page order."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if "/blog/" not in href:
            continue
        url = urljoin(base_url, href)
        if urlparse(url).path.rstrip("/") == "/blog" or url in links:
            continue
        links.append(url)
        if len(links) >= POST_LIMIT:
            break
    return links


def _title_from_slug(url: str) -> str:
    slug = urlparse(url).path.rstrip("/").rsplit("/", 1)[-1]
    return slug.replace("-", " ").title() or "Untitled"


def parse_post(html: str, url: str, today: date | None = None) -> Release:
    soup = BeautifulSoup(html, "html.parser")

    heading = soup.find("h1")
    title = heading.get_text(" ", strip=True) if heading else ""
    title = title or _title_from_slug(url)

    published = None
    time_tag = soup.find("time")
    if time_tag is not None:
        published = time_tag.get("datetime") or time_tag.get_text(" ", strip=True)
    posted = parse_blog_date(published, today)

    summary = ""
    article = soup.find("article")
    if article is not None:
        paragraph = article.find("p")
        if paragraph is not None:
            summary = paragraph.get_text(" ", strip=True)

    return Release(
        url=url,
        repo=BLOG_REPO,
        tag=f"blog-{posted.date().isoformat()}",
        title=title,
        date=posted.isoformat(),
        body=paragraph_tree(summary or title),
    )


async def fetch_nimiq_blog_releases(
    config: SourceConfig,
    repo_filter: str | None = None,
) -> list[Release]:
    if not config.enabled:
        return []
    if repo_filter and repo_filter not in BLOG_REPO:
        return []

    async with http_client(headers=BROWSER_HEADERS) as client:
        try:
            index_html = await get_text(client, BLOG_URL)
        except Exception as exc:
            logger.warning("blog_index_failed", url=BLOG_URL, error=str(exc))
            return []

        links = extract_post_links(index_html)
        posts = await asyncio.gather(*(_fetch_post(client, url) for url in links))
    return [post for post in posts if post is not None]


async def _fetch_post(client: httpx.AsyncClient, url: str) -> Release | None:
    try:
        html = await get_text(client, url)
        return parse_post(html, url)
    except Exception as exc:
        logger.warning("blog_post_failed", url=url, error=str(exc))
        return None
