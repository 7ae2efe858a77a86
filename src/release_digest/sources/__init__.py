"""Source fetchers.

Every fetcher has the same shape:

    async def fetch_x(config: SourceConfig, repo_filter: str | None = None) -> list[Release]

It returns [] when disabled or when required config is missing, and
recovers from upstream failures per repo/project/package/post, so it never
raises past this boundary.
"""

from release_digest.sources.github import fetch_github_releases
from release_digest.sources.github_issues import fetch_github_issues_feedback
from release_digest.sources.github_pull_requests import fetch_github_pull_requests
from release_digest.sources.gitlab import fetch_gitlab_releases
from release_digest.sources.nimiq_blog import fetch_nimiq_blog_releases
from release_digest.sources.nimiq_wallet import fetch_nimiq_wallet_releases
from release_digest.sources.npm import fetch_npm_releases

__all__ = [
    "fetch_github_issues_feedback",
    "fetch_github_pull_requests",
    "fetch_github_releases",
    "fetch_gitlab_releases",
    "fetch_nimiq_blog_releases",
    "fetch_nimiq_wallet_releases",
    "fetch_npm_releases",
]
