"""Rewrite references inside commit text into repository-scoped markdown links.

Given a message and the "owner/name" it belongs to, the enhancer applies,
in this order:
1. Full PR/issue URLs of the same repo -> [#N](url)
2. #N (optionally after fix/fixes/close/closes/resolve/resolves) -> issue link
3. 7-8 hex tokens -> abbreviated commit link
4. 40 hex tokens -> commit link displaying the first 8 characters
5. @username -> profile link (only when link_mentions=True)

Every token must sit on a boundary: preceded by the start of the text or
whitespace, followed by whitespace, one of ".,!?" or the end. Text that
has already been enhanced is left alone, so running twice is a no-op.
"""

from __future__ import annotations

import re

GITHUB_URL = "https://github.com"

# already-linked URLs are preceded by "](" and are skipped
_REPO_URL = re.compile(
    r"(?<!\]\()https://github\.com/([^/\s]+/[^/\s]+)/(?:pull|issues)/(\d+)"
)
_ISSUE_REF = re.compile(
    r"(?<!\S)((?:fix(?:es)?|close(?:s)?|resolve(?:s)?)\s+)?#(\d+)(?=[\s.,!?]|$)",
    re.IGNORECASE,
)
_SHORT_SHA = re.compile(r"(?<!\S)([a-f0-9]{7,8})(?=[\s.,!?]|$)", re.IGNORECASE)
_FULL_SHA = re.compile(r"(?<!\S)([a-f0-9]{40})(?=[\s.,!?]|$)", re.IGNORECASE)
_MENTION = re.compile(
    r"(?<!\S)@([a-zA-Z0-9](?:[a-zA-Z0-9]|-(?=[a-zA-Z0-9])){0,38})(?=[\s.,!?]|$)"
)


def enhance_commit_message(
    message: str,
    repo: str,
    *,
    link_mentions: bool = False,
) -> str:
    """Turn bare issue numbers, SHAs and (optionally) mentions into links.

    Args:
        message: Raw commit, PR or release-note text
        repo: Repository in "owner/name" format; links are scoped to it
        link_mentions: Also link @username to the GitHub profile

    Returns:
        The enhanced markdown text
    """
    base_url = f"{GITHUB_URL}/{repo}"

    def _repo_url(match: re.Match[str]) -> str:
        if match.group(1) != repo:
            return match.group(0)
        return f"[#{match.group(2)}]({match.group(0)})"

    def _issue(match: re.Match[str]) -> str:
        verb = match.group(1) or ""
        number = match.group(2)
        return f"{verb}[#{number}]({base_url}/issues/{number})"

    def _short_sha(match: re.Match[str]) -> str:
        sha = match.group(1)
        return f"[`{sha}`]({base_url}/commit/{sha})"

    def _full_sha(match: re.Match[str]) -> str:
        sha = match.group(1)
        return f"[`{sha[:8]}`]({base_url}/commit/{sha})"

    enhanced = _REPO_URL.sub(_repo_url, message)
    enhanced = _ISSUE_REF.sub(_issue, enhanced)
    enhanced = _SHORT_SHA.sub(_short_sha, enhanced)
    enhanced = _FULL_SHA.sub(_full_sha, enhanced)

    if link_mentions:
        enhanced = _MENTION.sub(
            lambda m: f"[@{m.group(1)}]({GITHUB_URL}/{m.group(1)})", enhanced
        )

    return enhanced
