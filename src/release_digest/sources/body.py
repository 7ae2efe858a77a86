"""Release body pipeline shared by the commit-shaped fetchers.

Markdown from GitHub releases, tag changelogs, GitLab descriptions and the
wallet feed all go through `process_release_body`:

1. Parse into a markup tree.
2. If the tree already has top-level h1-h4 headings, keep it as is.
3. Otherwise pull commit messages out of its list items, enhance each,
   group them by conventional-commit prefix and re-render.
"""

from __future__ import annotations

from release_digest.commits import (
    enhance_commit_message,
    group_commits,
    grouped_commits_to_markdown,
)
from release_digest.markup import (
    extract_list_items,
    flatten_text,
    has_headings,
    render_to_tree,
)
from release_digest.schemas import ElementNode, RootNode

_ANY_HEADING = ("h1", "h2", "h3", "h4", "h5", "h6")


def process_release_body(
    markdown: str,
    repo: str,
    *,
    link_mentions: bool = False,
) -> RootNode:
    body = render_to_tree(markdown)
    if has_headings(body):
        return body

    messages = extract_list_items(body)
    if not messages:
        return body

    enhanced = [
        enhance_commit_message(message, repo, link_mentions=link_mentions)
        for message in messages
    ]
    grouped = group_commits(enhanced)
    if not grouped.ungrouped and not grouped.groups:
        return body
    return render_to_tree(grouped_commits_to_markdown(grouped))


def changelog_body(messages: list[str], repo: str, *, link_mentions: bool = False) -> RootNode:
    """Build a release body from raw commit messages (first line of each)."""
    enhanced = [
        enhance_commit_message(message, repo, link_mentions=link_mentions)
        for message in messages
    ]
    grouped = group_commits(enhanced)
    if grouped.ungrouped or grouped.groups:
        markdown = grouped_commits_to_markdown(grouped)
    else:
        markdown = "- Initial release"
    return process_release_body(markdown, repo, link_mentions=link_mentions)


def _is_whats_changed(node: object) -> bool:
    if not isinstance(node, ElementNode) or node.tag not in _ANY_HEADING:
        return False
    return flatten_text(node).lower().replace("’", "'") == "what's changed"


def remove_duplicate_whats_changed(body: RootNode) -> RootNode:
    """Drop a "What's Changed" heading that directly follows another one."""
    children = []
    for child in body.children:
        if children and _is_whats_changed(child) and _is_whats_changed(children[-1]):
            continue
        children.append(child)
    return RootNode(children=children)
