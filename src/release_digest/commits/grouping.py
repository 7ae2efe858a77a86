"""Group commit messages by conventional-commit prefix and render them.

    >>> grouped = group_commits(["feat: add x", "fix: y", "tidy up"])
    >>> [g.type for g in grouped.groups]
    ['feat', 'fix']
    >>> print(grouped_commits_to_markdown(grouped))
    - tidy up
    <BLANKLINE>
    ## ✨ Features
    <BLANKLINE>
    - add x
    <BLANKLINE>
    ## 🐛 Bug Fixes
    <BLANKLINE>
    - y
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

# Well-known prefixes, most important first
PRIORITY_PREFIXES = (
    "feat",
    "fix",
    "perf",
    "refactor",
    "style",
    "test",
    "docs",
    "build",
    "ci",
    "chore",
    "revert",
)

HEADINGS = {
    "feat": "✨ Features",
    "fix": "🐛 Bug Fixes",
    "perf": "⚡ Performance",
    "refactor": "♻️ Refactoring",
    "style": "💄 Styling",
    "test": "✅ Testing",
    "docs": "📚 Documentation",
    "build": "📦 Build",
    "ci": "👷 CI/CD",
    "chore": "🔧 Chores",
    "revert": "⏪ Reverts",
}

_PREFIX = re.compile(r"^([A-Za-z]+):\s*")


class GroupedCommit(BaseModel):
    message: str = Field(..., description="Message as displayed (prefix removed)")
    original_message: str = Field(..., description="Message as received")


class CommitGroup(BaseModel):
    type: str = Field(..., description="Lower-cased prefix, e.g. 'feat'")
    heading: str
    commits: list[GroupedCommit] = Field(default_factory=list)


class GroupedCommits(BaseModel):
    ungrouped: list[GroupedCommit] = Field(default_factory=list)
    groups: list[CommitGroup] = Field(default_factory=list)


def extract_prefix(message: str) -> str | None:
    match = _PREFIX.match(message)
    return match.group(1).lower() if match else None


def heading_for(prefix: str) -> str:
    return HEADINGS.get(prefix, prefix[:1].upper() + prefix[1:])


def _group_order(prefix: str) -> tuple[int, str]:
    if prefix in PRIORITY_PREFIXES:
        return (PRIORITY_PREFIXES.index(prefix), "")
    return (len(PRIORITY_PREFIXES), prefix)


def group_commits(messages: list[str]) -> GroupedCommits:
    """Partition messages into prefix groups plus an ungrouped remainder.

    When no message carries a prefix, everything is ungrouped and there
    are no groups. Otherwise each prefixed message lands in its group with
    the prefix stripped, keeping input order inside the group. Groups are
    ordered by PRIORITY_PREFIXES, then alphabetically.
    """
    if not any(extract_prefix(message) for message in messages):
        return GroupedCommits(
            ungrouped=[
                GroupedCommit(message=message, original_message=message)
                for message in messages
            ]
        )

    ungrouped: list[GroupedCommit] = []
    by_prefix: dict[str, list[GroupedCommit]] = {}
    for message in messages:
        prefix = extract_prefix(message)
        if prefix is None:
            ungrouped.append(GroupedCommit(message=message, original_message=message))
            continue
        by_prefix.setdefault(prefix, []).append(
            GroupedCommit(message=_PREFIX.sub("", message, count=1), original_message=message)
        )

    groups = [
        CommitGroup(type=prefix, heading=heading_for(prefix), commits=commits)
        for prefix, commits in sorted(by_prefix.items(), key=lambda item: _group_order(item[0]))
    ]
    return GroupedCommits(ungrouped=ungrouped, groups=groups)


def grouped_commits_to_markdown(grouped: GroupedCommits) -> str:
    """Ungrouped bullets first (no heading), then one `## heading` section per group."""
    sections: list[str] = []
    if grouped.ungrouped:
        sections.append("\n".join(f"- {commit.message}" for commit in grouped.ungrouped))
    for group in grouped.groups:
        items = "\n".join(f"- {commit.message}" for commit in group.commits)
        sections.append(f"## {group.heading}\n\n{items}")
    return "\n\n".join(sections)
