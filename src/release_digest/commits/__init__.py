"""Commit message normalization: reference linking and conventional-commit grouping."""

from release_digest.commits.enhance import enhance_commit_message
from release_digest.commits.grouping import (
    CommitGroup,
    GroupedCommit,
    GroupedCommits,
    extract_prefix,
    group_commits,
    grouped_commits_to_markdown,
)

__all__ = [
    "CommitGroup",
    "GroupedCommit",
    "GroupedCommits",
    "enhance_commit_message",
    "extract_prefix",
    "group_commits",
    "grouped_commits_to_markdown",
]
