"""Tests for commit message enhancement and conventional-commit grouping."""

from __future__ import annotations

import pytest

from release_digest.commits import (
    enhance_commit_message,
    extract_prefix,
    group_commits,
    grouped_commits_to_markdown,
)
from release_digest.commits.grouping import heading_for

REPO = "o/r"
BASE = "https://github.com/o/r"
FULL_SHA = "0123456789abcdef0123456789abcdef01234567"


# ---------------------------------------------------------------------------
# Enhancer
# ---------------------------------------------------------------------------


class TestEnhanceCommitMessage:
    def test_issue_reference_with_verb(self) -> None:
        assert enhance_commit_message("fixes #42", REPO) == f"fixes [#42]({BASE}/issues/42)"

    def test_running_twice_is_a_no_op(self) -> None:
        once = enhance_commit_message("fixes #42", REPO)
        twice = enhance_commit_message(once, REPO)
        assert twice == once
        assert twice.count(f"[#42]({BASE}/issues/42)") == 1

    def test_trailing_punctuation(self) -> None:
        assert (
            enhance_commit_message("Closes #12.", REPO)
            == f"Closes [#12]({BASE}/issues/12)."
        )

    def test_hash_inside_word_is_not_linked(self) -> None:
        assert enhance_commit_message("see issue#5", REPO) == "see issue#5"

    def test_short_sha(self) -> None:
        assert (
            enhance_commit_message("reverts abc1234 today", REPO)
            == f"reverts [`abc1234`]({BASE}/commit/abc1234) today"
        )

    def test_sha_needs_boundaries(self) -> None:
        assert enhance_commit_message("xabcdef1x", REPO) == "xabcdef1x"

    def test_full_sha_displays_eight_characters(self) -> None:
        assert (
            enhance_commit_message(f"cherry-pick {FULL_SHA}", REPO)
            == f"cherry-pick [`01234567`]({BASE}/commit/{FULL_SHA})"
        )

    def test_same_repo_url(self) -> None:
        message = f"see {BASE}/pull/5"
        assert enhance_commit_message(message, REPO) == f"see [#5]({BASE}/pull/5)"

    def test_other_repo_url_untouched(self) -> None:
        message = "see https://github.com/x/y/pull/5"
        assert enhance_commit_message(message, REPO) == message

    def test_mentions_only_when_enabled(self) -> None:
        assert enhance_commit_message("thanks @octo-cat", REPO) == "thanks @octo-cat"
        assert (
            enhance_commit_message("thanks @octo-cat", REPO, link_mentions=True)
            == "thanks [@octo-cat](https://github.com/octo-cat)"
        )

    def test_plain_text_unchanged(self) -> None:
        assert enhance_commit_message("Improve docs", REPO) == "Improve docs"


# ---------------------------------------------------------------------------
# Grouping
# ---------------------------------------------------------------------------


class TestExtractPrefix:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("feat: add x", "feat"),
            ("Fix:typo", "fix"),
            ("feat(api): scoped", None),
            ("no prefix here", None),
        ],
    )
    def test_prefixes(self, message: str, expected: str | None) -> None:
        assert extract_prefix(message) == expected


class TestGroupCommits:
    def test_priority_order_then_alphabetical(self) -> None:
        grouped = group_commits(["xyz: a", "docs: b", "fix: c", "feat: d", "abc: e"])
        assert [group.type for group in grouped.groups] == ["feat", "fix", "docs", "abc", "xyz"]

    def test_every_message_lands_exactly_once(self) -> None:
        messages = ["feat: a", "plain one", "fix: b", "feat: c", "plain two"]
        grouped = group_commits(messages)
        originals = [commit.original_message for commit in grouped.ungrouped]
        for group in grouped.groups:
            originals.extend(commit.original_message for commit in group.commits)
        assert sorted(originals) == sorted(messages)

    def test_prefix_is_stripped_and_order_kept(self) -> None:
        grouped = group_commits(["feat: first", "feat: second"])
        (features,) = grouped.groups
        assert [commit.message for commit in features.commits] == ["first", "second"]
        assert features.commits[0].original_message == "feat: first"

    def test_no_prefixes_means_no_groups(self) -> None:
        grouped = group_commits(["one thing", "another thing"])
        assert grouped.groups == []
        assert [commit.message for commit in grouped.ungrouped] == ["one thing", "another thing"]

    def test_empty_input(self) -> None:
        grouped = group_commits([])
        assert grouped.groups == []
        assert grouped.ungrouped == []

    def test_unknown_prefix_heading(self) -> None:
        assert heading_for("xyz") == "Xyz"
        assert heading_for("feat") == "✨ Features"


class TestGroupedCommitsToMarkdown:
    def test_layout(self) -> None:
        markdown = grouped_commits_to_markdown(
            group_commits(["tidy up", "feat: add x", "fix: y"])
        )
        assert markdown == (
            "- tidy up\n\n"
            "## ✨ Features\n\n- add x\n\n"
            "## 🐛 Bug Fixes\n\n- y"
        )

    def test_every_message_appears(self) -> None:
        messages = ["feat: alpha", "docs: beta", "gamma delta"]
        markdown = grouped_commits_to_markdown(group_commits(messages))
        for expected in ("alpha", "beta", "gamma delta"):
            assert f"- {expected}" in markdown
