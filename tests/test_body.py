"""Tests for the shared release body pipeline."""

from __future__ import annotations

from release_digest.markup import element, flatten_text, render_to_markdown, text
from release_digest.schemas import ElementNode, RootNode
from release_digest.sources.body import (
    changelog_body,
    process_release_body,
    remove_duplicate_whats_changed,
)


def _tags(tree: RootNode) -> list[str]:
    return [child.tag for child in tree.children if isinstance(child, ElementNode)]


class TestProcessReleaseBody:
    def test_structured_notes_are_kept(self) -> None:
        body = process_release_body("## Notes\n\n- feat: keep the prefix", "o/r")
        assert _tags(body) == ["h2", "ul"]
        assert "feat: keep the prefix" in flatten_text(body)

    def test_flat_commit_list_is_grouped(self) -> None:
        body = process_release_body("- feat: add thing\n- fix: bug #3", "o/r")
        markdown = render_to_markdown(body)
        assert _tags(body) == ["h2", "ul", "h2", "ul"]
        assert "## ✨ Features\n\n- add thing" in markdown
        assert "- bug [#3](https://github.com/o/r/issues/3)" in markdown

    def test_unprefixed_list_stays_a_list(self) -> None:
        body = process_release_body("- Improve startup time\n- Update readme", "o/r")
        assert _tags(body) == ["ul"]
        assert flatten_text(body) == "Improve startup time Update readme"

    def test_prose_is_left_alone(self) -> None:
        body = process_release_body("Just a paragraph about abc1234.", "o/r")
        assert _tags(body) == ["p"]
        assert flatten_text(body) == "Just a paragraph about abc1234."

    def test_mentions_follow_the_flag(self) -> None:
        plain = process_release_body("- thanks to @alice", "o/r")
        linked = process_release_body("- thanks to @alice", "o/r", link_mentions=True)
        assert "[@alice]" not in render_to_markdown(plain)
        assert "[@alice](https://github.com/alice)" in render_to_markdown(linked)


class TestChangelogBody:
    def test_empty_history(self) -> None:
        assert flatten_text(changelog_body([], "o/r")) == "Initial release"

    def test_commits_are_grouped(self) -> None:
        body = changelog_body(["feat: tags fallback", "docs: explain it"], "o/r")
        assert _tags(body) == ["h2", "ul", "h2", "ul"]
        assert flatten_text(body.children[0]) == "✨ Features"


class TestRemoveDuplicateWhatsChanged:
    def test_second_consecutive_heading_removed(self) -> None:
        body = RootNode(
            children=[
                element("h2", [text("What's Changed")]),
                element("h3", [text("What’s changed")]),
                element("ul", [element("li", [text("item")])]),
            ]
        )
        cleaned = remove_duplicate_whats_changed(body)
        assert _tags(cleaned) == ["h2", "ul"]

    def test_non_consecutive_headings_kept(self) -> None:
        body = RootNode(
            children=[
                element("h2", [text("What's Changed")]),
                element("p", [text("in between")]),
                element("h2", [text("What's Changed")]),
            ]
        )
        assert _tags(remove_duplicate_whats_changed(body)) == ["h2", "p", "h2"]

    def test_other_headings_untouched(self) -> None:
        body = RootNode(
            children=[element("h2", [text("Features")]), element("h2", [text("Features")])]
        )
        assert _tags(remove_duplicate_whats_changed(body)) == ["h2", "h2"]
