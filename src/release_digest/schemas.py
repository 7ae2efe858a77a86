"""Pydantic models shared by every layer of release-digest.

These schemas are the single source of truth for what flows out of the
fetchers and through the API:
- The markup tree (root/element/text nodes) that holds rendered release notes
- Release, the normalized record every source is translated into
- WeeklySummaryResult and LinearSummaryResult, returned by the two weekly
  recap workflows

Key design decisions:
- Markup nodes carry a `type` discriminator, so a tree serializes to exactly
  `{type, tag, props, children, value}` and parses back without guessing
- Release.date stays the upstream ISO-8601 string; `published_at` parses it
  and returns None when it is unusable
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Markup Tree
# ---------------------------------------------------------------------------


class TextNode(BaseModel):
    """A leaf holding literal text."""

    type: Literal["text"] = "text"
    value: str = ""


class ElementNode(BaseModel):
    """An element such as `p`, `h2`, `ul`, `li`, `a` or `code`.

    Attributes:
        tag: Lower-case HTML tag name
        props: Element attributes (e.g. `href` for links)
        children: Child nodes in document order
    """

    type: Literal["element"] = "element"
    tag: str
    props: dict[str, Any] = Field(default_factory=dict)
    children: list[MarkupNode] = Field(default_factory=list)


MarkupNode = Annotated[Union[ElementNode, TextNode], Field(discriminator="type")]


class RootNode(BaseModel):
    """Top of a markup tree. An empty root is a valid (empty) body."""

    type: Literal["root"] = "root"
    children: list[MarkupNode] = Field(default_factory=list)


ElementNode.model_rebuild()
RootNode.model_rebuild()


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------

NO_URL = "#"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC. Returns None for empty or
    unparseable input instead of raising.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class Release(BaseModel):
    """A normalized changelog entry, identical in shape for every source.

    Attributes:
        url: Link to the release/issue/post, or "#" when none exists
        repo: Logical project identifier ("owner/name", "npm/@scope/pkg", ...)
        tag: Version or identifier ("v1.2.0", "#123", "Week of 2024-05-05")
        title: Display title, falls back to the tag
        date: ISO-8601 timestamp, the single sort key
        body: Rendered release notes as a markup tree
        group_label: Label of the source group that produced this record
    """

    url: str = Field(..., description="Link to the release, or '#'")
    repo: str = Field(..., description="Logical project identifier")
    tag: str = Field(..., description="Version or identifier")
    title: str = Field(..., description="Display title")
    date: str = Field(..., description="ISO-8601 timestamp")
    body: RootNode = Field(default_factory=RootNode, description="Rendered notes")
    group_label: str | None = Field(None, description="Originating source group")

    @property
    def published_at(self) -> datetime | None:
        return parse_timestamp(self.date)


# ---------------------------------------------------------------------------
# Weekly Summary
# ---------------------------------------------------------------------------


class WeeklySummaryResult(BaseModel):
    """Outcome of one run of the weekly recap workflow."""

    success: bool = True
    release_count: int = Field(0, ge=0)
    message: str = ""
    kv_key: str | None = None
    slack_sent: bool = False
    used_fallback: bool = False
    execution_time_ms: int = Field(0, ge=0)


class LinearSummaryResult(BaseModel):
    """Outcome of one run of the Linear team recap."""

    success: bool = True
    issue_count: int = Field(0, ge=0)
    message: str = ""
    kv_key: str | None = None
    slack_sent: bool = False
    used_fallback: bool = False
    execution_time_ms: int = Field(0, ge=0)
