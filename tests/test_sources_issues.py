"""Tests for the GitHub issues feedback fetcher."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest
import respx

from release_digest.config import SourceConfig
from release_digest.markup import flatten_text
from release_digest.sources.github_issues import (
    fetch_github_issues_feedback,
    issue_to_release,
    strip_images,
)

ISSUES = "https://api.github.com/repos/nimiq/feedback/issues"
NOW = datetime(2024, 5, 10, 12, tzinfo=timezone.utc)


def _issue(number: int, labels: list[str] | None = None, **overrides) -> dict:
    issue = {
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/nimiq/feedback/issues/{number}",
        "body": f"Body of issue {number}",
        "created_at": "2024-05-09T10:00:00Z",
        "labels": [{"name": name} for name in labels or []],
    }
    issue.update(overrides)
    return issue


class TestStripImages:
    def test_removes_every_image_form(self) -> None:
        cleaned = strip_images(
            "Look ![shot](https://x.io/a.png) here <img src='b.gif'> and "
            "https://cdn.x.io/c.jpg?w=1 end"
        )
        assert "png" not in cleaned
        assert "<img" not in cleaned
        assert "jpg" not in cleaned
        assert cleaned.startswith("Look")
        assert cleaned.endswith("end")

    def test_empty(self) -> None:
        assert strip_images(None) == ""


class TestIssueToRelease:
    def test_labels_line(self) -> None:
        release = issue_to_release(_issue(7, ["bug", "ui"]), "nimiq/feedback")
        assert release.tag == "#7"
        assert release.title == "Issue 7"
        assert release.date == "2024-05-09T10:00:00Z"
        assert flatten_text(release.body) == "Body of issue 7 Labels: bug, ui"
        assert release.body.children[-1].children[0].tag == "strong"

    def test_empty_body_uses_title(self) -> None:
        release = issue_to_release(_issue(8, body=None), "nimiq/feedback")
        assert flatten_text(release.body) == "Issue 8"


class TestFetchIssuesFeedback:
    @respx.mock
    @pytest.mark.asyncio
    async def test_filters_and_params(self) -> None:
        route = respx.get(ISSUES).mock(
            return_value=httpx.Response(
                200,
                json=[
                    _issue(1),
                    _issue(2, html_url="https://github.com/nimiq/feedback/pull/2"),
                    _issue(3, ["test"]),
                ],
            )
        )
        config = SourceConfig(repos=["nimiq/feedback"], token="tok", labels="feedback,ux")

        releases = await fetch_github_issues_feedback(config, now=NOW)

        assert [release.tag for release in releases] == ["#1", "#3"]
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.url.params["state"] == "all"
        assert request.url.params["labels"] == "feedback,ux"
        assert request.url.params["since"] == "2024-05-03T12:00:00+00:00"

    @respx.mock
    @pytest.mark.asyncio
    async def test_test_issues_hidden_in_production(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "production")
        respx.get(ISSUES).mock(
            return_value=httpx.Response(200, json=[_issue(1), _issue(3, ["test"])])
        )

        releases = await fetch_github_issues_feedback(
            SourceConfig(repos=["nimiq/feedback"]), now=NOW
        )

        assert [release.tag for release in releases] == ["#1"]

    @respx.mock
    @pytest.mark.asyncio
    async def test_explicit_since_and_state(self) -> None:
        route = respx.get(ISSUES).mock(return_value=httpx.Response(200, json=[]))
        config = SourceConfig(
            repos=["nimiq/feedback"], since="2024-01-01T00:00:00Z", state="open"
        )

        assert await fetch_github_issues_feedback(config, now=NOW) == []
        params = route.calls.last.request.url.params
        assert params["since"] == "2024-01-01T00:00:00Z"
        assert params["state"] == "open"

    @pytest.mark.asyncio
    async def test_repo_filter_excludes_everything(self) -> None:
        config = SourceConfig(repos=["nimiq/feedback"])
        assert await fetch_github_issues_feedback(config, repo_filter="wallet") == []

    @respx.mock
    @pytest.mark.asyncio
    async def test_failed_second_page_keeps_the_first(self) -> None:
        def _page(request: httpx.Request) -> httpx.Response:
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=[_issue(n) for n in range(1, 101)])
            return httpx.Response(502)

        respx.get(ISSUES).mock(side_effect=_page)

        releases = await fetch_github_issues_feedback(
            SourceConfig(repos=["nimiq/feedback"]), now=NOW
        )

        assert len(releases) == 100
