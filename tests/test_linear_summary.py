"""Tests for the weekly Linear team recap workflow.

Linear, the LLM and Slack are mocked; the KV store is the in-memory one.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from release_digest.config import Settings
from release_digest.kv import InMemoryKVStore
from release_digest.linear import LinearIssue
from release_digest.linear_summary import (
    NO_ISSUES_MESSAGE,
    LinearSummarizer,
    build_linear_summarizer,
    linear_summary_key,
    report_title,
)
from release_digest.llm import LLMClient
from release_digest.slack import SlackClient
from release_digest.summary import summary_key

NOW = datetime(2024, 5, 10, 12, tzinfo=timezone.utc)
KEY = "weekly-linear-summary-2024-19"
RECAP = "This is week number 19, and here's what the teams shipped: mostly courage."

ISSUES = [
    LinearIssue.model_validate(
        {
            "id": f"id-{n}",
            "identifier": f"WAL-{n}",
            "title": f"Wallet fix {n}",
            "url": f"https://linear.app/nimiq/issue/WAL-{n}",
            "completedAt": "2024-05-09T10:00:00Z",
            "team": {"name": "Wallet", "key": "WAL"},
            "project": {"name": "Hub"},
            "state": {"name": "Done", "type": "completed"},
        }
    )
    for n in (1, 2)
]


@pytest.fixture
def slack() -> AsyncMock:
    client = AsyncMock(spec=SlackClient)
    client.post_message.return_value = "171.42"
    client.upload_file.return_value = True
    return client


@pytest.fixture
def llm() -> AsyncMock:
    client = AsyncMock(spec=LLMClient)
    client.generate = AsyncMock(return_value=RECAP)
    return client


@pytest.fixture
def kv() -> InMemoryKVStore:
    return InMemoryKVStore()


def _fetch(issues):
    return patch(
        "release_digest.linear_summary.fetch_done_issues", AsyncMock(return_value=issues)
    )


def test_key_and_title() -> None:
    assert linear_summary_key(NOW) == KEY
    assert report_title(1) == "📊 Linear Issues Report (1 issue)"
    assert report_title(3) == "📊 Linear Issues Report (3 issues)"


class TestLinearSummarizer:
    @pytest.mark.asyncio
    async def test_recap_is_generated_stored_and_posted(self, llm, kv, slack) -> None:
        await kv.set(
            linear_summary_key(NOW - timedelta(weeks=1)), {"summary": "Last week's Linear joke"}
        )
        summarizer = LinearSummarizer("lin_api_key", llm, kv, slack)

        with _fetch(ISSUES) as fetch:
            result = await summarizer.run(now=NOW)

        fetch.assert_awaited_once_with("lin_api_key", now=NOW)
        assert result.issue_count == 2
        assert result.message == RECAP
        assert result.kv_key == KEY
        assert result.slack_sent
        assert not result.used_fallback

        user_prompt = llm.generate.call_args.args[1]
        assert user_prompt.startswith("Current week: 19 of 2024")
        assert "<identifier>WAL-2</identifier>" in user_prompt
        assert "Last week's Linear joke" in user_prompt

        stored = await kv.get(KEY)
        assert stored["summary"] == RECAP
        assert stored["issueCount"] == 2
        assert stored["issues"].startswith("# Weekly Linear Issues Report")

        slack.post_message.assert_awaited_once_with(RECAP)
        upload = slack.upload_file.call_args
        assert upload.args[1] == "linear-issues-week-19-2024.md"
        assert upload.kwargs["thread_id"] == "171.42"
        assert upload.kwargs["title"] == "📊 Linear Issues Report (2 issues)"

    @pytest.mark.asyncio
    async def test_no_issues_posts_nothing(self, llm, kv, slack) -> None:
        with _fetch([]):
            result = await LinearSummarizer("key", llm, kv, slack).run(now=NOW)

        assert result.success
        assert result.issue_count == 0
        assert result.message == NO_ISSUES_MESSAGE
        assert not result.slack_sent
        llm.generate.assert_not_awaited()
        slack.post_message.assert_not_awaited()
        assert await kv.get(KEY) is None

    @pytest.mark.asyncio
    async def test_llm_failure_uses_fallback(self, llm, kv, slack) -> None:
        llm.generate.side_effect = RuntimeError("quota exceeded")

        with _fetch(ISSUES):
            result = await LinearSummarizer("key", llm, kv, slack).run(now=NOW)

        assert result.used_fallback
        assert result.message.startswith(
            "This is week number 19, and here's what the teams shipped: 2 issues closed across Wallet."
        )
        assert slack.weekly_summary_failed.call_args.args[1] == "Linear AI generation (used fallback)"
        slack.post_message.assert_awaited_once_with(result.message)

    @pytest.mark.asyncio
    async def test_prunes_only_linear_recaps(self, llm, kv, slack) -> None:
        for weeks in range(1, 10):
            await kv.set(linear_summary_key(NOW - timedelta(weeks=weeks)), {"summary": "x"})
        release_recap_key = summary_key(NOW - timedelta(weeks=6))
        await kv.set(release_recap_key, {"summary": "release recap"})

        with _fetch(ISSUES):
            await LinearSummarizer("key", llm, kv, slack).run(now=NOW)

        remaining = {
            weeks
            for weeks in range(1, 10)
            if await kv.get(linear_summary_key(NOW - timedelta(weeks=weeks))) is not None
        }
        assert remaining == {1, 2, 3, 4, 9}
        assert await kv.get(release_recap_key) == {"summary": "release recap"}

    @pytest.mark.asyncio
    async def test_webhook_delivery_has_no_report(self, llm, kv, slack) -> None:
        slack.post_message.return_value = ""

        with _fetch(ISSUES):
            result = await LinearSummarizer("key", llm, kv, slack).run(now=NOW)

        assert result.slack_sent
        slack.upload_file.assert_not_awaited()


def test_build_linear_summarizer_wires_settings() -> None:
    settings = Settings(linear_api_key="lin_api_key", slack_bot_token="xoxb-1", slack_channel="C1")

    summarizer = build_linear_summarizer(settings)

    assert summarizer.api_key == "lin_api_key"
    assert summarizer.slack.uses_bot
    assert isinstance(summarizer.kv, InMemoryKVStore)
