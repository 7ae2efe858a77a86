"""Tests for the weekly recap workflow.

The aggregator, LLM and Slack client are mocked; the KV store is the
in-memory one so stored summaries can be inspected directly.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from release_digest.aggregator import ReleaseAggregator
from release_digest.config import Settings
from release_digest.kv import InMemoryKVStore
from release_digest.llm import LLMClient
from release_digest.registry import ReleaseContext
from release_digest.slack import SlackClient
from release_digest.summary import (
    CRICKETS_MESSAGE,
    WeeklySummarizer,
    build_report,
    build_summarizer,
    fallback_summary,
    summary_key,
)

NOW = datetime(2024, 5, 10, 12, tzinfo=timezone.utc)
KEY = "weekly-summary-2024-19"
RECAP = "Wallet went goth this week and the hub hit the gym."


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


def _summarizer(releases, llm, kv, slack) -> WeeklySummarizer:
    aggregator = AsyncMock(spec=ReleaseAggregator)
    aggregator.list_releases.return_value = releases
    return WeeklySummarizer(aggregator, llm, kv, slack)


class TestHelpers:
    def test_summary_key_is_iso_week(self) -> None:
        assert summary_key(NOW) == KEY
        assert summary_key(datetime(2021, 1, 1, tzinfo=timezone.utc)) == "weekly-summary-2020-53"

    def test_fallback_summary_names_repos_once(self, make_release) -> None:
        text = fallback_summary(
            [make_release(repo="nimiq/wallet"), make_release(repo="nimiq/wallet", tag="v2"), make_release(repo="nimiq/hub")]
        )
        assert text.startswith("This week in Nimiq: 3 releases across wallet, hub.")

    def test_report(self, make_release) -> None:
        report = build_report([make_release(repo="nimiq/core", tag="v1.0.0")], NOW)
        assert report.startswith("# Releases for the week ending 2024-05-10")
        assert "## nimiq/core v1.0.0: v1.0.0" in report
        assert "Notes for v1.0.0" in report


class TestWeeklySummarizer:
    @pytest.mark.asyncio
    async def test_recap_is_generated_stored_and_posted(self, make_release, llm, kv, slack) -> None:
        await kv.set(summary_key(NOW - timedelta(weeks=1)), {"summary": "Last week's joke"})
        releases = [
            make_release(tag="v2", date="2024-05-09T00:00:00Z"),
            make_release(tag="v1", date="2024-04-01T00:00:00Z"),
        ]
        summarizer = _summarizer(releases, llm, kv, slack)

        result = await summarizer.run(now=NOW)

        assert result.success
        assert result.release_count == 1
        assert result.message == RECAP
        assert result.kv_key == KEY
        assert result.slack_sent
        assert not result.used_fallback

        summarizer.aggregator.list_releases.assert_awaited_once_with(
            context=ReleaseContext.SUMMARY
        )
        user_prompt = llm.generate.call_args.args[1]
        assert "v2" in user_prompt
        assert "nimiq/core v1:" not in user_prompt
        assert "Last week's joke" in user_prompt

        stored = await kv.get(KEY)
        assert stored["summary"] == RECAP
        assert stored["releaseCount"] == 1
        assert stored["week"] == 19
        assert stored["year"] == 2024

        slack.post_message.assert_awaited_once_with(RECAP)
        upload = slack.upload_file.call_args
        assert upload.args[1] == f"{KEY}.md"
        assert upload.kwargs["thread_id"] == "171.42"
        slack.weekly_summary_succeeded.assert_awaited_once_with(1, RECAP)
        slack.weekly_summary_failed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quiet_week(self, make_release, llm, kv, slack) -> None:
        summarizer = _summarizer(
            [make_release(date="2024-01-01T00:00:00Z")], llm, kv, slack
        )

        result = await summarizer.run(now=NOW)

        assert result.message == CRICKETS_MESSAGE
        assert result.release_count == 0
        llm.generate.assert_not_awaited()
        slack.upload_file.assert_not_awaited()
        assert (await kv.get(KEY))["summary"] == CRICKETS_MESSAGE

    @pytest.mark.asyncio
    async def test_llm_failure_uses_fallback(self, make_release, llm, kv, slack) -> None:
        llm.generate.side_effect = RuntimeError("quota exceeded")
        summarizer = _summarizer([make_release(date="2024-05-09T00:00:00Z")], llm, kv, slack)

        result = await summarizer.run(now=NOW)

        assert result.used_fallback
        assert result.message.startswith("This week in Nimiq: 1 releases across core.")
        slack.weekly_summary_failed.assert_awaited_once()
        assert slack.weekly_summary_failed.call_args.args[1] == "AI generation (used fallback)"
        slack.weekly_summary_succeeded.assert_not_awaited()
        slack.post_message.assert_awaited_once_with(result.message)

    @pytest.mark.asyncio
    async def test_short_answer_uses_fallback(self, make_release, llm, kv, slack) -> None:
        llm.generate.return_value = "  meh "
        summarizer = _summarizer([make_release(date="2024-05-09T00:00:00Z")], llm, kv, slack)
        assert (await summarizer.run(now=NOW)).used_fallback

    @pytest.mark.asyncio
    async def test_old_summaries_are_pruned(self, llm, kv, slack) -> None:
        for weeks in range(1, 10):
            await kv.set(summary_key(NOW - timedelta(weeks=weeks)), {"summary": f"w{weeks}"})

        await _summarizer([], llm, kv, slack).run(now=NOW)

        remaining = {
            weeks
            for weeks in range(1, 10)
            if await kv.get(summary_key(NOW - timedelta(weeks=weeks))) is not None
        }
        assert remaining == {1, 2, 3, 4, 9}

    @pytest.mark.asyncio
    async def test_webhook_delivery_has_no_thread(self, make_release, llm, kv, slack) -> None:
        slack.post_message.return_value = ""
        summarizer = _summarizer([make_release(date="2024-05-09T00:00:00Z")], llm, kv, slack)

        result = await summarizer.run(now=NOW)

        assert result.slack_sent
        slack.upload_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_undelivered(self, llm, kv, slack) -> None:
        slack.post_message.return_value = None
        result = await _summarizer([], llm, kv, slack).run(now=NOW)
        assert not result.slack_sent

    @pytest.mark.asyncio
    async def test_fetch_failure_is_reported_and_raised(self, llm, kv, slack) -> None:
        summarizer = _summarizer([], llm, kv, slack)
        summarizer.aggregator.list_releases.side_effect = RuntimeError("config broken")

        with pytest.raises(RuntimeError):
            await summarizer.run(now=NOW)

        slack.weekly_summary_failed.assert_awaited_once()
        slack.post_message.assert_not_awaited()
        assert await kv.get(KEY) is None


def test_build_summarizer_wires_settings() -> None:
    settings = Settings(openai_model="gpt-4o", slack_webhook_url="https://hooks.example")
    aggregator = AsyncMock(spec=ReleaseAggregator)

    summarizer = build_summarizer(settings, aggregator)

    assert summarizer.llm.config.model == "gpt-4o"
    assert summarizer.slack.webhook_url == "https://hooks.example"
    assert isinstance(summarizer.kv, InMemoryKVStore)
