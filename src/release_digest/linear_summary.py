"""Weekly Linear team recap.

Same shape as the release recap in summary.py, fed by Linear instead of
the source registry:
1. Fetch issues completed in the last 7 days; none -> nothing is posted
2. Group them by team and project and ask the LLM for a recap, with up to
   4 previous Linear recaps as context; an error or a too-short answer
   falls back to a plain sentence
3. Store the recap and the issue report under
   weekly-linear-summary-{year}-{week}, dropping weeks 5 to 8 back
4. Post the recap to Slack and thread the markdown issue report under it
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from release_digest.config import Settings
from release_digest.kv import KVStore, create_kv_store
from release_digest.linear import (
    LinearIssue,
    TeamGroups,
    build_issue_report,
    fetch_done_issues,
    group_by_team,
)
from release_digest.llm import LLMClient, LLMConfig, TextGenerator
from release_digest.logging_config import bind_workflow, get_logger
from release_digest.prompts.linear_summary import SYSTEM_PROMPT, build_user_prompt
from release_digest.schemas import LinearSummaryResult
from release_digest.slack import SlackClient
from release_digest.summary import (
    MIN_SUMMARY_CHARS,
    load_previous_summaries,
    prune_old_summaries,
    summary_key,
)

logger = get_logger(__name__)

KEY_PREFIX = "weekly-linear-summary"
NO_ISSUES_MESSAGE = "No issues to report"


def linear_summary_key(moment: datetime) -> str:
    return summary_key(moment, KEY_PREFIX)


def fallback_summary(issues: list[LinearIssue], grouped: TeamGroups, week: int) -> str:
    return (
        f"This is week number {week}, and here's what the teams shipped: "
        f"{len(issues)} issues closed across {', '.join(grouped)}. "
        "The narrator called in sick, so the numbers will have to do the talking."
    )


def report_title(issue_count: int) -> str:
    noun = "issue" if issue_count == 1 else "issues"
    return f"📊 Linear Issues Report ({issue_count} {noun})"


class LinearSummarizer:
    """Produces, stores and posts the weekly Linear recap.

    Usage:
        summarizer = LinearSummarizer("lin_api_...", LLMClient(), InMemoryKVStore(), SlackClient())
        result = await summarizer.run()
    """

    def __init__(
        self,
        api_key: str | None,
        llm: TextGenerator,
        kv: KVStore,
        slack: SlackClient,
    ) -> None:
        self.api_key = api_key
        self.llm = llm
        self.kv = kv
        self.slack = slack

    async def run(self, now: datetime | None = None) -> LinearSummaryResult:
        now = now or datetime.now(timezone.utc)
        key = linear_summary_key(now)
        with bind_workflow("linear_summary", kv_key=key):
            return await self._run(now, key)

    async def _run(self, now: datetime, key: str) -> LinearSummaryResult:
        started = time.monotonic()
        logger.info("linear_summary_started")

        issues = await fetch_done_issues(self.api_key, now=now)
        if not issues:
            logger.warning("linear_summary_no_issues")
            return LinearSummaryResult(
                message=NO_ISSUES_MESSAGE,
                execution_time_ms=int((time.monotonic() - started) * 1000),
            )

        grouped = group_by_team(issues)
        year, week, _ = now.isocalendar()
        previous = await load_previous_summaries(self.kv, now, KEY_PREFIX)
        message, used_fallback = await self._generate(issues, grouped, week, year, previous)

        report = build_issue_report(grouped, now)
        await self.kv.set(
            key,
            {
                "week": week,
                "year": year,
                "date": now.isoformat(),
                "issueCount": len(issues),
                "summary": message,
                "issues": report,
            },
        )
        await prune_old_summaries(self.kv, now, KEY_PREFIX)

        ts = await self.slack.post_message(message)
        if ts:
            await self.slack.upload_file(
                report,
                f"linear-issues-week-{week}-{year}.md",
                thread_id=ts,
                title=report_title(len(issues)),
            )

        result = LinearSummaryResult(
            issue_count=len(issues),
            message=message,
            kv_key=key,
            slack_sent=ts is not None,
            used_fallback=used_fallback,
            execution_time_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "linear_summary_complete",
            issue_count=result.issue_count,
            teams=len(grouped),
            used_fallback=used_fallback,
            slack_sent=result.slack_sent,
        )
        return result

    async def _generate(
        self,
        issues: list[LinearIssue],
        grouped: TeamGroups,
        week: int,
        year: int,
        previous: list[str],
    ) -> tuple[str, bool]:
        try:
            prompt = build_user_prompt(grouped, week, year, previous)
            summary = (await self.llm.generate(SYSTEM_PROMPT, prompt)).strip()
            if len(summary) < MIN_SUMMARY_CHARS:
                raise ValueError("AI generated summary is too short or empty")
            return summary, False
        except Exception as exc:
            logger.warning("linear_summary_fallback", error=str(exc))
            await self.slack.weekly_summary_failed(exc, "Linear AI generation (used fallback)")
            return fallback_summary(issues, grouped, week), True


def build_linear_summarizer(settings: Settings, kv: KVStore | None = None) -> LinearSummarizer:
    return LinearSummarizer(
        api_key=settings.linear_api_key,
        llm=LLMClient(LLMConfig(model=settings.openai_model, api_key=settings.openai_api_key)),
        kv=kv if kv is not None else create_kv_store(settings.kv_path),
        slack=SlackClient.from_settings(settings),
    )
