"""Weekly recap workflow.

One run does the following:
1. List releases in the summary context and keep the last 7 days
2. Nothing shipped -> the canned "crickets" message
3. Otherwise ask the LLM for a recap, giving it up to 4 previous recaps as
   running-joke context; an error or a too-short answer falls back to a
   plain sentence and a failure notification
4. Store the recap under weekly-summary-{year}-{week} and drop the keys of
   5 to 8 weeks ago
5. Post the recap to Slack and thread a markdown report of the releases
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

from release_digest.aggregator import ReleaseAggregator
from release_digest.config import Settings
from release_digest.kv import KVStore, create_kv_store
from release_digest.llm import LLMClient, LLMConfig, TextGenerator
from release_digest.logging_config import bind_workflow, get_logger
from release_digest.markup import render_to_markdown
from release_digest.prompts.weekly_summary import SYSTEM_PROMPT, build_user_prompt
from release_digest.registry import ReleaseContext
from release_digest.schemas import Release, WeeklySummaryResult
from release_digest.slack import SlackClient

logger = get_logger(__name__)

WINDOW = timedelta(days=7)
KEY_PREFIX = "weekly-summary"
HISTORY_WEEKS = 4
RETENTION_WEEKS = range(5, 9)
MIN_SUMMARY_CHARS = 20

CRICKETS_MESSAGE = (
    "This week in Nimiq: Crickets. Not even the bugs bothered showing up. "
    "Everyone's apparently taking a well-deserved break from shipping. "
    "The calm before the storm, or just peak efficiency? You decide."
)


def summary_key(moment: datetime, prefix: str = KEY_PREFIX) -> str:
    """KV key for the ISO week containing `moment`."""
    year, week, _ = moment.isocalendar()
    return f"{prefix}-{year}-{week}"


async def load_previous_summaries(
    kv: KVStore, now: datetime, prefix: str = KEY_PREFIX
) -> list[str]:
    """Recaps of the last HISTORY_WEEKS weeks, most recent first."""
    summaries = []
    for weeks_back in range(1, HISTORY_WEEKS + 1):
        stored = await kv.get(summary_key(now - timedelta(weeks=weeks_back), prefix))
        if isinstance(stored, dict) and stored.get("summary"):
            summaries.append(str(stored["summary"]))
        elif isinstance(stored, str) and stored:
            summaries.append(stored)
    return summaries


async def prune_old_summaries(kv: KVStore, now: datetime, prefix: str = KEY_PREFIX) -> None:
    for weeks_back in RETENTION_WEEKS:
        await kv.delete(summary_key(now - timedelta(weeks=weeks_back), prefix))


def fallback_summary(releases: list[Release]) -> str:
    repo_names = list(dict.fromkeys(release.repo.split("/")[-1] for release in releases))
    return (
        f"This week in Nimiq: {len(releases)} releases across {', '.join(repo_names)}. "
        "The team's been busy shipping updates while I was having technical "
        "difficulties crafting witty commentary. Sometimes the robots need a "
        "coffee break too."
    )


def build_report(releases: list[Release], now: datetime) -> str:
    """Markdown digest of the week's releases, attached under the recap."""
    lines = [f"# Releases for the week ending {now.date().isoformat()}"]
    for release in releases:
        lines.append(f"## {release.repo} {release.tag}: {release.title}")
        meta = release.date if release.url == "#" else f"{release.date} ({release.url})"
        lines.append(meta)
        notes = render_to_markdown(release.body)
        if notes:
            lines.append(notes)
    return "\n\n".join(lines) + "\n"


class WeeklySummarizer:
    """Produces, stores and posts the weekly recap.

    Usage:
        summarizer = WeeklySummarizer(aggregator, LLMClient(), InMemoryKVStore(), SlackClient())
        result = await summarizer.run()
    """

    def __init__(
        self,
        aggregator: ReleaseAggregator,
        llm: TextGenerator,
        kv: KVStore,
        slack: SlackClient,
    ) -> None:
        self.aggregator = aggregator
        self.llm = llm
        self.kv = kv
        self.slack = slack

    async def run(self, now: datetime | None = None) -> WeeklySummaryResult:
        """Run the workflow once.

        Raises:
            ConfigError: The sources configuration cannot be resolved
        """
        now = now or datetime.now(timezone.utc)
        key = summary_key(now)
        with bind_workflow("weekly_summary", kv_key=key):
            return await self._run(now, key)

    async def _run(self, now: datetime, key: str) -> WeeklySummaryResult:
        started = time.monotonic()
        logger.info("weekly_summary_started")

        try:
            releases = await self.aggregator.list_releases(context=ReleaseContext.SUMMARY)
        except Exception as exc:
            logger.error("weekly_summary_fetch_failed", error=str(exc), exc_info=True)
            await self.slack.weekly_summary_failed(exc, "fetching releases")
            raise

        cutoff = now - WINDOW
        recent = [
            release
            for release in releases
            if release.published_at is not None and release.published_at >= cutoff
        ]

        used_fallback = False
        if not recent:
            message = CRICKETS_MESSAGE
        else:
            previous = await load_previous_summaries(self.kv, now)
            message, used_fallback = await self._generate(recent, previous)

        await self._store(key, now, len(recent), message)
        await prune_old_summaries(self.kv, now)

        ts = await self.slack.post_message(message)
        slack_sent = ts is not None
        if ts and recent:
            await self.slack.upload_file(
                build_report(recent, now),
                f"{key}.md",
                thread_id=ts,
                title="This week's releases",
            )
        if not used_fallback:
            await self.slack.weekly_summary_succeeded(len(recent), message)

        result = WeeklySummaryResult(
            success=True,
            release_count=len(recent),
            message=message,
            kv_key=key,
            slack_sent=slack_sent,
            used_fallback=used_fallback,
            execution_time_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "weekly_summary_complete",
            release_count=result.release_count,
            used_fallback=used_fallback,
            slack_sent=slack_sent,
            execution_time_ms=result.execution_time_ms,
        )
        return result

    async def _generate(self, releases: list[Release], previous: list[str]) -> tuple[str, bool]:
        try:
            summary = (await self.llm.generate(SYSTEM_PROMPT, build_user_prompt(releases, previous))).strip()
            if len(summary) < MIN_SUMMARY_CHARS:
                raise ValueError("AI generated summary is too short or empty")
            return summary, False
        except Exception as exc:
            logger.warning("weekly_summary_fallback", error=str(exc))
            await self.slack.weekly_summary_failed(exc, "AI generation (used fallback)")
            return fallback_summary(releases), True

    async def _store(self, key: str, now: datetime, release_count: int, summary: str) -> None:
        year, week, _ = now.isocalendar()
        await self.kv.set(
            key,
            {
                "week": week,
                "year": year,
                "date": now.isoformat(),
                "releaseCount": release_count,
                "summary": summary,
            },
        )


def build_summarizer(
    settings: Settings,
    aggregator: ReleaseAggregator,
    kv: KVStore | None = None,
) -> WeeklySummarizer:
    """Wire a summarizer from environment settings."""
    return WeeklySummarizer(
        aggregator=aggregator,
        llm=LLMClient(LLMConfig(model=settings.openai_model, api_key=settings.openai_api_key)),
        kv=kv if kv is not None else create_kv_store(settings.kv_path),
        slack=SlackClient.from_settings(settings),
    )
