"""Slack delivery for the weekly recap and its status notifications.

Two transports, picked by configuration:
- Bot token + channel: chat.postMessage (returns the message ts, so replies
  can be threaded) and the external file upload flow
- Incoming webhook: plain message posts, no threads, no files

Delivery is best effort. Every failure is logged and reported through the
return value, never raised, so a Slack outage cannot fail the summary run.

Slack API docs: https://api.slack.com/methods
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import httpx

from release_digest.config import Settings
from release_digest.logging_config import get_logger
from release_digest.sources.http import HTTP_TIMEOUT

logger = get_logger(__name__)

SLACK_API = "https://slack.com/api"
PREVIEW_LIMIT = 200


class SlackClient:
    """Async Slack client over httpx.

    Usage:
        slack = SlackClient(bot_token="xoxb-...", channel="C123")
        ts = await slack.post_message("Weekly recap")
        await slack.upload_file("# Releases", "releases.md", thread_id=ts)
    """

    def __init__(
        self,
        webhook_url: str | None = None,
        bot_token: str | None = None,
        channel: str | None = None,
        *,
        environment: str = "development",
        force_dev: bool = False,
        username: str = "Nimiq Weekly Recap",
        icon_emoji: str = ":rocket:",
    ) -> None:
        self.webhook_url = webhook_url
        self.bot_token = bot_token
        self.channel = channel
        self.environment = environment
        self.force_dev = force_dev
        self.username = username
        self.icon_emoji = icon_emoji

    @classmethod
    def from_settings(cls, settings: Settings) -> SlackClient:
        return cls(
            webhook_url=settings.slack_webhook_url,
            bot_token=settings.slack_bot_token,
            channel=settings.slack_channel,
            environment=settings.environment,
            force_dev=settings.slack_force_dev,
        )

    @property
    def uses_bot(self) -> bool:
        return bool(self.bot_token and self.channel)

    @property
    def configured(self) -> bool:
        return self.uses_bot or bool(self.webhook_url)

    def _bot_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.bot_token}"}

    async def post_message(
        self,
        text: str,
        thread_id: str | None = None,
        *,
        attachments: list[dict[str, Any]] | None = None,
    ) -> str | None:
        """Post a message.

        Args:
            text: Message text (Slack mrkdwn)
            thread_id: Parent message ts to reply in a thread (bot only)
            attachments: Legacy attachments (status colors and fields)

        Returns:
            The message ts with a bot token, "" after a webhook delivery
            (webhooks have no ts), None when nothing was delivered
        """
        payload: dict[str, Any] = {
            "text": text,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
        if attachments:
            payload["attachments"] = attachments

        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                if self.uses_bot:
                    payload["channel"] = self.channel
                    if thread_id:
                        payload["thread_ts"] = thread_id
                    response = await client.post(
                        f"{SLACK_API}/chat.postMessage",
                        json=payload,
                        headers=self._bot_headers(),
                    )
                    response.raise_for_status()
                    data = response.json()
                    if not data.get("ok"):
                        logger.warning("slack_post_rejected", error=data.get("error"))
                        return None
                    return data.get("ts")

                if self.webhook_url:
                    response = await client.post(self.webhook_url, json=payload)
                    response.raise_for_status()
                    return ""
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("slack_post_failed", error=str(exc))
            return None

        logger.warning("slack_not_configured")
        return None

    async def upload_file(
        self,
        content: str,
        filename: str,
        thread_id: str | None = None,
        *,
        title: str | None = None,
    ) -> bool:
        """Upload a text file to the channel, optionally into a thread.

        Only available with a bot token. Returns True when Slack confirms
        the upload.
        """
        if not self.uses_bot:
            logger.info("slack_upload_skipped", reason="no_bot_token", filename=filename)
            return False

        raw = content.encode("utf-8")
        try:
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                ticket_resp = await client.post(
                    f"{SLACK_API}/files.getUploadURLExternal",
                    data={"filename": filename, "length": str(len(raw))},
                    headers=self._bot_headers(),
                )
                ticket_resp.raise_for_status()
                ticket = ticket_resp.json()
                if not ticket.get("ok"):
                    logger.warning("slack_upload_rejected", step="get_url", error=ticket.get("error"))
                    return False

                upload_resp = await client.post(
                    ticket["upload_url"],
                    content=raw,
                    headers={"Content-Type": "application/octet-stream"},
                )
                upload_resp.raise_for_status()

                complete: dict[str, Any] = {
                    "files": [{"id": ticket["file_id"], "title": title or filename}],
                    "channel_id": self.channel,
                }
                if thread_id:
                    complete["thread_ts"] = thread_id
                complete_resp = await client.post(
                    f"{SLACK_API}/files.completeUploadExternal",
                    json=complete,
                    headers=self._bot_headers(),
                )
                complete_resp.raise_for_status()
                data = complete_resp.json()
                if not data.get("ok"):
                    logger.warning("slack_upload_rejected", step="complete", error=data.get("error"))
                    return False
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("slack_upload_failed", filename=filename, error=str(exc))
            return False

        logger.info("slack_file_uploaded", filename=filename, bytes=len(raw))
        return True

    # -----------------------------------------------------------------------
    # Status notifications
    # -----------------------------------------------------------------------

    async def notify_status(
        self,
        message: str,
        *,
        title: str | None = None,
        color: str = "good",
        fields: list[dict[str, Any]] | None = None,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """Send an operational status message.

        Skipped outside production unless force_dev is set.
        """
        if self.environment != "production" and not self.force_dev:
            logger.info("slack_notification_skipped", reason="development", message=message)
            return False

        now = datetime.now(timezone.utc)
        attachment_fields = [
            {"title": "Environment", "value": self.environment.capitalize(), "short": True},
            {"title": "Timestamp", "value": now.isoformat(), "short": True},
            *(fields or []),
        ]
        if context:
            attachment_fields.append(
                {
                    "title": "Context",
                    "value": f"```{json.dumps(context, indent=2, default=str)}```",
                    "short": False,
                }
            )
        attachment = {
            "color": color,
            "title": title,
            "fields": attachment_fields,
            "footer": "Nimiq Changelog",
            "ts": int(now.timestamp()),
        }
        if not self.configured:
            logger.warning("slack_not_configured", message=message)
            return False
        return await self.post_message(message, attachments=[attachment]) is not None

    async def weekly_summary_succeeded(self, release_count: int, summary: str) -> bool:
        preview = summary[:PREVIEW_LIMIT] + ("..." if len(summary) > PREVIEW_LIMIT else "")
        return await self.notify_status(
            "📝 Weekly changelog summary generated successfully",
            title=f"{release_count} releases summarized",
            fields=[
                {"title": "Release Count", "value": str(release_count), "short": True},
                {"title": "Preview", "value": preview, "short": False},
            ],
        )

    async def weekly_summary_failed(self, error: BaseException | str, step: str | None = None) -> bool:
        return await self.notify_status(
            "🚨 Weekly changelog summary generation failed",
            title="Summary generation error" + (f" during {step}" if step else ""),
            color="danger",
            fields=[{"title": "Failed Step", "value": step, "short": True}] if step else None,
            context={"error": str(error), "timestamp": datetime.now(timezone.utc).isoformat()},
        )
