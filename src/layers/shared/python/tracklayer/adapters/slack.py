"""Slack notification adapter.

Operational alerts, so no consent check applies. Messages go out through an
incoming webhook when one is configured, otherwise through
``chat.postMessage`` with a bot token.
"""

import json
from typing import Any

import httpx
import structlog

from tracklayer.adapters.base import Capability, SendResult
from tracklayer.models.events import ConsentState
from tracklayer.utils.env import env_bool, env_str
from tracklayer.utils.exceptions import AdapterDispatchError, AdapterNotConfiguredError
from tracklayer.utils.templates import interpolate

logger = structlog.get_logger()

SLACK_API_URL = "https://slack.com/api/chat.postMessage"


class SlackAdapter:
    """Notification adapter for Slack."""

    name = "slack"
    version = "1.0.0"
    capabilities = frozenset({Capability.SEND})

    def __init__(
        self,
        webhook_url: str | None = None,
        token: str | None = None,
        enabled: bool = True,
        default_channel: str | None = None,
        username: str = "Growth Toolkit",
        icon_emoji: str = ":chart_with_upwards_trend:",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.webhook_url = webhook_url
        self.token = token
        self.enabled = enabled
        self.default_channel = default_channel
        self.username = username
        self.icon_emoji = icon_emoji
        self.timeout = timeout
        self._client = client
        self.logger = logger.bind(service="slack_adapter")

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> "SlackAdapter":
        return cls(
            webhook_url=env_str("SLACK_WEBHOOK_URL", "") or None,
            token=env_str("SLACK_BOT_TOKEN", "") or None,
            enabled=env_bool("SLACK_ENABLED", True),
            default_channel=env_str("SLACK_DEFAULT_CHANNEL", "") or None,
            client=client,
        )

    def is_enabled(self) -> bool:
        return self.enabled and bool(self.webhook_url or self.token)

    def check_consent(self, consent: ConsentState, region: str) -> bool:
        return True

    async def send(
        self,
        channel: str | None,
        message: str,
        options: dict[str, Any] | None = None,
    ) -> SendResult:
        """Post a message to a channel.

        Args:
            channel: Channel name, with or without a leading ``#``. Falls back
                to the default channel.
            message: Message text (mrkdwn).
            options: Optional ``thread_ts``, ``blocks`` and ``attachments``.

        Returns:
            SendResult; ``delivery_id`` is the message ``ts`` when the Web API
            was used.

        Raises:
            AdapterNotConfiguredError: If neither webhook nor token is set.
            AdapterDispatchError: If Slack rejects the message.
        """
        if not self.is_enabled():
            raise AdapterNotConfiguredError(self.name, "Slack adapter is not properly configured")

        channel = channel or self.default_channel or ""
        if channel and not channel.startswith("#"):
            channel = f"#{channel}"
        options = options or {}

        if self.webhook_url:
            result = await self._send_via_webhook(channel, message, options)
        else:
            result = await self._send_via_api(channel, message, options)

        self.logger.info("Slack message sent", channel=channel, delivery_id=result.delivery_id)
        return result

    async def _send_via_webhook(
        self,
        channel: str,
        message: str,
        options: dict[str, Any],
    ) -> SendResult:
        payload: dict[str, Any] = {
            "text": message,
            "username": self.username,
            "icon_emoji": self.icon_emoji,
        }
        if channel:
            payload["channel"] = channel
        for key in ("thread_ts", "blocks", "attachments"):
            if options.get(key):
                payload[key] = options[key]

        response = await self._post(self.webhook_url, payload)
        if not response.is_success:
            raise AdapterDispatchError(
                self.name,
                "send",
                original_error=f"Slack webhook failed: {response.status_code} {response.text}",
            )
        return SendResult(ok=True)

    async def _send_via_api(
        self,
        channel: str,
        message: str,
        options: dict[str, Any],
    ) -> SendResult:
        payload: dict[str, Any] = {"channel": channel, "text": message}
        if options.get("thread_ts"):
            payload["thread_ts"] = options["thread_ts"]
        if options.get("blocks"):
            payload["blocks"] = json.dumps(options["blocks"])
        if options.get("attachments"):
            payload["attachments"] = json.dumps(options["attachments"])

        response = await self._post(
            SLACK_API_URL,
            payload,
            headers={"Authorization": f"Bearer {self.token}"},
        )
        data = response.json()
        if not data.get("ok"):
            raise AdapterDispatchError(
                self.name,
                "send",
                original_error=f"Slack API failed: {data.get('error', 'unknown_error')}",
            )
        return SendResult(ok=True, delivery_id=data.get("ts"))

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, json=payload, headers=headers)

    def format_rich_message(
        self,
        title: str,
        message: str,
        fields: list[dict[str, str]] | None = None,
        color: str | None = None,
        actions: list[dict[str, str]] | None = None,
    ) -> dict[str, list]:
        """Build Block Kit blocks and attachments for an alert.

        Args:
            title: Header text.
            message: Body text (mrkdwn).
            fields: ``{"title", "value"}`` pairs rendered as a bold list.
            color: Attachment color (``good``, ``warning``, ``danger`` or hex).
            actions: ``{"text", "url"}`` link buttons.

        Returns:
            Dict with ``blocks`` and ``attachments`` ready for ``send`` options.
        """
        blocks: list[dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": title}},
            {"type": "section", "text": {"type": "mrkdwn", "text": message}},
        ]

        if fields:
            fields_text = "\n".join(f"*{f['title']}:* {f['value']}" for f in fields)
            blocks.append({"type": "section", "text": {"type": "mrkdwn", "text": fields_text}})

        if actions:
            blocks.append(
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": action["text"]},
                            "url": action["url"],
                        }
                        for action in actions
                    ],
                }
            )

        attachments = [{"color": color, "blocks": []}] if color else []
        return {"blocks": blocks, "attachments": attachments}

    def interpolate_template(self, template: str, data: dict[str, Any]) -> str:
        """Fill ``{{path}}`` placeholders from ``data``; unknown paths stay as written."""
        return interpolate(template, data)
