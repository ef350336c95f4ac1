"""Slack alerts for operational failures that need a human (archival gaps, sweep errors)."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from safety_admin.services.system.logger_service import get_logger

from .base import SlackWebhookClient, format_context_value

logger = get_logger(__name__)


class AlertSlackNotifier(SlackWebhookClient):
    def __init__(self, webhook_url: Optional[str] = None) -> None:
        super().__init__(
            webhook_url=webhook_url if webhook_url is not None else os.getenv("SLACK_ALERT_WEBHOOK"),
            channel=os.getenv("SLACK_ALERT_CHANNEL"),
            username=os.getenv("SLACK_ALERT_USERNAME", "Trust & Safety Alerts"),
            icon_emoji=os.getenv("SLACK_ALERT_ICON", ":rotating_light:"),
        )

    def notify_alert(self, title: str, summary: str, context: Optional[Dict[str, Any]] = None) -> bool:
        if not self.enabled:
            return False
        logger.info("Sending operational alert", extra={"alert_title": title})
        fields: List[Dict[str, Any]] = [
            {"type": "mrkdwn", "text": f"*{key}*\n{format_context_value(value)}"}
            for key, value in (context or {}).items()
        ]
        blocks: List[Dict[str, Any]] = [
            {"type": "header", "text": {"type": "plain_text", "text": title[:150]}},
            {"type": "section", "text": {"type": "mrkdwn", "text": summary}},
        ]
        if fields:
            blocks.append({"type": "section", "fields": fields[:10]})
        return self.send_message(f"{title}: {summary}", blocks=blocks)
