"""Slack notification helpers split by domain."""

from .alert_notifier import AlertSlackNotifier  # noqa: F401
