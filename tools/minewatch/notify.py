"""Best-effort SNS notifications for server start and shutdown."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import format_datetime
from typing import Any

import structlog

from minewatch.models import Edition, WatchdogConfig

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Message templates (pure)
# ---------------------------------------------------------------------------


def _rfc1123(now: datetime | None) -> str:
    return format_datetime(now or datetime.now(UTC), usegmt=True)


def startup_message(
    config: WatchdogConfig,
    edition: Edition,
    public_ip: str,
    now: datetime | None = None,
) -> str:
    """Format the notice sent once the server is reachable."""
    return (
        "Server is online.\n"
        f"Service: {config.service}\n"
        f"Edition: {edition}\n"
        f"Address: {config.server_name} ({public_ip})\n"
        f"Cluster: {config.cluster}\n"
        f"Time: {_rfc1123(now)}"
    )


def shutdown_message(config: WatchdogConfig, now: datetime | None = None) -> str:
    """Format the notice sent before the service is scaled to zero."""
    return (
        "Shutting down server.\n"
        f"Service: {config.service}\n"
        f"Address: {config.server_name}\n"
        f"Cluster: {config.cluster}\n"
        f"Time: {_rfc1123(now)}"
    )


# ---------------------------------------------------------------------------
# Publisher
# ---------------------------------------------------------------------------


class Notifier:
    """Publishes to an SNS topic. A missing topic makes every call a no-op."""

    def __init__(self, sns: Any, topic_arn: str | None) -> None:
        self._sns = sns
        self._topic_arn = topic_arn

    @property
    def enabled(self) -> bool:
        return bool(self._topic_arn) and self._sns is not None

    def publish(self, message: str) -> None:
        if not self.enabled:
            return
        try:
            self._sns.publish(TopicArn=self._topic_arn, Message=message)
        except Exception as exc:
            logger.warning("Failed to publish notification", error=str(exc))
