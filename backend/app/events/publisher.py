"""Event publisher - hands committed booking events to the notification dispatcher."""
from datetime import datetime
from decimal import Decimal
import logging
from typing import Any, Dict, Optional, Protocol

from app.core.config import settings
from app.events.dispatch import LoggingNotificationDispatch, NotificationDispatch
from app.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for event types."""

    kind: str
    user_id: str

    def to_dict(self) -> Dict[str, Any]:
        ...


class EventPublisher:
    """Publishes domain events to the notification dispatcher."""

    def __init__(self, dispatch: Optional[NotificationDispatch] = None):
        self.dispatch: NotificationDispatch = dispatch or LoggingNotificationDispatch()

    def publish(self, event: Event) -> None:
        """
        Deliver an event, fire-and-forget.

        Only call this after the transaction that produced the event has
        committed. Delivery failures are logged and never reach the caller.
        """
        if not settings.notifications_enabled:
            return

        payload = event.to_dict()

        # Convert datetime/Decimal values so payloads are JSON friendly
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
            elif isinstance(value, Decimal):
                payload[key] = float(value)

        try:
            self.dispatch.notify(event.user_id, event.kind, payload)
        except Exception as exc:
            logger.warning(
                "Notification delivery failed for %s (user %s): %s",
                event.kind,
                event.user_id,
                exc,
                exc_info=True,
            )
            if settings.metrics_enabled:
                prometheus_metrics.record_notification(event.kind, "failed")
            return

        if settings.metrics_enabled:
            prometheus_metrics.record_notification(event.kind, "sent")
