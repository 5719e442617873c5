"""Notification dispatch interface consumed by the booking ledger."""
import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class NotificationDispatch(Protocol):
    """Fan-out collaborator that delivers booking notifications to users."""

    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatch:
    """Default dispatcher: records the notification in the application log."""

    def notify(self, user_id: str, kind: str, payload: Dict[str, Any]) -> None:
        logger.info(
            "Notification %s for user %s",
            kind,
            user_id,
            extra={"notification_kind": kind, "user_id": user_id, "payload": payload},
        )
