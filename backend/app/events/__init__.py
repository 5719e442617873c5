"""Booking lifecycle events and their delivery."""

from app.events.booking_events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingNoShow,
)
from app.events.dispatch import LoggingNotificationDispatch, NotificationDispatch
from app.events.publisher import EventPublisher

__all__ = [
    "BookingCreated",
    "BookingCancelled",
    "BookingCompleted",
    "BookingNoShow",
    "EventPublisher",
    "NotificationDispatch",
    "LoggingNotificationDispatch",
]
