"""Tests for EventPublisher payload shaping and fire-and-forget delivery."""

from datetime import datetime, timezone
from decimal import Decimal
import logging
from unittest.mock import Mock

from app.core.config import settings
from app.events import BookingCancelled, BookingCreated, EventPublisher
from app.events import publisher as publisher_module

START = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


def created_event() -> BookingCreated:
    return BookingCreated(
        booking_id="b1",
        user_id="u1",
        class_id="c1",
        class_instance_id="i1",
        class_start_time=START,
        created_at=START,
    )


def test_payload_is_json_friendly():
    dispatch = Mock()
    event = BookingCancelled(
        booking_id="b1",
        user_id="u1",
        class_instance_id="i1",
        cancelled_by="u1",
        cancelled_by_role="member",
        cancelled_at=START,
        refund_percentage=50,
        refund_amount=Decimal("7.50"),
    )

    EventPublisher(dispatch).publish(event)

    dispatch.notify.assert_called_once()
    user_id, kind, payload = dispatch.notify.call_args.args
    assert (user_id, kind) == ("u1", "booking_cancelled")
    assert payload["cancelled_at"] == "2030-01-07T09:00:00+00:00"
    assert payload["refund_amount"] == 7.5


def test_delivery_failure_is_logged_not_raised(caplog):
    dispatch = Mock()
    dispatch.notify.side_effect = TimeoutError("gateway timeout")

    with caplog.at_level(logging.WARNING, logger="app.events.publisher"):
        EventPublisher(dispatch).publish(created_event())

    assert "Notification delivery failed for booking_created" in caplog.text


def test_disabled_notifications_skip_dispatch(monkeypatch):
    monkeypatch.setattr(settings, "notifications_enabled", False)
    dispatch = Mock()

    EventPublisher(dispatch).publish(created_event())

    dispatch.notify.assert_not_called()


def test_defaults_to_logging_dispatch(caplog):
    with caplog.at_level(logging.INFO, logger="app.events.dispatch"):
        EventPublisher().publish(created_event())

    assert "Notification booking_created for user u1" in caplog.text


def test_outcomes_are_counted_when_metrics_enabled(monkeypatch):
    monkeypatch.setattr(settings, "metrics_enabled", True)
    record = Mock()
    monkeypatch.setattr(publisher_module.prometheus_metrics, "record_notification", record)
    failing = Mock()
    failing.notify.side_effect = TimeoutError("gateway timeout")

    EventPublisher(Mock()).publish(created_event())
    EventPublisher(failing).publish(created_event())

    assert [c.args for c in record.call_args_list] == [
        ("booking_created", "sent"),
        ("booking_created", "failed"),
    ]


def test_disabled_metrics_skip_notification_counters(monkeypatch):
    monkeypatch.setattr(settings, "metrics_enabled", False)
    record = Mock()
    monkeypatch.setattr(publisher_module.prometheus_metrics, "record_notification", record)
    failing = Mock()
    failing.notify.side_effect = TimeoutError("gateway timeout")

    EventPublisher(Mock()).publish(created_event())
    EventPublisher(failing).publish(created_event())

    record.assert_not_called()
