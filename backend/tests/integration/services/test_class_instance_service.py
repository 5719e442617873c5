"""Integration tests for ClassInstanceService."""

from datetime import date, datetime, timedelta, timezone
import logging

import pytest

from app.core.config import settings
from app.core.exceptions import (
    CapacityExceededException,
    ConflictException,
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from app.core.timezone_utils import ensure_utc
from app.core.ulid_helper import generate_ulid
from app.models.class_instance import ClassInstanceStatus

# 2030-01-06 is a Sunday; the default schedule runs Monday 09:00 and Wednesday 18:30
WEEK_START = date(2030, 1, 6)
TWO_WEEKS_END = date(2030, 1, 19)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCreateInstance:
    def test_copies_capacity_and_trainer_from_template(self, instance_service, trainer, make_template):
        template = make_template(max_capacity=12)
        start = utc(2030, 2, 1, 7, 0)

        instance = instance_service.create(
            trainer, template.id, start, start + timedelta(hours=1), notes="Bring a mat"
        )

        assert instance.max_capacity == 12
        assert instance.trainer_id == template.trainer_id
        assert instance.current_bookings == 0
        assert instance.status == ClassInstanceStatus.SCHEDULED.value
        assert instance.scheduled_date == date(2030, 2, 1)

    def test_duplicate_start_time_conflicts(self, instance_service, trainer, template):
        start = utc(2030, 2, 1, 7, 0)
        instance_service.create(trainer, template.id, start, start + timedelta(hours=1))

        with pytest.raises(ConflictException) as exc_info:
            instance_service.create(trainer, template.id, start, start + timedelta(hours=1))

        assert exc_info.value.code == "INSTANCE_EXISTS"

    def test_times_must_be_ordered(self, instance_service, trainer, template):
        start = utc(2030, 2, 1, 7, 0)

        with pytest.raises(ValidationException):
            instance_service.create(trainer, template.id, start, start)

    def test_cancelled_template_cannot_be_scheduled(
        self, instance_service, catalog_service, trainer, template
    ):
        catalog_service.set_status(trainer, template.id, "cancelled")
        start = utc(2030, 2, 1, 7, 0)

        with pytest.raises(ValidationException) as exc_info:
            instance_service.create(trainer, template.id, start, start + timedelta(hours=1))

        assert exc_info.value.code == "CLASS_NOT_SCHEDULABLE"

    def test_member_cannot_create(self, instance_service, member, template):
        start = utc(2030, 2, 1, 7, 0)

        with pytest.raises(ForbiddenException):
            instance_service.create(member, template.id, start, start + timedelta(hours=1))

    def test_unknown_template(self, instance_service, trainer):
        start = utc(2030, 2, 1, 7, 0)

        with pytest.raises(NotFoundException):
            instance_service.create(trainer, generate_ulid(), start, start + timedelta(hours=1))


class TestMaterializeSchedule:
    def test_generates_weekly_occurrences(self, instance_service, trainer, template):
        created = instance_service.materialize_schedule(
            trainer, template.id, WEEK_START, TWO_WEEKS_END
        )

        starts = sorted(ensure_utc(i.start_time) for i in created)
        assert starts == [
            utc(2030, 1, 7, 9, 0),
            utc(2030, 1, 9, 18, 30),
            utc(2030, 1, 14, 9, 0),
            utc(2030, 1, 16, 18, 30),
        ]
        assert all(i.max_capacity == template.max_capacity for i in created)

    def test_is_idempotent(self, instance_service, trainer, template):
        instance_service.materialize_schedule(trainer, template.id, WEEK_START, TWO_WEEKS_END)

        again = instance_service.materialize_schedule(
            trainer, template.id, WEEK_START, TWO_WEEKS_END
        )

        assert again == []
        _, total = instance_service.list_for_class(template.id)
        assert total == 4

    def test_skips_manually_created_slot(self, instance_service, trainer, template):
        start = utc(2030, 1, 7, 9, 0)
        instance_service.create(trainer, template.id, start, start + timedelta(hours=1))

        created = instance_service.materialize_schedule(
            trainer, template.id, WEEK_START, TWO_WEEKS_END
        )

        assert len(created) == 3

    def test_non_recurring_entry_occurs_once(self, instance_service, trainer, make_template):
        template = make_template(
            schedule=[
                {"day_of_week": 1, "start_time": "09:00", "end_time": "10:00", "is_recurring": False}
            ]
        )

        created = instance_service.materialize_schedule(
            trainer, template.id, WEEK_START, TWO_WEEKS_END
        )

        assert [ensure_utc(i.start_time) for i in created] == [utc(2030, 1, 7, 9, 0)]

    def test_schedule_timezone_is_applied(self, instance_service, trainer, template, monkeypatch):
        monkeypatch.setattr(settings, "schedule_timezone", "America/New_York")

        created = instance_service.materialize_schedule(
            trainer, template.id, date(2030, 1, 7), date(2030, 1, 7)
        )

        # 09:00 EST is 14:00 UTC
        assert [ensure_utc(i.start_time) for i in created] == [utc(2030, 1, 7, 14, 0)]

    def test_range_limits(self, instance_service, trainer, template):
        with pytest.raises(ValidationException):
            instance_service.materialize_schedule(
                trainer, template.id, date(2030, 1, 10), date(2030, 1, 1)
            )
        with pytest.raises(ValidationException):
            instance_service.materialize_schedule(
                trainer, template.id, date(2030, 1, 1), date(2030, 12, 31)
            )

    def test_empty_schedule(self, instance_service, trainer, make_template):
        template = make_template(schedule=[])

        assert instance_service.materialize_schedule(
            trainer, template.id, WEEK_START, TWO_WEEKS_END
        ) == []


class TestListInstances:
    def test_paginates_in_start_order(self, instance_service, trainer, template):
        instance_service.materialize_schedule(trainer, template.id, WEEK_START, TWO_WEEKS_END)

        items, total = instance_service.list_for_class(template.id, page=2, per_page=2)

        assert total == 4
        assert [ensure_utc(i.start_time) for i in items] == [
            utc(2030, 1, 14, 9, 0),
            utc(2030, 1, 16, 18, 30),
        ]

    def test_date_filter(self, instance_service, trainer, template):
        instance_service.materialize_schedule(trainer, template.id, WEEK_START, TWO_WEEKS_END)

        _, total = instance_service.list_for_class(
            template.id, from_date=date(2030, 1, 8), to_date=date(2030, 1, 14)
        )

        assert total == 2

    def test_unknown_class(self, instance_service):
        with pytest.raises(NotFoundException):
            instance_service.list_for_class(generate_ulid())


class TestLifecycle:
    def test_scheduled_to_ongoing_to_completed(self, instance_service, trainer, instance):
        ongoing = instance_service.set_status(trainer, instance.id, "ongoing")
        assert ongoing.actual_start_time is not None

        completed = instance_service.set_status(trainer, instance.id, ClassInstanceStatus.COMPLETED)
        assert completed.status == "completed"
        assert completed.actual_end_time is not None

    @pytest.mark.parametrize("target", ["completed", "scheduled"])
    def test_illegal_transitions_from_scheduled(self, instance_service, trainer, instance, target):
        with pytest.raises(InvalidStateTransitionException):
            instance_service.set_status(trainer, instance.id, target)

    def test_terminal_states(self, instance_service, trainer, instance):
        instance_service.set_status(trainer, instance.id, "cancelled")

        with pytest.raises(InvalidStateTransitionException):
            instance_service.set_status(trainer, instance.id, "ongoing")

    def test_unknown_status(self, instance_service, trainer, instance):
        with pytest.raises(ValidationException):
            instance_service.set_status(trainer, instance.id, "paused")

    def test_stale_expected_status_does_not_apply(self, instance_service, instance):
        moved = instance_service.repository.transition_status(
            instance.id, ClassInstanceStatus.ONGOING.value, status="completed"
        )

        assert moved is False
        assert instance_service.snapshot(instance.id)["status"] == "scheduled"

    def test_lost_transition_is_rejected(self, instance_service, trainer, instance, monkeypatch):
        monkeypatch.setattr(
            instance_service.repository, "transition_status", lambda *args, **kwargs: False
        )

        with pytest.raises(InvalidStateTransitionException):
            instance_service.set_status(trainer, instance.id, "ongoing")

        assert instance_service.snapshot(instance.id)["status"] == "scheduled"


class TestRosterPrimitives:
    def test_increment_stops_at_capacity(self, instance_service, make_instance):
        instance = make_instance(max_capacity=1)

        instance_service.increment_roster(instance.id)
        with pytest.raises(CapacityExceededException):
            instance_service.increment_roster(instance.id)

        assert instance_service.snapshot(instance.id)["current_bookings"] == 1

    def test_increment_unknown_instance(self, instance_service):
        with pytest.raises(NotFoundException):
            instance_service.increment_roster(generate_ulid())

    def test_increment_rejects_instance_no_longer_scheduled(
        self, instance_service, trainer, instance
    ):
        instance_service.set_status(trainer, instance.id, "cancelled")

        with pytest.raises(NotFoundException) as exc_info:
            instance_service.increment_roster(instance.id)

        assert exc_info.value.code == "INSTANCE_NOT_BOOKABLE"
        assert instance_service.snapshot(instance.id)["current_bookings"] == 0

    def test_decrement_at_zero_is_logged_not_raised(self, instance_service, instance, caplog):
        with caplog.at_level(logging.WARNING):
            assert instance_service.decrement_roster(instance.id) is False

        assert instance_service.snapshot(instance.id)["current_bookings"] == 0
        assert any("decrement at zero" in record.getMessage() for record in caplog.records)

    def test_snapshot(self, instance_service, instance):
        snapshot = instance_service.snapshot(instance.id)

        assert snapshot["available_spots"] == 10
        assert snapshot["status"] == "scheduled"


class TestAttendance:
    def test_check_in_and_out(self, instance_service, booking_service, member, instance):
        booking_service.create_booking(member, instance.id)

        record = instance_service.check_in(member, instance.id, member.user_id)
        assert record.check_in_time is not None

        with pytest.raises(ConflictException):
            instance_service.check_in(member, instance.id, member.user_id)

        record = instance_service.check_out(member, instance.id, member.user_id)
        assert record.check_out_time is not None

        with pytest.raises(ConflictException):
            instance_service.check_out(member, instance.id, member.user_id)

        booking = booking_service.list_bookings(member)[0][0]
        assert booking.check_in_time is not None
        assert booking.check_out_time is not None

    def test_requires_confirmed_booking(self, instance_service, member, instance):
        with pytest.raises(ValidationException) as exc_info:
            instance_service.check_in(member, instance.id, member.user_id)

        assert exc_info.value.code == "NO_CONFIRMED_BOOKING"

    def test_check_out_requires_check_in(self, instance_service, booking_service, member, instance):
        booking_service.create_booking(member, instance.id)

        with pytest.raises(ValidationException):
            instance_service.check_out(member, instance.id, member.user_id)

    def test_member_cannot_check_in_others(
        self, instance_service, booking_service, member, other_member, instance
    ):
        booking_service.create_booking(member, instance.id)

        with pytest.raises(ForbiddenException):
            instance_service.check_in(other_member, instance.id, member.user_id)

    def test_trainer_checks_in_member(self, instance_service, booking_service, trainer, member, instance):
        booking_service.create_booking(member, instance.id)

        record = instance_service.check_in(trainer, instance.id, member.user_id)

        assert record.user_id == member.user_id

    def test_closed_class(self, instance_service, booking_service, trainer, member, instance):
        booking_service.create_booking(member, instance.id)
        instance_service.set_status(trainer, instance.id, "cancelled")

        with pytest.raises(ValidationException) as exc_info:
            instance_service.check_in(member, instance.id, member.user_id)

        assert exc_info.value.code == "CHECK_IN_CLOSED"


class TestReconcile:
    def test_reports_and_repairs_drift(self, db, instance_service, booking_service, admin, member, instance):
        booking_service.create_booking(member, instance.id)
        instance_service.repository.set_roster_count(instance.id, 3)
        db.commit()

        report = instance_service.reconcile_roster(admin, instance.id)
        assert report == {
            "class_instance_id": instance.id,
            "current_bookings": 3,
            "seat_holding_bookings": 1,
            "drift": 2,
            "repaired": False,
        }

        repaired = instance_service.reconcile_roster(admin, instance.id, repair=True)
        assert repaired["repaired"] is True
        assert instance_service.snapshot(instance.id)["current_bookings"] == 1

    def test_completed_bookings_still_hold_seats(
        self, instance_service, booking_service, admin, trainer, member, instance
    ):
        booking = booking_service.create_booking(member, instance.id)
        instance_service.set_status(trainer, instance.id, "ongoing")
        instance_service.set_status(trainer, instance.id, "completed")
        booking_service.mark_completed(trainer, booking.id)

        assert instance_service.reconcile_roster(admin, instance.id)["drift"] == 0

    def test_admin_only(self, instance_service, trainer, instance):
        with pytest.raises(ForbiddenException):
            instance_service.reconcile_roster(trainer, instance.id)
