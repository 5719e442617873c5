# backend/app/services/class_instance_service.py
"""
Class Instance Service for the GymApp platform.

Materializes concrete occurrences of class templates and owns the roster
counter. The counter primitives (``increment_roster`` / ``decrement_roster``)
do not commit: they join whatever transaction the caller (normally
BookingService) has open, so the roster change and the booking row become
durable together.
"""

from datetime import date, datetime, timedelta
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MAX_INSTANCE_NOTES_LENGTH
from ..core.exceptions import (
    CapacityExceededException,
    ConflictException,
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, sunday_based_weekday, utc_now, wall_clock_to_utc
from ..models.booking import Booking
from ..models.class_instance import (
    INSTANCE_TRANSITIONS,
    ClassAttendance,
    ClassInstance,
    ClassInstanceStatus,
)
from ..models.class_template import ClassTemplate
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import ActorContext
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from ..repositories.class_template_repository import ClassTemplateRepository
from .base import BaseService

logger = logging.getLogger(__name__)


class ClassInstanceService(BaseService):
    """Service layer for class instances, their roster and attendance."""

    def __init__(
        self,
        db: Session,
        repository: Optional[ClassInstanceRepository] = None,
        template_repository: Optional[ClassTemplateRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
    ):
        super().__init__(db)
        self.repository = repository or ClassInstanceRepository(db)
        self.template_repository = template_repository or ClassTemplateRepository(db)
        self.booking_repository = booking_repository or BookingRepository(db)

    # Helpers

    @staticmethod
    def _require_staff(actor: ActorContext, action: str) -> None:
        if not actor.is_staff:
            raise ForbiddenException(f"Only trainers and admins can {action}")

    def _load_materializable_template(self, class_id: str) -> ClassTemplate:
        template = self.template_repository.get_by_id(class_id)
        if not template:
            raise NotFoundException(f"Class {class_id} not found", code="CLASS_NOT_FOUND")
        if not template.accepts_new_instances:
            raise ValidationException(
                "Class is not accepting new instances",
                code="CLASS_NOT_SCHEDULABLE",
                details={
                    "class_id": class_id,
                    "status": template.status,
                    "is_bookable": template.is_bookable,
                },
            )
        return template

    # Creation

    @BaseService.measure_operation("create_instance")
    def create(
        self,
        actor: ActorContext,
        class_id: str,
        start_time: datetime,
        end_time: datetime,
        scheduled_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> ClassInstance:
        """
        Create one instance of a template.

        ``max_capacity`` and ``trainer_id`` are copied from the template.

        Raises:
            NotFoundException: Template does not exist
            ValidationException: Template cancelled/inactive or times out of order
            ConflictException: An instance already exists at this start time
        """
        self._require_staff(actor, "schedule classes")
        template = self._load_materializable_template(class_id)

        start_utc = ensure_utc(start_time)
        end_utc = ensure_utc(end_time)
        if not start_utc < end_utc:
            raise ValidationException(
                "start_time must be before end_time",
                code="INVALID_INSTANCE_TIMES",
            )
        if notes and len(notes) > MAX_INSTANCE_NOTES_LENGTH:
            raise ValidationException(
                f"Notes cannot exceed {MAX_INSTANCE_NOTES_LENGTH} characters"
            )

        if self.repository.find_one_by(class_id=class_id, start_time=start_utc):
            raise ConflictException(
                "A class instance already exists at this start time",
                code="INSTANCE_EXISTS",
                details={"class_id": class_id, "start_time": start_utc.isoformat()},
            )

        self.log_operation("create_instance", class_id=class_id, start_time=start_utc.isoformat())
        with self.transaction():
            try:
                instance = self.repository.create(
                    class_id=class_id,
                    trainer_id=template.trainer_id,
                    scheduled_date=scheduled_date or start_utc.date(),
                    start_time=start_utc,
                    end_time=end_utc,
                    max_capacity=template.max_capacity,
                    current_bookings=0,
                    status=ClassInstanceStatus.SCHEDULED.value,
                    notes=notes,
                )
            except IntegrityError:
                # Lost a race with a concurrent create for the same slot
                raise ConflictException(
                    "A class instance already exists at this start time",
                    code="INSTANCE_EXISTS",
                    details={"class_id": class_id, "start_time": start_utc.isoformat()},
                )
        return instance

    @BaseService.measure_operation("materialize_schedule")
    def materialize_schedule(
        self,
        actor: ActorContext,
        class_id: str,
        start_date: date,
        end_date: date,
    ) -> List[ClassInstance]:
        """
        Generate instances from the template's weekly schedule.

        The range is inclusive. Occurrences that already exist are skipped, so
        running the same range twice creates nothing new. A non-recurring
        entry only yields its first occurrence within the range.
        """
        self._require_staff(actor, "generate class instances")
        if end_date < start_date:
            raise ValidationException("end_date must not be before start_date")
        if (end_date - start_date).days + 1 > settings.max_materialization_days:
            raise ValidationException(
                f"Cannot materialize more than {settings.max_materialization_days} days at once"
            )

        template = self._load_materializable_template(class_id)
        if not template.schedule:
            return []

        window_start = wall_clock_to_utc(start_date, "00:00", settings.schedule_timezone)
        window_end = wall_clock_to_utc(
            end_date + timedelta(days=1), "00:00", settings.schedule_timezone
        )
        existing = {
            ensure_utc(value)
            for value in self.repository.get_start_times_for_class(
                class_id, window_start, window_end
            )
        }

        planned: List[ClassInstance] = []
        used_once = set()
        day = start_date
        while day <= end_date:
            weekday = sunday_based_weekday(day)
            for entry in template.schedule:
                if entry.day_of_week != weekday:
                    continue
                if not entry.is_recurring:
                    if entry.id in used_once:
                        continue
                    used_once.add(entry.id)

                start_utc = wall_clock_to_utc(day, entry.start_time, settings.schedule_timezone)
                if start_utc in existing:
                    continue
                existing.add(start_utc)
                planned.append(
                    ClassInstance(
                        class_id=class_id,
                        trainer_id=template.trainer_id,
                        scheduled_date=day,
                        start_time=start_utc,
                        end_time=wall_clock_to_utc(
                            day, entry.end_time, settings.schedule_timezone
                        ),
                        max_capacity=template.max_capacity,
                        current_bookings=0,
                        status=ClassInstanceStatus.SCHEDULED.value,
                    )
                )
            day += timedelta(days=1)

        self.log_operation(
            "materialize_schedule",
            class_id=class_id,
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
            instances_created=len(planned),
        )
        if not planned:
            return []

        with self.transaction():
            try:
                created = self.repository.add_all(planned)
            except IntegrityError:
                raise ConflictException(
                    "Schedule was materialized concurrently; retry to pick up the remainder",
                    code="INSTANCE_EXISTS",
                    details={"class_id": class_id},
                )
        return created

    # Reads

    @BaseService.measure_operation("get_instance")
    def get(self, instance_id: str) -> ClassInstance:
        instance = self.repository.get_by_id(instance_id)
        if not instance:
            raise NotFoundException(
                f"Class instance {instance_id} not found", code="INSTANCE_NOT_FOUND"
            )
        return instance

    def snapshot(self, instance_id: str) -> Dict[str, Any]:
        """Current roster/capacity/status view, read straight from the store."""
        instance = self.repository.get_fresh(instance_id)
        if not instance:
            raise NotFoundException(
                f"Class instance {instance_id} not found", code="INSTANCE_NOT_FOUND"
            )
        return instance.snapshot()

    @BaseService.measure_operation("list_instances")
    def list_for_class(
        self,
        class_id: str,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[str] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Tuple[List[ClassInstance], int]:
        if not self.template_repository.get_by_id(class_id, load_relationships=False):
            raise NotFoundException(f"Class {class_id} not found", code="CLASS_NOT_FOUND")
        per_page = min(per_page or settings.default_page_size, settings.max_page_size)
        return self.repository.list_for_class(
            class_id,
            from_date=from_date,
            to_date=to_date,
            status=getattr(status, "value", status),
            offset=(max(page, 1) - 1) * per_page,
            limit=per_page,
        )

    # Roster counter (joins the caller's transaction)

    def increment_roster(self, instance_id: str) -> None:
        """
        Take one seat atomically.

        Raises:
            NotFoundException: Instance does not exist or is no longer scheduled
            CapacityExceededException: Roster already at max capacity
        """
        if self.repository.try_increment_roster(instance_id):
            return

        instance = self.repository.get_fresh(instance_id)
        if not instance:
            raise NotFoundException(
                f"Class instance {instance_id} not found", code="INSTANCE_NOT_FOUND"
            )
        if instance.status != ClassInstanceStatus.SCHEDULED.value:
            raise NotFoundException(
                "Class instance not found or not open for booking",
                code="INSTANCE_NOT_BOOKABLE",
                details={"class_instance_id": instance_id, "status": instance.status},
            )
        raise CapacityExceededException(instance_id, instance.max_capacity)

    def decrement_roster(self, instance_id: str) -> bool:
        """
        Release one seat, flooring at zero.

        A decrement at zero means the counter has drifted from the booking
        log; it is logged and counted, never raised.
        """
        if self.repository.decrement_roster(instance_id):
            return True

        logger.warning(
            "Roster anomaly: decrement at zero for class instance %s",
            instance_id,
            extra={"class_instance_id": instance_id, "anomaly": "decrement_at_zero"},
        )
        if settings.metrics_enabled:
            prometheus_metrics.inc_roster_anomaly("decrement_at_zero")
        return False

    # Lifecycle

    @BaseService.measure_operation("set_instance_status")
    def set_status(self, actor: ActorContext, instance_id: str, status: Any) -> ClassInstance:
        """
        Move an instance through scheduled -> ongoing -> completed, or to cancelled
        from scheduled/ongoing.

        Raises:
            InvalidStateTransitionException: Transition not allowed
        """
        self._require_staff(actor, "change class instance status")
        try:
            requested = ClassInstanceStatus(getattr(status, "value", status))
        except ValueError:
            raise ValidationException(
                f"Invalid class instance status: {status}",
                details={"allowed": [s.value for s in ClassInstanceStatus]},
            )

        instance = self.get(instance_id)
        current = ClassInstanceStatus(instance.status)
        if requested not in INSTANCE_TRANSITIONS[current]:
            raise InvalidStateTransitionException(
                "class instance", current.value, requested.value
            )

        self.log_operation(
            "set_instance_status",
            class_instance_id=instance_id,
            old=current.value,
            new=requested.value,
        )
        stamps: Dict[str, Any] = {}
        if requested == ClassInstanceStatus.ONGOING:
            stamps["actual_start_time"] = utc_now()
        elif requested == ClassInstanceStatus.COMPLETED:
            stamps["actual_end_time"] = utc_now()

        with self.transaction():
            moved = self.repository.transition_status(
                instance_id, current.value, status=requested.value, **stamps
            )
            if not moved:
                # Another writer changed the status after it was read
                latest = self.repository.get_fresh(instance_id)
                raise InvalidStateTransitionException(
                    "class instance",
                    latest.status if latest else current.value,
                    requested.value,
                )
        return self.repository.get_fresh(instance_id)

    # Attendance

    def _require_attendee_booking(
        self, actor: ActorContext, instance_id: str, user_id: str
    ) -> Booking:
        if not actor.can_act_for(user_id):
            raise ForbiddenException("You can only check in yourself")
        booking = self.booking_repository.get_confirmed_booking(user_id, instance_id)
        if not booking:
            raise ValidationException(
                "User has no confirmed booking for this class",
                code="NO_CONFIRMED_BOOKING",
                details={"user_id": user_id, "class_instance_id": instance_id},
            )
        return booking

    @BaseService.measure_operation("check_in")
    def check_in(self, actor: ActorContext, instance_id: str, user_id: str) -> ClassAttendance:
        """Record arrival for a member holding a confirmed booking."""
        instance = self.get(instance_id)
        if instance.status not in (
            ClassInstanceStatus.SCHEDULED.value,
            ClassInstanceStatus.ONGOING.value,
        ):
            raise ValidationException(
                f"Cannot check in to a {instance.status} class", code="CHECK_IN_CLOSED"
            )
        booking = self._require_attendee_booking(actor, instance_id, user_id)
        if self.repository.get_attendance(instance_id, user_id):
            raise ConflictException("User already checked in", code="ALREADY_CHECKED_IN")

        self.log_operation("check_in", class_instance_id=instance_id, user_id=user_id)
        with self.transaction():
            now = utc_now()
            record = self.repository.add_attendance(instance_id, user_id, now)
            booking.check_in_time = now
            self.repository.flush()
        return record

    @BaseService.measure_operation("check_out")
    def check_out(self, actor: ActorContext, instance_id: str, user_id: str) -> ClassAttendance:
        """Record departure; the member must have checked in first."""
        self.get(instance_id)
        booking = self._require_attendee_booking(actor, instance_id, user_id)
        record = self.repository.get_attendance(instance_id, user_id)
        if not record:
            raise ValidationException("User has not checked in", code="NOT_CHECKED_IN")
        if record.check_out_time is not None:
            raise ConflictException("User already checked out", code="ALREADY_CHECKED_OUT")

        self.log_operation("check_out", class_instance_id=instance_id, user_id=user_id)
        with self.transaction():
            now = utc_now()
            record.check_out_time = now
            booking.check_out_time = now
            self.repository.flush()
        return record

    # Reconciliation

    @BaseService.measure_operation("reconcile_roster")
    def reconcile_roster(
        self, actor: ActorContext, instance_id: str, repair: bool = False
    ) -> Dict[str, Any]:
        """
        Compare the roster counter with the booking log.

        Seat-holding bookings are confirmed, completed and no-show; only
        cancellation frees a seat. With ``repair`` the counter is overwritten
        with the recomputed value.
        """
        if not actor.is_admin:
            raise ForbiddenException("Only admins can reconcile rosters")

        with self.transaction():
            instance = self.repository.get_fresh(instance_id)
            if not instance:
                raise NotFoundException(
                    f"Class instance {instance_id} not found", code="INSTANCE_NOT_FOUND"
                )
            expected = self.repository.count_seat_holding_bookings(instance_id)
            recorded = int(instance.current_bookings)
            drift = recorded - expected
            repaired = False
            if drift and repair:
                if expected > instance.max_capacity:
                    raise ConflictException(
                        "Booking log exceeds capacity; manual review required",
                        code="ROSTER_OVER_CAPACITY",
                        details={"expected": expected, "max_capacity": instance.max_capacity},
                    )
                self.repository.set_roster_count(instance_id, expected)
                repaired = True

        if drift:
            logger.warning(
                "Roster drift on class instance %s: counter=%s bookings=%s",
                instance_id,
                recorded,
                expected,
                extra={"class_instance_id": instance_id, "drift": drift, "repaired": repaired},
            )
            if settings.metrics_enabled:
                prometheus_metrics.inc_roster_anomaly("reconcile_drift")

        return {
            "class_instance_id": instance_id,
            "current_bookings": recorded,
            "seat_holding_bookings": expected,
            "drift": drift,
            "repaired": repaired,
        }
