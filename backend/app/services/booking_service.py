# backend/app/services/booking_service.py
"""
Booking Service for the GymApp platform.

The booking ledger. Handles:
- Creating bookings against a class instance under the capacity ceiling
- One confirmed booking per user per instance
- Cancellation with the time-windowed refund policy
- Post-class completion / no-show marking
- Payment status callbacks and booking statistics

Every mutating call runs in a single transaction: the roster counter change
and the booking row commit together or not at all. Lifecycle events are
published only after the commit succeeds.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import MAX_NOTES_LENGTH, MAX_REASON_LENGTH
from ..core.exceptions import (
    AlreadyCancelledException,
    BusinessRuleException,
    CancellationWindowClosedException,
    CapacityExceededException,
    ClassFullException,
    DuplicateBookingException,
    ForbiddenException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, utc_now
from ..events import (
    BookingCancelled,
    BookingCompleted,
    BookingCreated,
    BookingNoShow,
    EventPublisher,
)
from ..models.booking import PAYMENT_TRANSITIONS, Booking, BookingStatus, PaymentStatus
from ..models.class_instance import ClassInstanceStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..principal import ActorContext
from ..repositories.booking_repository import BookingRepository
from ..repositories.class_instance_repository import ClassInstanceRepository
from .base import BaseService
from .cancellation_policy import CancellationPolicy, CancellationPolicyEngine
from .class_instance_service import ClassInstanceService

logger = logging.getLogger(__name__)


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Coordinates the instance roster, the booking log, the cancellation
    policy and event publication.
    """

    def __init__(
        self,
        db: Session,
        event_publisher: Optional[EventPublisher] = None,
        repository: Optional[BookingRepository] = None,
        instance_service: Optional[ClassInstanceService] = None,
        policy_engine: Optional[CancellationPolicyEngine] = None,
    ):
        super().__init__(db)
        self.repository = repository or BookingRepository(db)
        self.instance_repository = ClassInstanceRepository(db)
        self.instance_service = instance_service or ClassInstanceService(
            db,
            repository=self.instance_repository,
            booking_repository=self.repository,
        )
        self.policy_engine = policy_engine or CancellationPolicyEngine()
        self.event_publisher = event_publisher or EventPublisher()

    def _record_outcome(self, outcome: str) -> None:
        if settings.metrics_enabled:
            prometheus_metrics.inc_booking_outcome(outcome)

    def _load_booking(self, booking_id: str) -> Booking:
        booking = self.repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundException(f"Booking {booking_id} not found", code="BOOKING_NOT_FOUND")
        return booking

    # Creation

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        actor: ActorContext,
        class_instance_id: str,
        booking_date: Optional[datetime] = None,
        class_id: Optional[str] = None,
        user_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Reserve one seat in a class instance.

        Args:
            actor: Caller; members always book for themselves
            class_instance_id: Instance to book
            booking_date: When the booking was made (defaults to now)
            class_id: Optional template id; must match the instance when given
            user_id: Member to book for (trainers/admins only)
            notes: Optional member notes

        Returns:
            The confirmed booking

        Raises:
            NotFoundException: Instance absent or not ``scheduled``
            DuplicateBookingException: User already holds a confirmed booking
            ClassFullException: No seat left
        """
        target_user_id = user_id or actor.user_id
        if target_user_id != actor.user_id and not actor.is_staff:
            raise ForbiddenException("Members can only book for themselves")
        if notes and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationException(f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")

        self.log_operation(
            "create_booking",
            user_id=target_user_id,
            class_instance_id=class_instance_id,
            actor_role=getattr(actor.role, "value", actor.role),
        )

        try:
            with self.transaction():
                instance = self.instance_repository.get_fresh(class_instance_id)
                if not instance or instance.status != ClassInstanceStatus.SCHEDULED.value:
                    raise NotFoundException(
                        "Class instance not found or not open for booking",
                        code="INSTANCE_NOT_BOOKABLE",
                        details={"class_instance_id": class_instance_id},
                    )
                if class_id and class_id != instance.class_id:
                    raise ValidationException(
                        "class_id does not match the class instance",
                        code="CLASS_MISMATCH",
                        details={"class_id": class_id, "class_instance_id": class_instance_id},
                    )

                if self.repository.get_confirmed_booking(target_user_id, class_instance_id):
                    raise DuplicateBookingException(target_user_id, class_instance_id)

                try:
                    self.instance_service.increment_roster(class_instance_id)
                except CapacityExceededException as exc:
                    raise ClassFullException(
                        class_instance_id, exc.details.get("max_capacity")
                    ) from exc

                try:
                    booking = self.repository.create(
                        user_id=target_user_id,
                        class_id=instance.class_id,
                        class_instance_id=class_instance_id,
                        booking_date=ensure_utc(booking_date) if booking_date else utc_now(),
                        status=BookingStatus.CONFIRMED.value,
                        payment_status=PaymentStatus.PENDING.value,
                        notes=notes,
                    )
                except IntegrityError as exc:
                    # A concurrent request won the confirmed-booking slot; the
                    # roster increment above is rolled back with this transaction
                    raise DuplicateBookingException(target_user_id, class_instance_id) from exc
        except ClassFullException:
            self._record_outcome("class_full")
            raise
        except DuplicateBookingException:
            self._record_outcome("duplicate")
            raise

        self._record_outcome("created")
        logger.info(
            f"Booking {booking.id} created for user {target_user_id} "
            f"on class instance {class_instance_id}"
        )
        self.event_publisher.publish(
            BookingCreated(
                booking_id=booking.id,
                user_id=booking.user_id,
                class_id=booking.class_id,
                class_instance_id=booking.class_instance_id,
                class_start_time=ensure_utc(instance.start_time),
                created_at=ensure_utc(booking.booking_date),
            )
        )
        return booking

    # Cancellation

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        actor: ActorContext,
        booking_id: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Cancel a confirmed booking.

        Cancellation is allowed any time; the template's policy only decides
        the refund. When the member cutoff is enforced, members (not trainers
        or admins) are blocked inside it.

        Raises:
            NotFoundException: Booking absent
            ForbiddenException: Caller is neither owner nor trainer/admin
            AlreadyCancelledException: Booking is not confirmed
            CancellationWindowClosedException: Member inside the enforced cutoff
        """
        if reason and len(reason) > MAX_REASON_LENGTH:
            raise ValidationException(f"Reason cannot exceed {MAX_REASON_LENGTH} characters")
        cancelled_at = ensure_utc(now) if now else utc_now()

        self.log_operation(
            "cancel_booking",
            booking_id=booking_id,
            actor_id=actor.user_id,
            actor_role=getattr(actor.role, "value", actor.role),
        )

        with self.transaction():
            booking = self._load_booking(booking_id)
            if not actor.can_act_for(booking.user_id):
                raise ForbiddenException(
                    "You can only cancel your own bookings",
                    details={"booking_id": booking_id},
                )
            if booking.status != BookingStatus.CONFIRMED.value:
                raise AlreadyCancelledException(booking_id, booking.status)

            instance = booking.class_instance
            template = booking.class_template

            if not actor.is_staff and settings.enforce_member_cancellation_cutoff:
                hours_left = self.policy_engine.hours_until(cancelled_at, instance.start_time)
                if hours_left < settings.member_cancellation_cutoff_hours:
                    raise CancellationWindowClosedException(
                        settings.member_cancellation_cutoff_hours, hours_left
                    )

            decision = self.policy_engine.evaluate(
                cancelled_at, instance.start_time, CancellationPolicy.from_template(template)
            )
            refund = self.policy_engine.refund_amount(template.price, decision.refund_percentage)

            moved = self.repository.transition_status(
                booking_id,
                BookingStatus.CONFIRMED.value,
                status=BookingStatus.CANCELLED.value,
                cancelled_at=cancelled_at,
                cancelled_by_id=actor.user_id,
                cancellation_reason=reason,
                refund_amount=refund,
            )
            if not moved:
                # Another request cancelled it between our read and write
                current = self.repository.get_fresh(booking_id)
                raise AlreadyCancelledException(
                    booking_id, current.status if current else BookingStatus.CANCELLED.value
                )

            self.instance_service.decrement_roster(booking.class_instance_id)
            booking = self.repository.get_fresh(booking_id)

        self._record_outcome("cancelled")
        logger.info(
            f"Booking {booking_id} cancelled by {actor.user_id}: "
            f"within_window={decision.within_window} refund={refund}"
        )
        self.event_publisher.publish(
            BookingCancelled(
                booking_id=booking.id,
                user_id=booking.user_id,
                class_instance_id=booking.class_instance_id,
                cancelled_by=actor.user_id,
                cancelled_by_role=getattr(actor.role, "value", actor.role),
                cancelled_at=cancelled_at,
                refund_percentage=decision.refund_percentage,
                refund_amount=float(refund),
                reason=reason,
            )
        )
        return booking

    # Post-class marking

    def _mark_after_class(
        self, actor: ActorContext, booking_id: str, target: BookingStatus
    ) -> Booking:
        booking = self._load_booking(booking_id)
        if not actor.is_staff:
            raise ForbiddenException(
                f"Only trainers and admins can mark bookings as {target.value}"
            )
        if booking.class_instance.status != ClassInstanceStatus.COMPLETED.value:
            raise BusinessRuleException(
                "Bookings can only be marked after the class is completed",
                code="CLASS_NOT_COMPLETED",
                details={
                    "class_instance_id": booking.class_instance_id,
                    "instance_status": booking.class_instance.status,
                },
            )
        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidStateTransitionException("booking", booking.status, target.value)

        values: Dict[str, Any] = {"status": target.value}
        if target == BookingStatus.COMPLETED:
            values["completed_at"] = utc_now()

        if not self.repository.transition_status(
            booking_id, BookingStatus.CONFIRMED.value, **values
        ):
            current = self.repository.get_fresh(booking_id)
            raise InvalidStateTransitionException(
                "booking", current.status if current else "unknown", target.value
            )
        # No roster change: completed and no-show bookings still occupy their seat
        return self.repository.get_fresh(booking_id)

    @BaseService.measure_operation("mark_completed")
    def mark_completed(self, actor: ActorContext, booking_id: str) -> Booking:
        """Mark a confirmed booking completed once its class has finished."""
        self.log_operation("mark_completed", booking_id=booking_id, actor_id=actor.user_id)
        with self.transaction():
            booking = self._mark_after_class(actor, booking_id, BookingStatus.COMPLETED)

        self._record_outcome("completed")
        self.event_publisher.publish(
            BookingCompleted(
                booking_id=booking.id,
                user_id=booking.user_id,
                class_instance_id=booking.class_instance_id,
                completed_at=ensure_utc(booking.completed_at),
            )
        )
        return booking

    @BaseService.measure_operation("mark_no_show")
    def mark_no_show(self, actor: ActorContext, booking_id: str) -> Booking:
        """Mark a confirmed booking as a no-show once its class has finished."""
        self.log_operation("mark_no_show", booking_id=booking_id, actor_id=actor.user_id)
        with self.transaction():
            booking = self._mark_after_class(actor, booking_id, BookingStatus.NO_SHOW)

        self._record_outcome("no_show")
        self.event_publisher.publish(
            BookingNoShow(
                booking_id=booking.id,
                user_id=booking.user_id,
                class_instance_id=booking.class_instance_id,
                marked_by=actor.user_id,
            )
        )
        return booking

    # Reads

    @BaseService.measure_operation("get_booking")
    def get_booking(self, actor: ActorContext, booking_id: str) -> Booking:
        booking = self._load_booking(booking_id)
        if not actor.can_act_for(booking.user_id):
            raise ForbiddenException("You can only view your own bookings")
        return booking

    @BaseService.measure_operation("list_bookings")
    def list_bookings(
        self,
        actor: ActorContext,
        *,
        status: Optional[str] = None,
        user_id: Optional[str] = None,
        class_id: Optional[str] = None,
        class_instance_id: Optional[str] = None,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Tuple[List[Booking], int]:
        """
        List bookings newest first.

        Members only ever see their own bookings whatever ``user_id`` says.
        """
        if page < 1:
            raise ValidationException("page must be 1 or greater")
        per_page = min(per_page or settings.default_page_size, settings.max_page_size)
        if not actor.is_staff:
            user_id = actor.user_id

        return self.repository.list_bookings(
            user_id=user_id,
            status=getattr(status, "value", status),
            class_id=class_id,
            class_instance_id=class_instance_id,
            offset=(page - 1) * per_page,
            limit=per_page,
        )

    @BaseService.measure_operation("get_booking_stats")
    def get_booking_stats(
        self,
        actor: ActorContext,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Totals per status and the cancellation rate (percent, 2 dp)."""
        if not actor.is_staff:
            raise ForbiddenException("Only trainers and admins can view booking statistics")
        start_utc = ensure_utc(start) if start else None
        end_utc = ensure_utc(end) if end else None
        if start_utc and end_utc and end_utc < start_utc:
            raise ValidationException("end must not be before start")

        counts = self.repository.count_bookings_by_status(start_utc, end_utc)
        total = sum(counts.values())
        cancelled = counts.get(BookingStatus.CANCELLED.value, 0)
        return {
            "total_bookings": total,
            "by_status": counts,
            "cancellation_rate": round(cancelled / total * 100, 2) if total else 0.0,
        }

    # Payment gateway callback

    @BaseService.measure_operation("update_payment_status")
    def update_payment_status(
        self,
        actor: ActorContext,
        booking_id: str,
        payment_status: Any,
        payment_id: Optional[str] = None,
        refund_amount: Optional[Any] = None,
    ) -> Booking:
        """
        Record a payment state reported by the gateway.

        Allowed: pending -> paid, pending -> refunded, paid -> refunded.
        Repeating the current status is a no-op so gateway retries are safe.
        """
        if not actor.is_admin:
            raise ForbiddenException("Only the payment integration can update payment status")
        try:
            requested = PaymentStatus(getattr(payment_status, "value", payment_status))
        except ValueError:
            raise ValidationException(
                f"Invalid payment status: {payment_status}",
                details={"allowed": [s.value for s in PaymentStatus]},
            )

        amount: Optional[Decimal] = None
        if refund_amount is not None:
            try:
                amount = Decimal(str(refund_amount))
            except (InvalidOperation, ValueError):
                raise ValidationException("refund_amount must be a number")
            if not amount.is_finite() or amount < 0:
                raise ValidationException("refund_amount must be zero or greater")
            if requested != PaymentStatus.REFUNDED:
                raise ValidationException("refund_amount is only accepted with 'refunded'")

        self.log_operation(
            "update_payment_status", booking_id=booking_id, payment_status=requested.value
        )
        with self.transaction():
            booking = self._load_booking(booking_id)
            current = PaymentStatus(booking.payment_status)
            if requested == current:
                return booking
            if requested not in PAYMENT_TRANSITIONS[current]:
                raise InvalidStateTransitionException(
                    "payment", current.value, requested.value
                )
            if amount is not None and amount > Decimal(str(booking.class_template.price)):
                raise ValidationException("refund_amount cannot exceed the class price")

            booking.payment_status = requested.value
            if payment_id:
                booking.payment_id = payment_id
            if amount is not None:
                booking.refund_amount = amount.quantize(Decimal("0.01"))
            self.repository.flush()

        return booking
