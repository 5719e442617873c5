# backend/app/models/booking.py
"""
Booking model for the GymApp platform.

A Booking is a member's reservation of one seat in a ClassInstance. Bookings
are never physically deleted; they are the durable log from which the
instance roster is derived and verified.

Uniqueness: at most one *confirmed* booking may exist per
(user_id, class_instance_id). This is enforced by a partial unique index so a
concurrent duplicate insert fails inside the same transaction as the roster
increment, which then rolls back together with it.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Any, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.timezone_utils import ensure_utc_optional
from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    CONFIRMED = "confirmed"  # Default - holds a seat
    CANCELLED = "cancelled"  # Frees the seat
    COMPLETED = "completed"  # Class finished, member attended
    NO_SHOW = "no_show"  # Class finished, member didn't attend


class PaymentStatus(str, Enum):
    """Payment state reported back by the payment gateway."""

    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.REFUNDED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


class Booking(Base):
    """
    A member's seat reservation in one class instance.

    Design: ``class_id`` is a lookup back-reference to the template; the
    booking does not own either the template or the instance.
    """

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)

    user_id = Column(String(26), nullable=False, index=True)
    class_id = Column(String(26), ForeignKey("class_templates.id"), nullable=False, index=True)
    class_instance_id = Column(
        String(26), ForeignKey("class_instances.id"), nullable=False, index=True
    )
    booking_date = Column(DateTime(timezone=True), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    payment_status = Column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True
    )
    payment_id = Column(String(255), nullable=True, comment="Gateway payment reference")

    check_in_time = Column(DateTime(timezone=True), nullable=True)
    check_out_time = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    class_template = relationship("ClassTemplate", lazy="joined")
    class_instance = relationship("ClassInstance", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed', 'no_show')",
            name="ck_bookings_status",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid', 'refunded')",
            name="ck_bookings_payment_status",
        ),
        CheckConstraint(
            "refund_amount IS NULL OR refund_amount >= 0", name="check_refund_non_negative"
        ),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize as confirmed/pending by default."""
        super().__init__(**kwargs)
        if not self.status:
            self.status = BookingStatus.CONFIRMED.value
        if not self.payment_status:
            self.payment_status = PaymentStatus.PENDING.value
        logger.info(
            f"Creating booking for user {self.user_id} on class instance {self.class_instance_id}"
        )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking {self.id}: user={self.user_id}, instance={self.class_instance_id}, "
            f"status={self.status}, payment={self.payment_status}>"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""

        def _iso(value: Optional[datetime]) -> Optional[str]:
            normalized = ensure_utc_optional(value)
            return normalized.isoformat() if normalized else None

        return {
            "id": self.id,
            "user_id": self.user_id,
            "class_id": self.class_id,
            "class_instance_id": self.class_instance_id,
            "booking_date": _iso(self.booking_date),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_id": self.payment_id,
            "check_in_time": _iso(self.check_in_time),
            "check_out_time": _iso(self.check_out_time),
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_at": _iso(self.cancelled_at),
            "cancelled_by_id": self.cancelled_by_id,
            "refund_amount": float(self.refund_amount) if self.refund_amount is not None else None,
            "completed_at": _iso(self.completed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


Index(
    "uq_bookings_confirmed_user_instance",
    Booking.user_id,
    Booking.class_instance_id,
    unique=True,
    postgresql_where=(Booking.status == BookingStatus.CONFIRMED.value),
    sqlite_where=(Booking.status == BookingStatus.CONFIRMED.value),
)


Index(
    "ix_bookings_instance_status",
    Booking.class_instance_id,
    Booking.status,
)
