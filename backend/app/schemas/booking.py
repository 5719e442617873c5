# backend/app/schemas/booking.py
"""
Booking schemas for the GymApp platform.

Requests are strict (unknown fields rejected). Business rules such as
capacity and duplicate checks live in BookingService, not here.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, field_validator

from ..core.constants import MAX_NOTES_LENGTH, MAX_REASON_LENGTH
from ..models.booking import BookingStatus, PaymentStatus
from .base import Money, StandardizedModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    """Reserve a seat in a class instance."""

    class_instance_id: str = Field(..., description="Class instance to book")
    class_id: Optional[str] = Field(
        default=None, description="Class template; must match the instance when given"
    )
    booking_date: Optional[datetime] = Field(
        default=None, description="When the booking was made (defaults to now)"
    )
    user_id: Optional[str] = Field(
        default=None, description="Book on behalf of a member (trainers/admins only)"
    )
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)


class BookingCancel(StrictRequestModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(
        default=None, max_length=MAX_REASON_LENGTH, description="Cancellation reason"
    )

    @field_validator("reason")
    @classmethod
    def clean_reason(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class PaymentStatusUpdate(StrictRequestModel):
    """Payment gateway callback payload."""

    payment_status: PaymentStatus
    payment_id: Optional[str] = Field(default=None, max_length=255)
    refund_amount: Optional[Money] = Field(default=None, description="Amount refunded")


class BookingResponse(StandardizedModel):
    id: str
    user_id: str
    class_id: str
    class_instance_id: str
    booking_date: datetime
    status: BookingStatus
    payment_status: PaymentStatus
    payment_id: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by_id: Optional[str] = None
    refund_amount: Optional[Money] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingStatsResponse(StandardizedModel):
    """Booking totals for the stats overview."""

    total_bookings: int
    by_status: Dict[str, int]
    cancellation_rate: float = Field(description="Cancelled bookings as a percentage of all")


class BookingListResponse(StandardizedModel):
    items: List[BookingResponse]
    total: int
