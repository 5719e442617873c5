"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is successfully created."""

    kind: ClassVar[str] = "booking_created"

    booking_id: str
    user_id: str
    class_id: str
    class_instance_id: str
    class_start_time: datetime
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    kind: ClassVar[str] = "booking_cancelled"

    booking_id: str
    user_id: str
    class_instance_id: str
    cancelled_by: str  # actor user id
    cancelled_by_role: str
    cancelled_at: datetime
    refund_percentage: int = 0
    refund_amount: Optional[float] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a booking is marked complete."""

    kind: ClassVar[str] = "booking_completed"

    booking_id: str
    user_id: str
    class_instance_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingNoShow:
    """Fired after a booking is marked as a no-show."""

    kind: ClassVar[str] = "booking_no_show"

    booking_id: str
    user_id: str
    class_instance_id: str
    marked_by: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
