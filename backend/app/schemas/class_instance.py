# backend/app/schemas/class_instance.py
"""Class instance, roster and attendance schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import Field, model_validator

from ..core.constants import MAX_INSTANCE_NOTES_LENGTH
from ..models.class_instance import ClassInstanceStatus
from .base import StandardizedModel, StrictRequestModel


class ClassInstanceCreate(StrictRequestModel):
    class_id: str
    start_time: datetime
    end_time: datetime
    scheduled_date: Optional[date] = Field(
        default=None, description="Defaults to the UTC date of start_time"
    )
    notes: Optional[str] = Field(default=None, max_length=MAX_INSTANCE_NOTES_LENGTH)


class ClassInstanceStatusUpdate(StrictRequestModel):
    status: ClassInstanceStatus


class GenerateInstancesRequest(StrictRequestModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_range(self) -> "GenerateInstancesRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class AttendanceRequest(StrictRequestModel):
    user_id: Optional[str] = Field(
        default=None, description="Member to check in; defaults to the caller"
    )


class ClassInstanceResponse(StandardizedModel):
    """Roster/capacity/status snapshot."""

    id: str
    class_id: str
    trainer_id: str
    scheduled_date: date
    start_time: datetime
    end_time: datetime
    max_capacity: int
    current_bookings: int
    available_spots: int
    status: ClassInstanceStatus


class AttendanceResponse(StandardizedModel):
    class_instance_id: str
    user_id: str
    check_in_time: datetime
    check_out_time: Optional[datetime] = None


class RosterReconciliationResponse(StandardizedModel):
    class_instance_id: str
    current_bookings: int
    seat_holding_bookings: int
    drift: int
    repaired: bool
