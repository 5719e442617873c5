# backend/app/schemas/class_template.py
"""
Class catalog schemas.

Range rules (capacity, duration, price, schedule times) are enforced by
ClassCatalogService so the same checks apply to every caller; these models
only fix the shape. The cancellation window is also bounded here since it
feeds a timedelta.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from ..core.constants import MAX_CANCELLATION_HOURS
from ..models.class_template import ClassStatus, ClassType, Difficulty
from .base import Money, StandardizedModel, StrictRequestModel


class ScheduleEntryIn(StrictRequestModel):
    day_of_week: int = Field(..., description="0 = Sunday ... 6 = Saturday")
    start_time: str = Field(..., description="HH:MM, 24h")
    end_time: str = Field(..., description="HH:MM, 24h")
    is_recurring: bool = True


class CancellationPolicyIn(StrictRequestModel):
    hours_before_class: float = Field(
        ..., ge=0, le=MAX_CANCELLATION_HOURS, allow_inf_nan=False,
        description="Refund window in hours before start",
    )
    refund_percentage: int = Field(..., description="Refund inside the window, 0-100")


class LocationIn(StrictRequestModel):
    room: Optional[str] = Field(default=None, max_length=100)
    floor: Optional[int] = None
    building: Optional[str] = Field(default=None, max_length=100)


class ClassTemplateCreate(StrictRequestModel):
    name: str
    description: str = ""
    type: ClassType
    trainer_id: Optional[str] = Field(
        default=None, description="Defaults to the caller; admins may assign another trainer"
    )
    max_capacity: int
    duration_minutes: int
    price: Money
    difficulty: Difficulty
    schedule: List[ScheduleEntryIn] = Field(default_factory=list)
    cancellation_policy: Optional[CancellationPolicyIn] = None
    location: Optional[LocationIn] = None
    requirements: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    image_url: Optional[str] = Field(default=None, max_length=500)
    is_bookable: bool = True


class ClassTemplateUpdate(StrictRequestModel):
    """Partial update; only supplied fields change. A schedule replaces the old one."""

    name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[ClassType] = None
    trainer_id: Optional[str] = None
    max_capacity: Optional[int] = None
    duration_minutes: Optional[int] = None
    price: Optional[Money] = None
    difficulty: Optional[Difficulty] = None
    schedule: Optional[List[ScheduleEntryIn]] = None
    cancellation_policy: Optional[CancellationPolicyIn] = None
    location: Optional[LocationIn] = None
    requirements: Optional[List[str]] = None
    equipment: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    is_bookable: Optional[bool] = None


class ClassStatusUpdate(StrictRequestModel):
    status: ClassStatus


class ScheduleEntryOut(StandardizedModel):
    day_of_week: int
    start_time: str
    end_time: str
    is_recurring: bool


class CancellationPolicyOut(StandardizedModel):
    hours_before_class: float
    refund_percentage: int


class LocationOut(StandardizedModel):
    room: Optional[str] = None
    floor: Optional[int] = None
    building: Optional[str] = None


class ClassTemplateResponse(StandardizedModel):
    id: str
    name: str
    description: str
    type: ClassType
    trainer_id: str
    max_capacity: int
    duration_minutes: int
    price: Money
    status: ClassStatus
    difficulty: Difficulty
    schedule: List[ScheduleEntryOut]
    cancellation_policy: CancellationPolicyOut
    location: LocationOut
    requirements: List[str]
    equipment: List[str]
    tags: List[str]
    image_url: Optional[str] = None
    is_bookable: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
