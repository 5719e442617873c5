# backend/app/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    GET /stats/overview - Booking statistics (trainer/admin)
    GET / - List bookings with filters and pagination
    POST / - Book a seat in a class instance
    GET /{booking_id} - Full booking details
    POST /{booking_id}/cancel - Cancel a booking
    POST /{booking_id}/complete - Mark booking as completed (trainer/admin)
    POST /{booking_id}/no-show - Mark booking as no-show (trainer/admin)
    POST /{booking_id}/payment-status - Payment gateway callback (admin)
"""

import asyncio
from datetime import datetime
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.params import Path

from ...api.dependencies import get_booking_service, get_current_actor, require_admin, require_staff
from ...core.constants import MAX_PAGE_SIZE, ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...models.booking import BookingStatus
from ...principal import ActorContext
from ...schemas.base_responses import PaginatedResponse
from ...schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingResponse,
    BookingStatsResponse,
    PaymentStatusUpdate,
)
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# Static paths are declared before /{booking_id} so they are matched first.


@router.get("/stats/overview", response_model=BookingStatsResponse)
async def get_booking_stats(
    start: Optional[datetime] = Query(default=None, description="Count bookings made from"),
    end: Optional[datetime] = Query(default=None, description="Count bookings made until"),
    actor: ActorContext = Depends(require_staff),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingStatsResponse:
    """Totals per status and the cancellation rate."""
    try:
        stats = await asyncio.to_thread(booking_service.get_booking_stats, actor, start, end)
        return BookingStatsResponse(**stats)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=PaginatedResponse[BookingResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    user_id: Optional[str] = Query(default=None, description="Staff only"),
    class_id: Optional[str] = Query(default=None),
    class_instance_id: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    actor: ActorContext = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> PaginatedResponse[BookingResponse]:
    """
    List bookings newest first.

    Members always get their own bookings; trainers and admins may filter by user.
    """
    try:
        bookings, total = await asyncio.to_thread(
            booking_service.list_bookings,
            actor,
            status=status_filter,
            user_id=user_id,
            class_id=class_id,
            class_instance_id=class_instance_id,
            page=page,
            per_page=per_page,
        )
        return PaginatedResponse[BookingResponse].build(
            [BookingResponse.model_validate(b.to_dict()) for b in bookings],
            total,
            page,
            per_page,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    actor: ActorContext = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """
    Book a seat.

    Capacity is checked atomically; a full class returns 409 and a second
    confirmed booking for the same instance returns 409 as well.
    """
    try:
        booking = await asyncio.to_thread(
            booking_service.create_booking,
            actor,
            booking_data.class_instance_id,
            booking_date=booking_data.booking_date,
            class_id=booking_data.class_id,
            user_id=booking_data.user_id,
            notes=booking_data.notes,
        )
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: ActorContext = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, actor, booking_id)
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    cancel_data: BookingCancel = Body(default_factory=BookingCancel),
    actor: ActorContext = Depends(get_current_actor),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Cancel a booking; refund follows the class cancellation policy."""
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel_booking, actor, booking_id, cancel_data.reason
        )
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: ActorContext = Depends(require_staff),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.mark_completed, actor, booking_id)
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/no-show", response_model=BookingResponse)
async def mark_booking_no_show(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    actor: ActorContext = Depends(require_staff),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.mark_no_show, actor, booking_id)
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/payment-status", response_model=BookingResponse)
async def update_payment_status(
    booking_id: str = Path(..., description="Booking ULID", pattern=ULID_PATH_PATTERN),
    payload: PaymentStatusUpdate = Body(...),
    actor: ActorContext = Depends(require_admin),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Apply a payment gateway status update."""
    try:
        booking = await asyncio.to_thread(
            booking_service.update_payment_status,
            actor,
            booking_id,
            payload.payment_status,
            payment_id=payload.payment_id,
            refund_amount=payload.refund_amount,
        )
        return BookingResponse.model_validate(booking.to_dict())
    except DomainException as e:
        handle_domain_exception(e)
