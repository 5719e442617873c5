# backend/app/routes/v1/class_instances.py
"""
Class instance routes - API v1

Endpoints:
    POST / - Create a single instance (trainer/admin)
    GET /{instance_id} - Roster/capacity/status snapshot
    PUT /{instance_id}/status - Change instance status (trainer/admin)
    POST /{instance_id}/check-in - Record arrival
    POST /{instance_id}/check-out - Record departure
    GET /{instance_id}/reconcile - Compare roster counter with bookings (admin)
"""

import asyncio
import logging
from typing import NoReturn

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ...api.dependencies import (
    get_class_instance_service,
    get_current_actor,
    require_admin,
    require_staff,
)
from ...core.constants import ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...principal import ActorContext
from ...schemas.class_instance import (
    AttendanceRequest,
    AttendanceResponse,
    ClassInstanceCreate,
    ClassInstanceResponse,
    ClassInstanceStatusUpdate,
    RosterReconciliationResponse,
)
from ...services.class_instance_service import ClassInstanceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["class-instances-v1"])

INSTANCE_ID_PATH = Path(..., description="Class instance ULID", pattern=ULID_PATH_PATTERN)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.post("", response_model=ClassInstanceResponse, status_code=status.HTTP_201_CREATED)
async def create_instance(
    payload: ClassInstanceCreate = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> ClassInstanceResponse:
    try:
        instance = await asyncio.to_thread(
            service.create,
            actor,
            payload.class_id,
            payload.start_time,
            payload.end_time,
            scheduled_date=payload.scheduled_date,
            notes=payload.notes,
        )
        return ClassInstanceResponse.model_validate(instance.snapshot())
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{instance_id}", response_model=ClassInstanceResponse)
async def get_instance(
    instance_id: str = INSTANCE_ID_PATH,
    actor: ActorContext = Depends(get_current_actor),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> ClassInstanceResponse:
    """Current roster, capacity and status of one instance."""
    try:
        snapshot = await asyncio.to_thread(service.snapshot, instance_id)
        return ClassInstanceResponse.model_validate(snapshot)
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{instance_id}/status", response_model=ClassInstanceResponse)
async def set_instance_status(
    instance_id: str = INSTANCE_ID_PATH,
    payload: ClassInstanceStatusUpdate = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> ClassInstanceResponse:
    try:
        instance = await asyncio.to_thread(service.set_status, actor, instance_id, payload.status)
        return ClassInstanceResponse.model_validate(instance.snapshot())
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{instance_id}/check-in", response_model=AttendanceResponse)
async def check_in(
    instance_id: str = INSTANCE_ID_PATH,
    payload: AttendanceRequest = Body(default_factory=AttendanceRequest),
    actor: ActorContext = Depends(get_current_actor),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> AttendanceResponse:
    try:
        record = await asyncio.to_thread(
            service.check_in, actor, instance_id, payload.user_id or actor.user_id
        )
        return AttendanceResponse.model_validate(record)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{instance_id}/check-out", response_model=AttendanceResponse)
async def check_out(
    instance_id: str = INSTANCE_ID_PATH,
    payload: AttendanceRequest = Body(default_factory=AttendanceRequest),
    actor: ActorContext = Depends(get_current_actor),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> AttendanceResponse:
    try:
        record = await asyncio.to_thread(
            service.check_out, actor, instance_id, payload.user_id or actor.user_id
        )
        return AttendanceResponse.model_validate(record)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{instance_id}/reconcile", response_model=RosterReconciliationResponse)
async def reconcile_roster(
    instance_id: str = INSTANCE_ID_PATH,
    repair: bool = Query(default=False, description="Overwrite the counter with the recount"),
    actor: ActorContext = Depends(require_admin),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> RosterReconciliationResponse:
    try:
        result = await asyncio.to_thread(service.reconcile_roster, actor, instance_id, repair)
        return RosterReconciliationResponse.model_validate(result)
    except DomainException as e:
        handle_domain_exception(e)
