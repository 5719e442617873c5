# backend/app/routes/v1/classes.py
"""
Class catalog routes - API v1

Versioned class endpoints under /api/v1/classes.
All business logic delegated to ClassCatalogService / ClassInstanceService.

Endpoints:
    GET / - List classes with filters and pagination
    POST / - Create a class (trainer/admin)
    GET /{class_id} - Class details
    PATCH /{class_id} - Update a class (trainer/admin)
    PUT /{class_id}/status - Change class status (trainer/admin)
    POST /{class_id}/instances/generate - Materialize the weekly schedule (trainer/admin)
    GET /{class_id}/instances - List instances of a class
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ...api.dependencies import (
    get_class_catalog_service,
    get_class_instance_service,
    get_current_actor,
    require_staff,
)
from ...core.constants import MAX_PAGE_SIZE, ULID_PATH_PATTERN
from ...core.exceptions import DomainException
from ...models.class_instance import ClassInstanceStatus
from ...models.class_template import ClassStatus, ClassType, Difficulty
from ...principal import ActorContext
from ...schemas.base_responses import PaginatedResponse
from ...schemas.class_instance import ClassInstanceResponse, GenerateInstancesRequest
from ...schemas.class_template import (
    ClassStatusUpdate,
    ClassTemplateCreate,
    ClassTemplateResponse,
    ClassTemplateUpdate,
)
from ...services.class_catalog_service import ClassCatalogService
from ...services.class_instance_service import ClassInstanceService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["classes-v1"])

CLASS_ID_PATH = Path(..., description="Class ULID", pattern=ULID_PATH_PATTERN)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=PaginatedResponse[ClassTemplateResponse])
async def list_classes(
    type: Optional[ClassType] = Query(default=None, description="Filter by class type"),
    status_filter: Optional[ClassStatus] = Query(default=None, alias="status"),
    trainer_id: Optional[str] = Query(default=None),
    difficulty: Optional[Difficulty] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
    include_hidden: bool = Query(default=False, description="Staff only: include cancelled"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    actor: ActorContext = Depends(get_current_actor),
    service: ClassCatalogService = Depends(get_class_catalog_service),
) -> PaginatedResponse[ClassTemplateResponse]:
    """List classes. Cancelled classes are hidden unless a trainer/admin asks for them."""
    try:
        items, total = await asyncio.to_thread(
            service.list,
            class_type=type,
            status=status_filter,
            trainer_id=trainer_id,
            difficulty=difficulty,
            search=search,
            include_hidden=include_hidden and actor.is_staff,
            page=page,
            per_page=per_page,
        )
        return PaginatedResponse[ClassTemplateResponse].build(
            [ClassTemplateResponse.model_validate(t.to_dict()) for t in items],
            total,
            page,
            per_page,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("", response_model=ClassTemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_class(
    payload: ClassTemplateCreate = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassCatalogService = Depends(get_class_catalog_service),
) -> ClassTemplateResponse:
    """Create a class template."""
    try:
        template = await asyncio.to_thread(
            service.create, actor, payload.model_dump(exclude_none=True)
        )
        return ClassTemplateResponse.model_validate(template.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{class_id}", response_model=ClassTemplateResponse)
async def get_class(
    class_id: str = CLASS_ID_PATH,
    actor: ActorContext = Depends(get_current_actor),
    service: ClassCatalogService = Depends(get_class_catalog_service),
) -> ClassTemplateResponse:
    try:
        template = await asyncio.to_thread(service.get, class_id)
        return ClassTemplateResponse.model_validate(template.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.patch("/{class_id}", response_model=ClassTemplateResponse)
async def update_class(
    class_id: str = CLASS_ID_PATH,
    payload: ClassTemplateUpdate = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassCatalogService = Depends(get_class_catalog_service),
) -> ClassTemplateResponse:
    """Partially update a class; only the supplied fields change."""
    try:
        template = await asyncio.to_thread(
            service.update, actor, class_id, payload.model_dump(exclude_unset=True)
        )
        return ClassTemplateResponse.model_validate(template.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.put("/{class_id}/status", response_model=ClassTemplateResponse)
async def set_class_status(
    class_id: str = CLASS_ID_PATH,
    payload: ClassStatusUpdate = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassCatalogService = Depends(get_class_catalog_service),
) -> ClassTemplateResponse:
    """Change class status; ``cancelled`` is the soft delete."""
    try:
        template = await asyncio.to_thread(service.set_status, actor, class_id, payload.status)
        return ClassTemplateResponse.model_validate(template.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{class_id}/instances/generate",
    response_model=List[ClassInstanceResponse],
    status_code=status.HTTP_201_CREATED,
)
async def generate_instances(
    class_id: str = CLASS_ID_PATH,
    payload: GenerateInstancesRequest = Body(...),
    actor: ActorContext = Depends(require_staff),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> List[ClassInstanceResponse]:
    """Materialize the weekly schedule for a date range (idempotent)."""
    try:
        created = await asyncio.to_thread(
            service.materialize_schedule, actor, class_id, payload.start_date, payload.end_date
        )
        return [ClassInstanceResponse.model_validate(i.snapshot()) for i in created]
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{class_id}/instances", response_model=PaginatedResponse[ClassInstanceResponse])
async def list_class_instances(
    class_id: str = CLASS_ID_PATH,
    from_date: Optional[date] = Query(default=None),
    to_date: Optional[date] = Query(default=None),
    status_filter: Optional[ClassInstanceStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    actor: ActorContext = Depends(get_current_actor),
    service: ClassInstanceService = Depends(get_class_instance_service),
) -> PaginatedResponse[ClassInstanceResponse]:
    try:
        items, total = await asyncio.to_thread(
            service.list_for_class,
            class_id,
            from_date=from_date,
            to_date=to_date,
            status=status_filter,
            page=page,
            per_page=per_page,
        )
        return PaginatedResponse[ClassInstanceResponse].build(
            [ClassInstanceResponse.model_validate(i.snapshot()) for i in items],
            total,
            page,
            per_page,
        )
    except DomainException as e:
        handle_domain_exception(e)
