# backend/app/services/class_catalog_service.py
"""
Class Catalog Service for the GymApp platform.

Stores class templates: name, type, price, capacity, weekly schedule and
cancellation policy. The catalog is read-mostly and is the source of truth
for instance materialization.

Templates are never hard-deleted. Setting a template to ``cancelled`` hides
it from public listings and stops new instances from being materialized;
existing instances are left untouched.
"""

from decimal import Decimal, InvalidOperation
import logging
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import (
    HHMM_PATTERN,
    MAX_CANCELLATION_HOURS,
    MAX_CLASS_CAPACITY,
    MAX_CLASS_DESCRIPTION_LENGTH,
    MAX_CLASS_DURATION,
    MAX_CLASS_NAME_LENGTH,
    MAX_DAY_OF_WEEK,
    MIN_CLASS_CAPACITY,
    MIN_CLASS_DURATION,
    MIN_DAY_OF_WEEK,
)
from ..core.enums import RoleName
from ..core.exceptions import ForbiddenException, NotFoundException, ValidationException
from ..models.class_template import ClassStatus, ClassTemplate, ClassType, Difficulty
from ..principal import ActorContext
from ..repositories.class_template_repository import ClassTemplateRepository
from .base import BaseService

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(HHMM_PATTERN)

# Fields a caller may set on a template
TEMPLATE_FIELDS = frozenset(
    {
        "name",
        "description",
        "type",
        "trainer_id",
        "max_capacity",
        "duration_minutes",
        "price",
        "difficulty",
        "status",
        "cancellation_hours_before_class",
        "cancellation_refund_percentage",
        "location_room",
        "location_floor",
        "location_building",
        "requirements",
        "equipment",
        "tags",
        "image_url",
        "is_bookable",
    }
)
REQUIRED_FIELDS = ("name", "type", "max_capacity", "duration_minutes", "price", "difficulty")


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def validate_schedule(entries: List[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate weekly schedule entries.

    Times are zero-padded 24h ``HH:MM`` strings, so ``start < end`` is a plain
    string comparison.
    """
    normalized: List[Dict[str, Any]] = []
    for index, entry in enumerate(entries):
        day = entry.get("day_of_week")
        start = entry.get("start_time")
        end = entry.get("end_time")

        if not isinstance(day, int) or isinstance(day, bool) or not (
            MIN_DAY_OF_WEEK <= day <= MAX_DAY_OF_WEEK
        ):
            raise ValidationException(
                f"Schedule entry {index}: day_of_week must be between 0 and 6",
                code="INVALID_SCHEDULE",
                details={"index": index, "field": "day_of_week"},
            )
        for field, value in (("start_time", start), ("end_time", end)):
            if not isinstance(value, str) or not _HHMM_RE.match(value):
                raise ValidationException(
                    f"Schedule entry {index}: {field} must be HH:MM",
                    code="INVALID_SCHEDULE",
                    details={"index": index, "field": field},
                )
        if not start < end:
            raise ValidationException(
                f"Schedule entry {index}: start_time must be before end_time",
                code="INVALID_SCHEDULE",
                details={"index": index, "start_time": start, "end_time": end},
            )

        normalized.append(
            {
                "day_of_week": day,
                "start_time": start,
                "end_time": end,
                "is_recurring": bool(entry.get("is_recurring", True)),
            }
        )
    return normalized


class ClassCatalogService(BaseService):
    """Service layer for class template management."""

    def __init__(self, db: Session, repository: Optional[ClassTemplateRepository] = None):
        super().__init__(db)
        self.repository = repository or ClassTemplateRepository(db)

    # Validation helpers

    def _validate_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Check a complete set of template fields; returns normalized values."""
        name = (fields.get("name") or "").strip()
        if not name:
            raise ValidationException("Class name is required", code="INVALID_CLASS")
        if len(name) > MAX_CLASS_NAME_LENGTH:
            raise ValidationException(
                f"Class name cannot exceed {MAX_CLASS_NAME_LENGTH} characters",
                code="INVALID_CLASS",
            )
        fields["name"] = name

        description = fields.get("description") or ""
        if len(description) > MAX_CLASS_DESCRIPTION_LENGTH:
            raise ValidationException(
                f"Description cannot exceed {MAX_CLASS_DESCRIPTION_LENGTH} characters",
                code="INVALID_CLASS",
            )
        fields["description"] = description

        for field, enum_cls in (("type", ClassType), ("difficulty", Difficulty), ("status", ClassStatus)):
            value = _enum_value(fields.get(field))
            if value is None and field == "status":
                continue
            try:
                fields[field] = enum_cls(value).value
            except ValueError:
                raise ValidationException(
                    f"Invalid {field}: {value}",
                    code="INVALID_CLASS",
                    details={"field": field, "allowed": [m.value for m in enum_cls]},
                )

        capacity = fields.get("max_capacity")
        if not isinstance(capacity, int) or isinstance(capacity, bool) or not (
            MIN_CLASS_CAPACITY <= capacity <= MAX_CLASS_CAPACITY
        ):
            raise ValidationException(
                f"max_capacity must be between {MIN_CLASS_CAPACITY} and {MAX_CLASS_CAPACITY}",
                code="INVALID_CLASS",
                details={"field": "max_capacity", "value": capacity},
            )

        duration = fields.get("duration_minutes")
        if not isinstance(duration, int) or isinstance(duration, bool) or not (
            MIN_CLASS_DURATION <= duration <= MAX_CLASS_DURATION
        ):
            raise ValidationException(
                f"duration_minutes must be between {MIN_CLASS_DURATION} and {MAX_CLASS_DURATION}",
                code="INVALID_CLASS",
                details={"field": "duration_minutes", "value": duration},
            )

        try:
            price = Decimal(str(fields.get("price")))
        except (InvalidOperation, ValueError):
            raise ValidationException("price must be a number", code="INVALID_CLASS")
        if not price.is_finite() or price < 0:
            raise ValidationException(
                "price must be zero or greater",
                code="INVALID_CLASS",
                details={"field": "price"},
            )
        fields["price"] = price

        hours = fields.get("cancellation_hours_before_class")
        if hours is not None and (
            not isinstance(hours, (int, float))
            or isinstance(hours, bool)
            or not math.isfinite(hours)
            or not 0 <= hours <= MAX_CANCELLATION_HOURS
        ):
            raise ValidationException(
                f"cancellation_hours_before_class must be between 0 and {MAX_CANCELLATION_HOURS}",
                code="INVALID_CANCELLATION_POLICY",
                details={"field": "cancellation_hours_before_class", "value": str(hours)},
            )
        percentage = fields.get("cancellation_refund_percentage")
        if percentage is not None and (
            not isinstance(percentage, int) or isinstance(percentage, bool) or not 0 <= percentage <= 100
        ):
            raise ValidationException(
                "cancellation_refund_percentage must be between 0 and 100",
                code="INVALID_CANCELLATION_POLICY",
            )

        if not fields.get("trainer_id"):
            raise ValidationException("trainer_id is required", code="INVALID_CLASS")

        return fields

    @staticmethod
    def _split_policy(data: Dict[str, Any]) -> Dict[str, Any]:
        """Flatten a nested ``cancellation_policy`` / ``location`` payload into columns."""
        policy = data.pop("cancellation_policy", None)
        if policy:
            if "hours_before_class" in policy:
                data["cancellation_hours_before_class"] = policy["hours_before_class"]
            if "refund_percentage" in policy:
                data["cancellation_refund_percentage"] = policy["refund_percentage"]
        location = data.pop("location", None)
        if location:
            for key in ("room", "floor", "building"):
                if key in location:
                    data[f"location_{key}"] = location[key]
        return data

    @staticmethod
    def _require_staff(actor: ActorContext, action: str) -> None:
        if not actor.is_staff:
            raise ForbiddenException(
                f"Only trainers and admins can {action}",
                details={"role": _enum_value(actor.role)},
            )

    @staticmethod
    def _require_ownership(actor: ActorContext, template: ClassTemplate) -> None:
        if actor.role == RoleName.TRAINER and template.trainer_id != actor.user_id:
            raise ForbiddenException(
                "Trainers can only manage their own classes",
                details={"class_id": template.id},
            )

    # Operations

    @BaseService.measure_operation("create_class")
    def create(self, actor: ActorContext, data: Mapping[str, Any]) -> ClassTemplate:
        """
        Create a class template.

        Raises:
            ForbiddenException: Caller is not a trainer/admin
            ValidationException: Any field or schedule entry is out of range
        """
        self._require_staff(actor, "create classes")

        payload = self._split_policy(dict(data))
        schedule = validate_schedule(payload.pop("schedule", None) or [])

        missing = [field for field in REQUIRED_FIELDS if payload.get(field) is None]
        if missing:
            raise ValidationException(
                f"Missing required fields: {', '.join(missing)}",
                code="INVALID_CLASS",
                details={"missing": missing},
            )

        unknown = set(payload) - TEMPLATE_FIELDS
        if unknown:
            raise ValidationException(
                f"Unknown fields: {', '.join(sorted(unknown))}",
                code="INVALID_CLASS",
            )

        if actor.role == RoleName.TRAINER:
            # Trainers always own what they create
            payload["trainer_id"] = actor.user_id
        else:
            payload.setdefault("trainer_id", actor.user_id)

        payload.setdefault(
            "cancellation_hours_before_class", settings.default_cancellation_hours_before_class
        )
        payload.setdefault("cancellation_refund_percentage", settings.default_refund_percentage)
        payload.setdefault("status", ClassStatus.ACTIVE.value)

        fields = self._validate_fields(payload)

        self.log_operation("create_class", class_name=fields["name"], trainer_id=fields["trainer_id"])
        with self.transaction():
            template = self.repository.create(**fields)
            if schedule:
                self.repository.replace_schedule(template, schedule)

        logger.info(f"Created class template {template.id} ({template.name})")
        return template

    @BaseService.measure_operation("update_class")
    def update(self, actor: ActorContext, class_id: str, patch: Mapping[str, Any]) -> ClassTemplate:
        """
        Apply a partial update.

        The merged result is validated with the same rules as ``create``; a
        supplied ``schedule`` replaces the existing one.
        """
        self._require_staff(actor, "update classes")
        template = self.get(class_id)
        self._require_ownership(actor, template)

        changes = self._split_policy(dict(patch))
        schedule = changes.pop("schedule", None)
        normalized_schedule = validate_schedule(schedule) if schedule is not None else None

        unknown = set(changes) - TEMPLATE_FIELDS
        if unknown:
            raise ValidationException(
                f"Unknown fields: {', '.join(sorted(unknown))}",
                code="INVALID_CLASS",
            )
        if actor.role == RoleName.TRAINER and changes.get("trainer_id") not in (
            None,
            actor.user_id,
        ):
            raise ForbiddenException("Trainers cannot reassign classes to another trainer")

        merged = {field: getattr(template, field) for field in TEMPLATE_FIELDS}
        merged.update({key: value for key, value in changes.items()})
        fields = self._validate_fields(merged)

        self.log_operation("update_class", class_id=class_id, fields=sorted(changes))
        with self.transaction():
            for key in changes:
                setattr(template, key, fields[key])
            if normalized_schedule is not None:
                self.repository.replace_schedule(template, normalized_schedule)
            self.repository.flush()

        return template

    @BaseService.measure_operation("get_class")
    def get(self, class_id: str) -> ClassTemplate:
        template = self.repository.get_by_id(class_id)
        if not template:
            raise NotFoundException(f"Class {class_id} not found", code="CLASS_NOT_FOUND")
        return template

    @BaseService.measure_operation("list_classes")
    def list(
        self,
        *,
        class_type: Optional[str] = None,
        status: Optional[str] = None,
        trainer_id: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
        include_hidden: bool = False,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Tuple[List[ClassTemplate], int]:
        """
        List templates with filters and pagination.

        Public listings (``include_hidden=False``) never show cancelled
        templates, even when ``status=cancelled`` is requested.
        """
        per_page = min(per_page or settings.default_page_size, settings.max_page_size)
        if page < 1:
            raise ValidationException("page must be 1 or greater")

        return self.repository.list_templates(
            class_type=_enum_value(class_type),
            status=_enum_value(status),
            trainer_id=trainer_id,
            difficulty=_enum_value(difficulty),
            search=search,
            include_hidden=include_hidden,
            offset=(page - 1) * per_page,
            limit=per_page,
        )

    @BaseService.measure_operation("set_class_status")
    def set_status(self, actor: ActorContext, class_id: str, status: Any) -> ClassTemplate:
        """
        Change template status.

        Does not touch instances that already exist.
        """
        self._require_staff(actor, "change class status")
        try:
            new_status = ClassStatus(_enum_value(status))
        except ValueError:
            raise ValidationException(
                f"Invalid class status: {status}",
                details={"allowed": [s.value for s in ClassStatus]},
            )

        template = self.get(class_id)
        self._require_ownership(actor, template)

        self.log_operation(
            "set_class_status", class_id=class_id, old=template.status, new=new_status.value
        )
        with self.transaction():
            template.status = new_status.value
            self.repository.flush()
        return template
