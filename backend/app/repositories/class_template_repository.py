# backend/app/repositories/class_template_repository.py
"""
Class Template Repository for the GymApp platform.

Data access for the class catalog: filtered, paginated listings and
schedule replacement. Templates are read-mostly.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.class_template import ClassScheduleEntry, ClassStatus, ClassTemplate
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassTemplateRepository(BaseRepository[ClassTemplate]):
    """Repository for class template data access."""

    def __init__(self, db: Session):
        super().__init__(db, ClassTemplate)

    def list_templates(
        self,
        *,
        class_type: Optional[str] = None,
        status: Optional[str] = None,
        trainer_id: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
        include_hidden: bool = False,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[ClassTemplate], int]:
        """
        List templates matching the given filters.

        Returns:
            (page of templates ordered by name, total matching count)
        """
        try:
            query = self._build_query()

            if not include_hidden:
                query = query.filter(ClassTemplate.status != ClassStatus.CANCELLED.value)
            if class_type:
                query = query.filter(ClassTemplate.type == class_type)
            if status:
                query = query.filter(ClassTemplate.status == status)
            if trainer_id:
                query = query.filter(ClassTemplate.trainer_id == trainer_id)
            if difficulty:
                query = query.filter(ClassTemplate.difficulty == difficulty)
            if search:
                pattern = f"%{search.strip()}%"
                query = query.filter(
                    or_(
                        ClassTemplate.name.ilike(pattern),
                        ClassTemplate.description.ilike(pattern),
                    )
                )

            total = query.count()
            items = (
                query.order_by(ClassTemplate.name.asc(), ClassTemplate.id.asc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return items, total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing class templates: {str(e)}")
            raise RepositoryException(f"Failed to list class templates: {str(e)}")

    def replace_schedule(
        self, template: ClassTemplate, entries: List[dict]
    ) -> List[ClassScheduleEntry]:
        """Swap the template's weekly schedule for ``entries``."""
        try:
            template.schedule = [ClassScheduleEntry(**entry) for entry in entries]
            self.db.flush()
            return list(template.schedule)
        except SQLAlchemyError as e:
            self.logger.error(f"Error replacing schedule for template {template.id}: {str(e)}")
            raise RepositoryException(f"Failed to replace schedule: {str(e)}")
