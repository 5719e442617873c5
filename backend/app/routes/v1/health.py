# backend/app/routes/v1/health.py
"""
Health check endpoint for monitoring and load balancer probes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api.dependencies import get_db
from app.core.constants import API_VERSION, BRAND_NAME
from app.schemas.base_responses import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("", response_model=HealthResponse)
def health_check(response: Response, db: Session = Depends(get_db)) -> HealthResponse:
    """
    Health check endpoint.

    Pings the database; an unreachable database turns the probe into a 503.
    """
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check database ping failed")
        database = "unavailable"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        service=f"{BRAND_NAME.lower()}-api",
        version=API_VERSION,
        database=database,
    )
