"""
Prometheus metrics endpoint for monitoring infrastructure.

PUBLIC endpoint (no authentication) following standard Prometheus practice.
It exposes the service timings from @measure_operation plus the booking,
roster and notification counters.
"""

from fastapi import APIRouter, HTTPException, Response, status

from app.core.config import settings
from app.monitoring.prometheus_metrics import prometheus_metrics

router = APIRouter(tags=["monitoring"])


@router.get("/prometheus", include_in_schema=False, response_class=Response, response_model=None)
async def get_prometheus_metrics() -> Response:
    """Expose Prometheus metrics for scraping."""
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics disabled")

    return Response(
        content=prometheus_metrics.get_metrics(),
        media_type=prometheus_metrics.get_content_type(),
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
