# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from starlette.middleware.gzip import GZipMiddleware

from .core.config import is_running_tests, settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .database import init_db
from .errors import register_error_handlers
from .routes.v1 import (
    bookings as bookings_v1,
    class_instances as class_instances_v1,
    classes as classes_v1,
    health as health_v1,
    prometheus as prometheus_v1,
)

# Configure logging
logging.basicConfig(
    level=settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment}")

    if is_running_tests():
        logger.info("Running under pytest (test mode active)")
    else:
        init_db()
        logger.info("Database schema ensured")

    logger.info(f"Allowed origins: {settings.allowed_origins}")
    logger.info(f"Schedule timezone: {settings.schedule_timezone}")

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in (route.methods or [])))
    path = route.path_format.strip("/").replace("/", "_").replace("{", "").replace("}", "")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)
# Register unified error envelope handlers
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=500)

# API v1 routes
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(classes_v1.router, prefix="/classes")
api_v1.include_router(class_instances_v1.router, prefix="/class-instances")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(health_v1.router, prefix="/health")
api_v1.include_router(prometheus_v1.router, prefix="/metrics")

app.include_router(api_v1)


@app.get("/")
def read_root() -> dict[str, str]:
    """Root endpoint - API information."""
    return {
        "message": f"Welcome to the {BRAND_NAME} API",
        "version": API_VERSION,
        "docs": "/docs",
    }
