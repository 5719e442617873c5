# backend/tests/conftest.py
"""
Pytest configuration for the GymApp backend.

Every test gets its own file-backed SQLite database under ``tmp_path`` so
threaded race tests see real locking behaviour and nothing leaks between
tests. Actors are plain ActorContext values; there is no user table.
"""

import os
import sys

# Set test environment BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "test")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.api.dependencies import get_db, get_event_publisher
from app.core.enums import RoleName
from app.core.ulid_helper import generate_ulid
from app.database import create_db_engine, create_session_factory, init_db
from app.events import EventPublisher
from app.main import app
from app.models.class_instance import ClassInstance
from app.models.class_template import ClassTemplate
from app.principal import ActorContext
from app.services.booking_service import BookingService
from app.services.class_catalog_service import ClassCatalogService
from app.services.class_instance_service import ClassInstanceService
from tests.utils.class_builders import RecordingDispatch, template_payload


# ============================================================================
# DATABASE
# ============================================================================


@pytest.fixture
def engine(tmp_path):
    test_engine = create_db_engine(f"sqlite:///{tmp_path / 'gymapp_test.db'}")
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Session:
    """A fresh session per test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# ACTORS
# ============================================================================


@pytest.fixture
def admin() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.ADMIN)


@pytest.fixture
def trainer() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.TRAINER)


@pytest.fixture
def other_trainer() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.TRAINER)


@pytest.fixture
def member() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.MEMBER)


@pytest.fixture
def other_member() -> ActorContext:
    return ActorContext(user_id=generate_ulid(), role=RoleName.MEMBER)


# ============================================================================
# SERVICES
# ============================================================================


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def publisher(dispatch: RecordingDispatch) -> EventPublisher:
    return EventPublisher(dispatch)


@pytest.fixture
def catalog_service(db: Session) -> ClassCatalogService:
    return ClassCatalogService(db)


@pytest.fixture
def instance_service(db: Session) -> ClassInstanceService:
    return ClassInstanceService(db)


@pytest.fixture
def booking_service(db: Session, publisher: EventPublisher) -> BookingService:
    return BookingService(db, event_publisher=publisher)


# ============================================================================
# DATA FACTORIES
# ============================================================================


@pytest.fixture
def make_template(catalog_service: ClassCatalogService, trainer: ActorContext):
    def _make(actor: ActorContext = None, **overrides: Any) -> ClassTemplate:
        return catalog_service.create(actor or trainer, template_payload(**overrides))

    return _make


@pytest.fixture
def make_instance(instance_service: ClassInstanceService, trainer: ActorContext, make_template):
    def _make(
        template: ClassTemplate = None,
        hours_from_now: float = 48,
        duration_minutes: int = 60,
        **template_overrides: Any,
    ) -> ClassInstance:
        template = template or make_template(**template_overrides)
        start = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=hours_from_now)
        return instance_service.create(
            trainer, template.id, start, start + timedelta(minutes=duration_minutes)
        )

    return _make


@pytest.fixture
def template(make_template) -> ClassTemplate:
    return make_template()


@pytest.fixture
def instance(make_instance, template: ClassTemplate) -> ClassInstance:
    return make_instance(template)


# ============================================================================
# API CLIENT
# ============================================================================


@pytest.fixture
def client(session_factory, publisher: EventPublisher):
    """Test client backed by the per-test database; one session per request."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_publisher] = lambda: publisher

    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
    test_client.close()
