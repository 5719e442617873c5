# backend/app/database.py
from datetime import datetime
import logging
from typing import Any, Generator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from .core.config import settings

logger = logging.getLogger(__name__)


Base: DeclarativeMeta = declarative_base()


def _configure_sqlite(engine: Engine) -> None:
    """
    Open every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite's deferred BEGIN lets two connections read the same roster and
    then fight over the write lock; IMMEDIATE takes the reserved lock up
    front so writers queue on the busy timeout instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        connection_record.info["connect_time"] = datetime.now()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Build an engine for ``database_url`` (defaults to the configured URL)."""
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.sqlite_busy_timeout_seconds,
            },
        )
        _configure_sqlite(engine)
        return engine

    engine = create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
    )

    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    return engine


def create_session_factory(bind: Engine) -> sessionmaker[Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind, expire_on_commit=False)


engine: Engine = create_db_engine()
SessionLocal = create_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
