from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from config import get_settings
from lms_core.core.exceptions import ConcurrentModificationError
from lms_core.db.models.base import Base

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None

# Session.info key marking an open unit of work
_UNIT_KEY = "lms_core.unit_of_work"


def get_engine() -> Engine:
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(settings.database_url, echo=settings.log_level == "DEBUG", pool_pre_ping=True)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _SessionLocal


def init_db(engine: Engine | None = None) -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine or get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def transaction(session: Session) -> Generator[Session, None, None]:
    """
    Run a block as one atomic unit on an existing session.

    The outermost ``transaction()`` commits on success and rolls back
    everything on any exception. Nested calls (a service invoked from inside
    another service's unit) join the outer unit instead of committing early,
    so cascades succeed or fail together with the operation that triggered
    them.
    """
    if session.info.get(_UNIT_KEY):
        yield session
        return

    session.info[_UNIT_KEY] = True
    try:
        yield session
        session.commit()
    except StaleDataError as e:
        session.rollback()
        raise ConcurrentModificationError(f"Concurrent update detected: {e}") from e
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.info.pop(_UNIT_KEY, None)
