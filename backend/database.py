"""Engine, session factory and request-scoped sessions."""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every model in ``models/``."""

    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # SQLite ignores FOREIGN KEY clauses unless asked per connection
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@lru_cache
def get_engine() -> Engine:
    """Build the engine for ``settings.DATABASE_URL`` once per process."""
    url = settings.DATABASE_URL
    is_sqlite = url.startswith("sqlite")

    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=False,
    )
    if is_sqlite:
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug("Database engine ready: %s", engine.url.render_as_string(hide_password=True))
    return engine


def get_session_local() -> sessionmaker:
    """Session factory bound to the cached engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def create_tables() -> None:
    """Create the dashboard tables if they do not exist yet."""
    import models  # noqa: F401  (registers mappers on Base.metadata)

    Base.metadata.create_all(bind=get_engine())


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work outside a request (startup, scripts).

    Rolls back on error and always closes; committing is left to the caller.
    """
    db = get_session_local()()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request.

    Commit conventions:
    - ``BrokerConnectionStore`` commits every connection write immediately,
      so registration failure markers survive a request that later fails.
    - ``ImportService.handle_callback()`` commits the imported assets once
      at the end and rolls them back on error.
    - Everything else is read-only.
    """
    with session_scope() as db:
        yield db
