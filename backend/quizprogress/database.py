"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine used to persist
quiz results. The URL comes from `settings.DATABASE_URL`; by default a
local SQLite file `app.db` next to the package directory.
"""

from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.engine import Engine

from .config import settings


def make_engine(url: str) -> Engine:
    """Create an engine for `url`, allowing SQLite use from worker threads."""
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)


def create_db_and_tables(bind: Engine = None):
    """Create database tables using SQLModel metadata.

    Tables are created idempotently; there is no migration tooling for
    the result log since records are never altered after creation.
    """
    # models must be imported so their tables are registered on the metadata
    from . import models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection."""
    with Session(engine) as session:
        yield session
