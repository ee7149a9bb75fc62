# =============================================================================
# File: farmcore/db.py
# Purpose: SQLAlchemy engine + session factory for the snapshot store.
# =============================================================================
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///farmcore.db")


class Base(DeclarativeBase):
    """Declarative base for ORM models."""
    pass


def build_engine(url: str) -> Engine:
    """
    Engine for ``url``.

    SQLite connections are shared between request threads and the snapshot
    writer thread, so the same-thread check is turned off for them.
    """
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, future=True, connect_args=connect_args)


def _session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = build_engine(DATABASE_URL)
SessionLocal = _session_factory(engine)


def make_session_factory(url: str) -> sessionmaker:
    """
    Independent engine + session factory for ``url``, tables created.

    Used by tests and by callers that keep snapshots outside DATABASE_URL.
    """
    from . import models  # noqa: F401

    other = build_engine(url)
    Base.metadata.create_all(other)
    return _session_factory(other)


def init_db() -> None:
    """Create the snapshot table on DATABASE_URL if it does not exist."""
    from . import models  # noqa: F401
    Base.metadata.create_all(engine)
