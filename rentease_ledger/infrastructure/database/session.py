"""Database session management with connection pooling"""

from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from rentease_ledger.config import settings

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SessionFactory = Callable[[], Session]


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> SessionFactory:
    """Session factory for work that outlives the request (background tasks)"""
    return SessionLocal


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit on success, roll back on any exception; one service operation = one commit"""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
