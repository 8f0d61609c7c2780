"""
Database session management with SQLAlchemy.

Provides engine configuration, session creation and a context manager for
safe database access with automatic rollback.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, scoped_session
from loguru import logger

from covercast.config import settings
from covercast.db.models import Base
from covercast.utils.errors import DatabaseError


def build_engine(database_url: str = settings.database_url, echo: bool = settings.debug) -> Engine:
    """Create an engine; SQLite gets thread-sharing enabled for the context workers."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
        echo=echo,
    )


engine = build_engine()

SessionLocal = scoped_session(
    sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
        expire_on_commit=False,
    )
)


def init_db(bind: Engine = engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind)
    logger.info("Database schema ensured")


@contextmanager
def get_db_transaction() -> Generator[Session, None, None]:
    """
    Session scope that commits on success and rolls back on error.
    
    Usage:
        with get_db_transaction() as db:
            PatternRepository(db).create(pattern)
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database transaction failed: {e}")
        raise DatabaseError("Database transaction failed", details={"error": str(e)}) from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
