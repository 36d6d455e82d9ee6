"""
Database connection and session management.
"""

from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Any, Generator, Iterator, Tuple
import logging
import os
import time

from ..config import DatabaseConfig
from ..models.base import Base

logger = logging.getLogger(__name__)

# Global engine variable
_engine = None


def get_database_url(config: DatabaseConfig) -> str:
    """Get database URL from configuration."""
    return config.url


def create_engine(config: DatabaseConfig) -> Tuple[Any, str]:
    """Create SQLAlchemy engine."""
    global _engine

    database_url = get_database_url(config)
    connection_timeout = int(os.getenv("DATABASE_CONNECTION_TIMEOUT", "30"))

    logger.debug(f"Creating database engine with URL: {database_url}")

    if database_url.startswith("sqlite"):
        _engine = sa_create_engine(
            database_url,
            echo=config.echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    else:
        connect_args = {}
        if database_url.startswith("postgresql"):
            connect_args.update({
                "connect_timeout": connection_timeout,
                "application_name": "chathub",
            })

        pool_timeout = int(os.getenv("DATABASE_POOL_TIMEOUT", "30"))
        pool_recycle = int(os.getenv("DATABASE_POOL_RECYCLE", "3600"))

        _engine = sa_create_engine(
            database_url,
            echo=config.echo,
            connect_args=connect_args,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            pool_pre_ping=True
        )

    return _engine, database_url


def _new_session() -> Session:
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call create_engine first.")

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)
    return SessionLocal()


def get_session() -> Generator[Session, None, None]:
    """Get database session - FastAPI dependency."""
    session = _new_session()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for work that outlives the request, such as webhook background tasks."""
    session = _new_session()
    try:
        yield session
    finally:
        session.close()


def init_database(engine, original_database_url=None):
    """Initialize database tables using Alembic migrations."""
    max_attempts = int(os.getenv("DATABASE_INIT_MAX_ATTEMPTS", "5"))
    retry_delay = int(os.getenv("DATABASE_INIT_RETRY_DELAY", "10"))

    logger.info(f"Database initialization: max_attempts={max_attempts}, retry_delay={retry_delay}s")

    for attempt in range(1, max_attempts + 1):
        try:
            logger.info(f"Database initialization attempt {attempt}/{max_attempts}")

            from alembic.config import Config as AlembicConfig
            from alembic import command

            if engine.url.database in (None, "", ":memory:"):
                Base.metadata.create_all(bind=engine)
                logger.info("Created in-memory database tables successfully")
                return

            logger.info(f"Initializing database with URL: {engine.url}")
            alembic_cfg = AlembicConfig("alembic.ini")

            # engine.url masks the password, so prefer the original URL
            alembic_database_url = original_database_url or engine.url.render_as_string(hide_password=False)
            alembic_cfg.set_main_option("sqlalchemy.url", alembic_database_url)

            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations applied successfully")
            return

        except Exception as e:
            logger.error(f"Database initialization attempt {attempt}/{max_attempts} failed: {e}")

            if attempt < max_attempts:
                delay = (attempt ** 2) * retry_delay
                logger.info(f"Retrying in {delay} seconds...")
                time.sleep(delay)
            else:
                logger.error(f"Database initialization failed after {max_attempts} attempts")
                raise RuntimeError(f"Database initialization failed after {max_attempts} attempts. Last error: {e}")
