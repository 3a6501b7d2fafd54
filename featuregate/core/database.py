"""
Database connection and session management

Provides:
- Engine and session factory construction from settings
- Transaction context manager for all-or-nothing writes
"""

from contextlib import contextmanager
from typing import Generator, Optional

import structlog
from featuregate.core.config import Settings, settings
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = structlog.get_logger(__name__)


def create_db_engine(database_url: Optional[str] = None, config: Optional[Settings] = None) -> Engine:
    """Create a SQLAlchemy engine for the configured database.

    Args:
        database_url: Overrides ``DATABASE_URL`` from settings
        config: Settings instance (defaults to the module-level settings)

    Returns:
        SQLAlchemy Engine
    """
    config = config or settings
    url = database_url or config.DATABASE_URL
    return create_engine(
        url,
        pool_pre_ping=config.DB_POOL_PRE_PING,
        echo=config.DB_ECHO,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Build a session factory bound to ``engine``."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def transaction(db: Session) -> Generator[Session, None, None]:
    """
    Synchronous transaction context manager with automatic commit/rollback.

    Usage:
        with transaction(db) as session:
            session.add(new_object)
            # Commits automatically on success, rolls back on exception

    Args:
        db: SQLAlchemy Session instance

    Yields:
        The same session for use within the transaction

    Raises:
        Any exception raised within the context (after rollback)
    """
    try:
        yield db
        db.commit()
        logger.debug("Transaction committed successfully")
    except Exception as e:
        db.rollback()
        logger.error(
            "Transaction rolled back due to error",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
