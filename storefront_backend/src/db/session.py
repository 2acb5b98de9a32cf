"""
Database engine/session management for the FastAPI backend.

The connection string comes from `Settings.resolve_database_url()`:
1) a sibling storefront_database/db_connection.txt if one exists,
2) otherwise DATABASE_URL,
3) otherwise a local development default.
"""

from __future__ import annotations

from typing import Generator, Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.config import get_settings
from src.db.base import Base

logger = structlog.get_logger(__name__)

_settings = get_settings()
DATABASE_URL = _settings.resolve_database_url()

# Engine creation is lazy with respect to connections; nothing connects until first use.
_engine: Engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    echo=_settings.database_echo,
    future=True,
)

SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False, expire_on_commit=False)


# PUBLIC_INTERFACE
def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a SQLAlchemy session and ensures it's closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# PUBLIC_INTERFACE
def db_healthcheck(engine: Optional[Engine] = None) -> bool:
    """
    Perform a simple DB liveness check.

    Returns:
        bool: True if DB is reachable and responds to `SELECT 1`, else False.
    """
    try:
        with (engine or _engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("db_healthcheck_failed", error=str(exc))
        return False


# PUBLIC_INTERFACE
def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    # Import registers every model on Base.metadata.
    import src.db.models  # noqa: F401

    Base.metadata.create_all(bind=engine or _engine)
    logger.info("db_schema_created")
