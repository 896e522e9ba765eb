import logging
from collections.abc import Generator, Sequence
from typing import Any

from sqlalchemy import Executable, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import settings
from .errors import TransientStoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _engine_options(database_url: str, timeout_ms: int) -> dict[str, Any]:
    # Statement and pool timeouts only apply to the PostgreSQL store.
    if not database_url.startswith("postgresql"):
        return {}
    return {
        "pool_timeout": max(1.0, timeout_ms / 1000.0),
        "connect_args": {"options": f"-c statement_timeout={int(timeout_ms)}"},
    }


engine = create_engine(
    settings.database_url,
    future=True,
    pool_pre_ping=True,
    **_engine_options(settings.database_url, settings.store_timeout_ms),
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


def fetch_all(db: Session, stmt: Executable) -> Sequence[Any]:
    """Run a select and return ORM scalars, surfacing timeouts as retryable errors."""
    try:
        return db.execute(stmt).scalars().all()
    except (OperationalError, SQLAlchemyTimeoutError) as exc:
        logger.exception("Store query failed")
        raise TransientStoreError("Listing store is temporarily unavailable, please retry") from exc


def fetch_rows(db: Session, stmt: Executable) -> Sequence[Any]:
    try:
        return db.execute(stmt).all()
    except (OperationalError, SQLAlchemyTimeoutError) as exc:
        logger.exception("Store query failed")
        raise TransientStoreError("Listing store is temporarily unavailable, please retry") from exc


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
