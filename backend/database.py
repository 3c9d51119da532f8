import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from config import get_settings
from exceptions import StoreError
from models import Base

logger = logging.getLogger(__name__)

DATABASE_URL = get_settings().database_url

engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in DATABASE_URL else {}
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    """Create all tables if they don't exist."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency for FastAPI routes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def commit(db: Session, context: str) -> None:
    """
    Commit the request's unit of work.

    On failure the session is rolled back and the store error is re-raised
    as StoreError with ``context`` prepended. No retry.
    """
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("commit failed: %s (%s)", context, type(exc).__name__)
        raise StoreError(f"{context}: {type(exc).__name__}") from exc
