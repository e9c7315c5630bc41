from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool
from .config import settings
import logging
from typing import Any

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        # In-memory databases vanish with their connection; keep exactly one.
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "poolclass": QueuePool,
        "pool_pre_ping": True,  # Verify connections before using
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # Recycle connections every 30 min
    }


try:
    engine = create_engine(settings.DATABASE_URL, echo=False, **_engine_options(settings.DATABASE_URL))
except Exception as e:
    logger.error(f"Failed to create database engine: {e}")
    raise
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db():
    """Database dependency for FastAPI"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables. Schema changes beyond that are done by hand."""
    from . import models  # noqa: F401 - register mappers on Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")
