"""
Database Engine & Session Management
SQLAlchemy setup with dependency injection for FastAPI.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from villa_onboarding.config import get_settings

settings = get_settings()

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

if _is_sqlite:
    # Ensure data directory exists (no-op for in-memory databases)
    _db_path = settings.DATABASE_URL.partition("sqlite:///")[2]
    _db_dir = os.path.dirname(_db_path) if _db_path != ":memory:" else ""
    if _db_dir:
        os.makedirs(_db_dir, exist_ok=True)

if _is_sqlite:
    # check_same_thread is required for SQLite; timeout bounds the busy-lock wait
    connect_args = {"check_same_thread": False, "timeout": settings.PERSISTENCE_TIMEOUT_SECONDS}
    engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, echo=settings.DEBUG)
else:
    engine = create_engine(
        settings.DATABASE_URL,
        pool_timeout=settings.PERSISTENCE_TIMEOUT_SECONDS,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a database session, auto-closes on finish."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create all tables. Called once at application startup."""
    from villa_onboarding.models import session as _session_model     # noqa: F401
    from villa_onboarding.models import progress as _progress_model   # noqa: F401
    from villa_onboarding.models import skip as _skip_model           # noqa: F401
    from villa_onboarding.models import audit as _audit_model         # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
