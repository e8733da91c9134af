from collections.abc import Generator

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.settings import Settings, get_settings
from db.models import Base

# Global engine singleton
_engine = None


def reset_engines():
    """Reset global engine singleton. Used for testing."""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None


def get_engine(settings: Settings = Depends(get_settings)):
    """Get or create SQLAlchemy engine."""
    global _engine
    if _engine is None:
        if settings.DATABASE_URL.startswith("postgresql"):
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                poolclass=QueuePool,
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
                pool_timeout=settings.DATABASE_POOL_TIMEOUT,
                pool_recycle=settings.DATABASE_POOL_RECYCLE,
                pool_pre_ping=True,  # Verify connections before use
            )
        else:
            is_sqlite = settings.DATABASE_URL.startswith("sqlite")
            _engine = create_engine(
                settings.DATABASE_URL,
                future=True,
                connect_args={"check_same_thread": False} if is_sqlite else {},
                poolclass=StaticPool if is_sqlite else None,
            )
    return _engine


# Records stay usable after save() commits; the services keep working on them
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False)


def get_db(settings: Settings = Depends(get_settings)) -> Generator[Session, None, None]:
    engine = get_engine(settings)
    SessionLocal.configure(bind=engine)
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(settings: Settings) -> None:
    """Initialize database tables."""
    engine = get_engine(settings)
    Base.metadata.create_all(engine)
