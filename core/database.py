"""
Database connection and setup
Catalog tables (videos, engagement, watch history) live here
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base

from core.config import DATABASE_URL

if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is required for the catalog database")


def build_engine(url: str):
    """Create an engine; SQLite gets the thread flag because work runs on worker threads."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
        )
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
        echo=False  # Set to True for SQL query logging in development
    )


# Create SQLAlchemy engine
engine = build_engine(DATABASE_URL)

# Base class for ORM models
Base = declarative_base()


def init_db(bind=None):
    """
    Initialize database tables
    Call this on application startup
    """
    # Register every mapped table on Base.metadata
    import models.user  # noqa: F401
    import models.video  # noqa: F401
    import models.engagement  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
