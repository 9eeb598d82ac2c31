"""
StormDesk - Database Configuration
PostgreSQL connection using SQLAlchemy
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL, SQL_ECHO

# Create engine
engine = create_engine(DATABASE_URL, echo=SQL_ECHO)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def get_db():
    """Dependency for FastAPI - yields database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database - create all tables."""
    # Models must be imported so their tables register on Base.metadata
    from .models import db_models  # noqa: F401

    Base.metadata.create_all(bind=engine)
