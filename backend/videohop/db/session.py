"""Database session management"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from videohop.models import Base
from videohop.core.config import settings

# SQLite needs check_same_thread off because uploads read tokens from worker threads
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

# Create engine
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    pool_recycle=3600,
    connect_args=_connect_args
)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize database (create all tables)"""
    Base.metadata.create_all(bind=bind or engine)
