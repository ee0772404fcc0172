# donations/db.py
"""Engine, session factory and the per-request session dependency."""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings

# hosted Postgres hands out bare postgres:// URLs; pin the psycopg 3 driver
_URL_PREFIXES = (
    ("postgres://", "postgresql+psycopg://"),
    ("postgresql://", "postgresql+psycopg://"),
)


def database_url(raw: str) -> str:
    for prefix, replacement in _URL_PREFIXES:
        if raw.startswith(prefix):
            return replacement + raw[len(prefix):]
    return raw


DATABASE_URL = database_url(settings.DATABASE_URL)

# SQLite connections get shared across the threadpool FastAPI runs sync routes in
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Yield one session per request and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
