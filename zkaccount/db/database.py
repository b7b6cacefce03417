from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator

from zkaccount.core.config import get_database_url

# Create base class for models
Base = declarative_base()


def is_memory_database(database_url: str) -> bool:
    """Whether the URL names an in-memory SQLite database"""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return False
    return url.database in (None, "", ":memory:") or url.query.get("mode") == "memory"


def build_engine(database_url: str) -> Engine:
    """
    Create an engine with SQLite-specific configuration where needed
    """
    if is_memory_database(database_url):
        # every connection to :memory: is a separate database
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=False  # Set to True for SQL debugging
        )
    if database_url.startswith("sqlite"):
        # pooled, one connection per session
        return create_engine(
            database_url,
            connect_args={
                "check_same_thread": False,
                "timeout": 20
            },
            echo=False
        )
    return create_engine(database_url, echo=False, pool_pre_ping=True)


engine = build_engine(get_database_url())

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """
    Initialize ledger tables
    """
    # Import all models to ensure they are registered
    from zkaccount.models import account  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def drop_tables(bind: Engine = None) -> None:
    """
    Drop all tables (useful for testing)
    """
    from zkaccount.models import account  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)
