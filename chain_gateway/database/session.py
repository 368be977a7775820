"""
Database session management
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from .models import Base

DATABASE_DIR = Path(__file__).parent.parent / "data"
DEFAULT_DATABASE_URL = f"sqlite:///{DATABASE_DIR}/chains.db"


def create_db_engine(database_url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine

    Use StaticPool for SQLite to avoid threading issues (and to keep
    in-memory databases alive across sessions).
    """
    if database_url.startswith("sqlite"):
        if database_url == DEFAULT_DATABASE_URL:
            DATABASE_DIR.mkdir(parents=True, exist_ok=True)
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo
        )
    return create_engine(database_url, echo=echo)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """Initialize database tables"""
    Base.metadata.create_all(bind=engine)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Get database session with automatic commit/rollback and cleanup

    Usage:
        with session_scope(SessionLocal) as session:
            record = session.get(ChainRecord, chain_id)
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
