"""
Database engine configuration for the SQLite history store.
"""
import logging
import os
import os.path

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)


def create_history_engine(db_path: str) -> Engine:
    """Create the engine for a SQLite file, or in memory for ``:memory:``."""
    in_memory = db_path == ":memory:"
    if not in_memory:
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
    logger.info("Initializing SQLite history database at %s", db_path)

    engine = create_engine(
        f"sqlite+pysqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30.0},
        # One shared connection, otherwise every thread sees its own empty database.
        poolclass=StaticPool if in_memory else None,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        if not in_memory:
            cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


def ensure_schema(engine: Engine) -> None:
    """Create database tables if they do not exist yet.

    This is safe to run repeatedly.
    """
    Base.metadata.create_all(engine)
    logger.info("Database schema ensured (create_all executed)")
