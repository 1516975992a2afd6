"""
Database connection and session management for Follo

The engine and session factory are created explicitly and handed to each
store, so several databases (e.g. an in-memory test database) can coexist.
"""

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from contextlib import contextmanager
from typing import Generator, Optional
import logging


logger = logging.getLogger(__name__)

# Base class for ORM models
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create a SQLAlchemy engine for the given URL"""
    if database_url.startswith("sqlite"):
        # SQLite specific configuration; an in-memory database lives on one shared connection
        in_memory = database_url in ("sqlite://", "sqlite:///") or ":memory:" in database_url
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
            **({"poolclass": StaticPool} if in_memory else {})
        )

        # Enable foreign keys for SQLite
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    # PostgreSQL or other databases
    return create_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory bound to an engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine
    )


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.
    Commits on success, rolls back on any error.

    Usage:
        with session_scope(factory) as db:
            db.add(item)
    """
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.
    Creates all tables defined in models.
    """
    # Import models to register them with Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized at: {engine.url}")


def drop_db(engine: Engine) -> None:
    """
    Drop all database tables.
    WARNING: This will delete all data!
    """
    Base.metadata.drop_all(bind=engine)
    logger.warning("All database tables dropped")


class DatabaseHealthCheck:
    """Database health check utilities"""

    def __init__(self, engine: Engine):
        self.engine = engine

    def is_connected(self) -> bool:
        """Check if database is connected"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def get_table_counts(self, tables: Optional[list] = None) -> dict:
        """Get row counts for the given tables (all mapped tables by default)"""
        tables = tables or list(Base.metadata.tables.keys())
        counts = {}
        with self.engine.connect() as conn:
            for table in tables:
                counts[table] = conn.execute(
                    text(f"SELECT COUNT(*) FROM {table}")
                ).scalar()
        return counts


# Export commonly used items
__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "session_scope",
    "init_db",
    "drop_db",
    "DatabaseHealthCheck"
]
