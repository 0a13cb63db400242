"""Database connection and session management for the on-device cache."""

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base
from ..config.settings import get_settings
from ..utils.logging import get_logger


logger = get_logger("database")

MEMORY_PATH = ":memory:"


def sqlite_path(database_url: str) -> Optional[str]:
    """Filesystem path of a SQLite URL, None for other backends."""
    if not database_url.startswith("sqlite"):
        return None
    path = database_url.split("///", 1)[1] if "///" in database_url else MEMORY_PATH
    return path or MEMORY_PATH


def _enable_sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.close()


class DatabaseManager:
    """Engine and session factory for the local cache database.

    SQLite files share one connection across the event loop's callers and
    run in WAL mode; in-memory databases live as long as the manager.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or get_settings().database.url
        self.sqlite_path = sqlite_path(self.database_url)

        if self.sqlite_path is not None:
            self.engine = create_engine(
                self.database_url,
                poolclass=StaticPool,
                connect_args={
                    "check_same_thread": False,
                    "timeout": 20
                },
                echo=False
            )
            if self.sqlite_path != MEMORY_PATH:
                event.listen(self.engine, "connect", _enable_sqlite_pragmas)
        else:
            self.engine = create_engine(
                self.database_url,
                pool_pre_ping=True,
                pool_recycle=300,
                echo=False
            )

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine
        )

        logger.debug("Database manager initialized", database_url=self.database_url)

    def create_tables(self):
        """Create the cache tables, and the SQLite file's directory if needed."""
        if self.sqlite_path and self.sqlite_path != MEMORY_PATH:
            directory = os.path.dirname(self.sqlite_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

        try:
            Base.metadata.create_all(bind=self.engine)
        except Exception as e:
            logger.error("Failed to create cache tables", error=str(e))
            raise

    def get_session(self) -> Session:
        return self.SessionLocal()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error("Database transaction rolled back", error=str(e))
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        """Run a trivial query to confirm the database answers."""
        try:
            with self.session_scope() as session:
                session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database connection test failed", error=str(e))
            return False

    def dispose(self):
        """Release pooled connections."""
        self.engine.dispose()
        logger.debug("Database connections closed")
