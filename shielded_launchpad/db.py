# shielded_launchpad/db.py
"""Database session and connection management"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from shielded_launchpad.models.db import Base
from shielded_launchpad.db_config import DatabaseManager

logger = logging.getLogger(__name__)

class Database:
    """Database connection and session manager"""

    def __init__(self):
        """Initialize database manager state"""
        self._engine = None
        self._SessionLocal = None

    def _get_connection_string(self) -> str:
        """
        Get database connection string from the environment.

        Raises:
            ValueError: If required environment variables are missing
        """
        try:
            return DatabaseManager.initialize_from_env()
        except ValueError as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    def init(self, connection_string: Optional[str] = None, create_tables: bool = True) -> None:
        """
        Initialize database connection and create tables.

        This should be called once at application startup.

        Args:
            connection_string: Explicit SQLAlchemy URL; read from settings when omitted
            create_tables: Create missing launchpad tables

        Raises:
            SQLAlchemyError: If database initialization fails
        """
        try:
            url = connection_string or self._get_connection_string()
            self._engine = create_engine(url)
            if create_tables:
                Base.metadata.create_all(self._engine)
            self._SessionLocal = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info("Database initialized successfully")

        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @property
    def engine(self) -> Engine:
        if not self._engine:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of database operations.

        Everything done inside the block is committed together when the block
        exits normally, and rolled back when it raises.

        Usage:
            with db.session() as session:
                session.add(some_object)

        Yields:
            Session: SQLAlchemy database session

        Raises:
            RuntimeError: If database not initialized
        """
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """
        Clean up database connections.
        Should be called during application shutdown.
        """
        if self._engine:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None

# Global database instance
db = Database()
