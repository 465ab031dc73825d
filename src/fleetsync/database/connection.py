"""
Database connection management for the sync engine.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


# SQLAlchemy 2.0 base class for models
class Base(DeclarativeBase):
    pass


class DatabaseManager:
    """Database connection and session management"""

    def __init__(self, database_url: str = "sqlite:///fleetsync.db", echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def initialize(self) -> None:
        """Initialize database connection and session factory"""
        try:
            if self.database_url.startswith('sqlite'):
                options = {}
                if self.database_url in ("sqlite://", "sqlite:///:memory:"):
                    # In-memory databases live as long as their single connection
                    options["poolclass"] = StaticPool
                self._engine = create_engine(
                    self.database_url,
                    echo=self.echo,
                    connect_args={"check_same_thread": False},  # Scheduler threads share the engine
                    **options
                )
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_pre_ping=True,  # Validate connections before use
                    echo=self.echo,
                )

            self._session_factory = sessionmaker(
                bind=self._engine,
                expire_on_commit=False
            )

            logger.info("Database connection initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise

    def get_engine(self) -> Engine:
        """Get the database engine"""
        if self._engine is None:
            self.initialize()
        return self._engine

    def create_all(self) -> None:
        """Create every table known to the declarative base."""
        # Import models so they register on Base.metadata
        from . import models  # noqa: F401

        Base.metadata.create_all(self.get_engine())
        logger.info("Database schema created")

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """Get a database session with automatic cleanup"""
        if self._session_factory is None:
            self.initialize()

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            session.close()

    def test_connection(self) -> bool:
        """Test database connection"""
        try:
            with self.get_session() as session:
                result = session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Database connection test failed: {e}")
            return False

    def close(self) -> None:
        """Close database connections"""
        if self._engine:
            self._engine.dispose()
            logger.info("Database connections closed")
