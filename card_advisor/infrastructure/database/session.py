"""Database handle with connection pooling and unit-of-work scopes"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from card_advisor.domain.exceptions import StorageError
from card_advisor.infrastructure.database.models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # In-memory databases live on a single shared connection
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    # Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


class Database:
    """Storage handle owned by the process entry point and passed to repositories"""

    def __init__(self, database_url: str):
        self.engine = build_engine(database_url)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        """
        Open a session that commits on success and rolls back on any failure.

        Raises:
            StorageError: When the database rejects a read or write
        """
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            # Statement text and bound values stay in the log only
            logger.exception("Database error", extra={"error_type": e.__class__.__name__})
            raise StorageError(f"Database error: {e.__class__.__name__}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
