# database.py
"""
SQLAlchemy database connection and session management.

This module provides:
- ``Database``: an explicitly constructed persistence handle (engine + session
  factory) that is opened at process start and disposed at shutdown
- ``Database.transaction()``: scoped unit of work, commit on success and
  rollback on every other exit path
- FastAPI dependencies resolving the handle stored on ``app.state``

Usage:
     db = Database(build_database_url())
     with db.transaction() as session:
          session.add(invoice)
"""
import logging
from contextlib import contextmanager
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import QueuePool, StaticPool

from exceptions import LedgerError, TransactionFailure

logger = logging.getLogger(__name__)

# Driver messages that indicate a retryable write conflict
_CONFLICT_MARKERS = ("deadlock", "serializ", "lock request time out", "database is locked")


def _is_conflict(exc: DBAPIError) -> bool:
     message = str(exc.orig).lower()
     return any(marker in message for marker in _CONFLICT_MARKERS)


class Database:
     """Engine and session factory for one database URL."""

     def __init__(self, url: str, echo: bool = False):
          self.url = url
          is_sqlite = url.startswith("sqlite")
          if is_sqlite:
               # In-memory databases live on one connection; file databases get a pool per session
               in_memory = url in ("sqlite://", "sqlite:///:memory:")
               self.engine = create_engine(
                    url,
                    poolclass=StaticPool if in_memory else None,
                    connect_args={"check_same_thread": False},
                    echo=echo,
               )

               @event.listens_for(self.engine, "connect")
               def _set_sqlite_pragma(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()
          else:
               self.engine = create_engine(
                    url,
                    poolclass=QueuePool,
                    pool_size=5,
                    max_overflow=10,
                    pool_timeout=30,
                    pool_recycle=1800,  # Recycle connections after 30 minutes
                    pool_pre_ping=True,
                    echo=echo,
               )

          self.SessionLocal = sessionmaker(
               bind=self.engine,
               autocommit=False,
               autoflush=False,
               expire_on_commit=False,
          )

     def __repr__(self):
          return f"<Database(url='{self.engine.url!r}')>"

     def create_all(self) -> None:
          """
          Create tables for every model.

          For production, use Alembic migrations instead.
          """
          from models import Base
          Base.metadata.create_all(bind=self.engine)

     def drop_all(self) -> None:
          from models import Base
          Base.metadata.drop_all(bind=self.engine)

     def check_connection(self) -> bool:
          """Return True when a trivial query succeeds."""
          try:
               with self.engine.connect() as conn:
                    conn.execute(text("SELECT 1"))
               return True
          except DBAPIError as e:
               logger.error("Database connection failed: %s", e)
               return False

     def dispose(self) -> None:
          self.engine.dispose()
          logger.info("Database engine disposed")

     def session(self) -> Generator[Session, None, None]:
          """
          Yield a session that commits when the caller finishes cleanly.

          Yields:
               Session: SQLAlchemy database session
          """
          with self.transaction() as session:
               yield session

     @contextmanager
     def transaction(self) -> Generator[Session, None, None]:
          """
          Run a unit of work in one transaction.

          Commits on success. Any exception rolls back; SQLAlchemy failures are
          re-raised as ``TransactionFailure`` and ledger errors pass through as-is.
          """
          session = self.SessionLocal()
          try:
               yield session
               session.commit()
          except LedgerError:
               session.rollback()
               raise
          except StaleDataError as e:
               session.rollback()
               raise TransactionFailure("Concurrent update detected", conflict=True) from e
          except IntegrityError as e:
               session.rollback()
               raise TransactionFailure(f"Integrity constraint violated: {e.orig}") from e
          except OperationalError as e:
               session.rollback()
               raise TransactionFailure(
                    f"Transaction aborted: {e.orig}", conflict=_is_conflict(e)
               ) from e
          except Exception:
               session.rollback()
               raise
          finally:
               session.close()


def get_database(request: Request) -> Database:
     """FastAPI dependency returning the handle opened by the app lifespan."""
     return request.app.state.db


def get_session(request: Request) -> Generator[Session, None, None]:
     """
     FastAPI dependency that provides a database session.

     Usage:
          @router.get("/items")
          def get_items(db: Session = Depends(get_session)):
               return db.query(Item).all()
     """
     yield from get_database(request).session()
