"""
Database engine and unit of work
Every multi-step mutation runs inside one UnitOfWork: all of it commits or none of it does
"""

from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import TransientFailureError
from .models import Base

logger = structlog.get_logger(__name__)


def _install_sqlite_events(engine) -> None:
    """
    Make SQLite writers queue behind each other.

    pysqlite's own transaction handling is switched off so every transaction
    opens with BEGIN IMMEDIATE; the connect timeout then acts as the bounded
    lock wait.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, conn_record):  # type: ignore[no-redef]
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # type: ignore[no-redef]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Engine and session factory shared by all components"""

    def __init__(self, database_url: str, lock_timeout_ms: int = 5000, echo: bool = False):
        self.database_url = database_url
        self.lock_timeout_ms = lock_timeout_ms

        connect_args = {}
        if database_url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": lock_timeout_ms / 1000}

        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        if self.engine.dialect.name == "sqlite":
            _install_sqlite_events(self.engine)

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema ready", dialect=self.engine.dialect.name)

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Read-only session; nothing is committed"""
        with self.SessionLocal() as session:
            try:
                yield session
            except OperationalError as e:
                logger.warning("Storage busy during read", error=str(e.orig))
                raise TransientFailureError("lock timeout") from e

    def unit_of_work(self) -> "UnitOfWork":
        return UnitOfWork(self)

    def apply_lock_timeout(self, session: Session) -> None:
        """Bound row-lock waits for the current transaction (PostgreSQL only)"""
        if self.engine.dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))


class UnitOfWork:
    """
    Explicit transaction boundary.

    Usable with begin/commit/rollback calls or as a context manager that
    commits on a clean exit and rolls back on any exception. Lock timeouts and
    busy errors are surfaced as TransientFailureError after rollback.
    """

    def __init__(self, database: Database):
        self._database = database
        self.session: Optional[Session] = None

    @property
    def active(self) -> bool:
        return self.session is not None

    def begin(self) -> Session:
        if self.session is not None:
            raise RuntimeError("Unit of work already started")
        self.session = self._database.SessionLocal()
        self.session.begin()
        try:
            self._database.apply_lock_timeout(self.session)
        except OperationalError as e:
            self.rollback()
            raise TransientFailureError("lock timeout") from e
        return self.session

    def commit(self) -> None:
        if self.session is None:
            raise RuntimeError("Unit of work not started")
        try:
            self.session.commit()
        except OperationalError as e:
            logger.warning("Commit failed on busy storage", error=str(e.orig))
            self.rollback()
            raise TransientFailureError("lock timeout") from e
        finally:
            self._close()

    def rollback(self) -> None:
        if self.session is None:
            return
        try:
            self.session.rollback()
        finally:
            self._close()

    def _close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None

    def __enter__(self) -> "UnitOfWork":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.commit()
            return False

        self.rollback()
        if isinstance(exc, OperationalError):
            logger.warning("Unit of work rolled back on busy storage", error=str(exc.orig))
            raise TransientFailureError("lock timeout") from exc
        return False
