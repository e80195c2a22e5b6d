"""Engine/session helpers for the account store."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator

from loguru import logger
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import Conflict, UpstreamError
from .settings import Settings
from .tables import Base


def _enable_sqlite_fks(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings) -> Engine:
    url = (settings.database_url or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be configured")

    kwargs: Dict[str, Any] = {"future": True, "pool_pre_ping": True, "echo": False}
    if settings.db_isolation_level:
        kwargs["isolation_level"] = settings.db_isolation_level
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False, "timeout": settings.db_pool_timeout}
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_timeout"] = settings.db_pool_timeout

    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_fks)
    return engine


class Database:
    """Owns the engine and hands out transaction scopes."""

    def __init__(self, settings: Settings, engine: Engine | None = None) -> None:
        self.engine = engine or build_engine(settings)
        self.sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """One atomic unit of work: commit on success, roll back on any exception."""
        session: Session = self.sessions()
        try:
            with session.begin():
                yield session
        except IntegrityError as exc:
            logger.warning("Integrity violation in account store: {}", exc.orig)
            raise Conflict("Username or email already in use") from exc
        except SQLAlchemyError as exc:
            logger.exception("Account store failure")
            raise UpstreamError("Account store unavailable") from exc
        finally:
            session.close()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            logger.exception("Account store ping failed")
            return False

    def dispose(self) -> None:
        self.engine.dispose()
