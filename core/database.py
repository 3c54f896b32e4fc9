"""
Database engine and session management with SQLAlchemy async
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def _enable_sqlite_wal(dbapi_connection, connection_record):
    # WAL lets a streaming cursor stay open while chunk transactions commit
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def build_engine(url: str, echo: bool = False, **engine_options) -> AsyncEngine:
    """Create an async engine, applying SQLite pragmas when needed"""
    new_engine = create_async_engine(url, echo=echo, future=True, **engine_options)

    if new_engine.dialect.name == "sqlite":
        event.listen(new_engine.sync_engine, "connect", _enable_sqlite_wal)

    return new_engine


def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    """Session factory used for chunk transactions and bookkeeping"""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Create async engine
engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# Create session factory
async_session_maker = build_session_maker(engine)
