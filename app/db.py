from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import DATABASE_URL, DB_ECHO, DB_RETRY_ATTEMPTS, DB_RETRY_MAX_WAIT, DB_RETRY_MIN_WAIT


def make_engine(url: str = DATABASE_URL, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign keys enforced."""
    engine = create_async_engine(url, echo=DB_ECHO, pool_pre_ping=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind, class_=AsyncSession, autoflush=False, expire_on_commit=False)


engine = make_engine()
AsyncSessionLocal = make_sessionmaker(engine)


@asynccontextmanager
async def get_session(factory: Optional[async_sessionmaker] = None) -> AsyncIterator[AsyncSession]:
    session = (factory or AsyncSessionLocal)()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# Reads are safe to repeat; mutations are never wrapped with this.
read_retry = retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
    reraise=True,
)
