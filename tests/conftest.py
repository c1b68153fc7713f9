"""Shared fixtures: a throwaway SQLite database with the full schema and triggers."""

import os

# The module-level engine in app.db is never connected during tests, but it
# must not require a running Postgres to be constructed.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("DB_RETRY_MIN_WAIT", "0")
os.environ.setdefault("DB_RETRY_MAX_WAIT", "0")

from datetime import datetime

import pytest
import pytest_asyncio

from app.db import get_session, make_engine, make_sessionmaker
from app.models import Activity, Base, Post, User


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed so concurrent sessions see each other's commits."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'interactions.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def users(sessionmaker):
    async with get_session(sessionmaker) as db:
        rows = [User(handle=handle) for handle in ("alice", "bob", "carol", "dave")]
        db.add_all(rows)
    return {user.handle: user.id for user in rows}


@pytest_asyncio.fixture
async def post(sessionmaker, users):
    async with get_session(sessionmaker) as db:
        row = Post(author_id=users["alice"], title="Hello", content="First post", published=True)
        db.add(row)
    return row.id


@pytest_asyncio.fixture
async def draft_post(sessionmaker, users):
    async with get_session(sessionmaker) as db:
        row = Post(author_id=users["alice"], title="Draft", content="Not yet", published=False)
        db.add(row)
    return row.id


@pytest_asyncio.fixture
async def activity(sessionmaker, users):
    async with get_session(sessionmaker) as db:
        row = Activity(author_id=users["bob"], content="Ran 10k today")
        db.add(row)
    return row.id


@pytest_asyncio.fixture
async def deleted_activity(sessionmaker, users):
    async with get_session(sessionmaker) as db:
        row = Activity(author_id=users["bob"], content="gone", deleted_at=datetime.utcnow())
        db.add(row)
    return row.id
