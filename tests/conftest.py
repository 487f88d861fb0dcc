"""Shared fixtures and helpers for the feed API test suite."""

import os

# Settings are read at import time; point them at throwaway defaults first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TRACING_ENABLED", "false")

from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_api.database import Base, get_db, make_engine
from feed_api.ids import new_id
from feed_api.models import (
    Agent,
    Collection,
    CollectionContributor,
    CollectionCreation,
    Creation,
    Follow,
    Like,
    Model,
    Task,
    User,
)
from feed_api.query.engine import FeedEngine, FeedParams
from feed_api.query.targets import TARGETS

EPOCH = datetime(1970, 1, 1)


class Seeder:
    """Writes rows with strictly increasing ids and timestamps."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._clock = 1_709_294_400  # 2024-03-01T12:00:00Z

    def next_id(self) -> str:
        self._clock += 1
        return new_id(self._clock)

    def _stamp(self) -> datetime:
        return EPOCH + timedelta(seconds=self._clock)

    async def _add(self, row):
        self.db.add(row)
        await self.db.flush()
        return row

    async def user(self, username: Optional[str] = None, **kw) -> User:
        uid = self.next_id()
        return await self._add(
            User(id=uid, username=username or f"user-{uid[-6:]}", created_at=self._stamp(), **kw)
        )

    async def agent(self, owner: User, **kw) -> Agent:
        aid = self.next_id()
        kw.setdefault("name", f"agent-{aid[-6:]}")
        return await self._add(Agent(id=aid, owner_id=owner.id, created_at=self._stamp(), **kw))

    async def task(self, user: User, **kw) -> Task:
        kw.setdefault("tool", "flux")
        return await self._add(
            Task(id=self.next_id(), user_id=user.id, created_at=self._stamp(), **kw)
        )

    async def creation(self, user: User, **kw) -> Creation:
        cid = self.next_id()
        kw.setdefault("tool", "flux")
        kw.setdefault("filename", f"{cid}.png")
        kw.setdefault("mime_type", "image/png")
        return await self._add(Creation(id=cid, user_id=user.id, created_at=self._stamp(), **kw))

    async def creations(self, user: User, n: int, **kw) -> list[Creation]:
        return [await self.creation(user, **kw) for _ in range(n)]

    async def model(self, user: User, **kw) -> Model:
        mid = self.next_id()
        kw.setdefault("name", f"model-{mid[-6:]}")
        return await self._add(Model(id=mid, user_id=user.id, created_at=self._stamp(), **kw))

    async def collection(self, user: User, members=(), contributors=(), **kw) -> Collection:
        cid = self.next_id()
        kw.setdefault("name", f"collection-{cid[-6:]}")
        coll = await self._add(
            Collection(id=cid, user_id=user.id, created_at=self._stamp(), **kw)
        )
        for i, creation in enumerate(members):
            self.db.add(
                CollectionCreation(
                    collection_id=cid,
                    creation_id=creation.id,
                    added_at=self._stamp() + timedelta(microseconds=i),
                )
            )
        for contributor in contributors:
            self.db.add(CollectionContributor(collection_id=cid, user_id=contributor.id))
        await self.db.flush()
        return coll

    async def follow(self, follower: User, following: User) -> Follow:
        return await self._add(Follow(follower_id=follower.id, following_id=following.id))

    async def like(self, user: User, entity, entity_type: str = "creation", at=None) -> Like:
        self._clock += 1
        return await self._add(
            Like(
                id=new_id(self._clock),
                user_id=user.id,
                entity_type=entity_type,
                entity_id=entity.id,
                created_at=at or self._stamp(),
            )
        )

    async def commit(self) -> None:
        await self.db.commit()


async def drain(
    engine: FeedEngine,
    target: str,
    params: FeedParams = FeedParams(),
    viewer_id: Optional[str] = None,
    max_pages: int = 100,
) -> list[list[str]]:
    """Follow `nextCursor`/`nextValue` until the feed returns an empty page."""
    pages: list[list[str]] = []
    cursor, value = None, None
    for _ in range(max_pages):
        page = await engine.cursor_page(
            TARGETS[target], replace(params, cursor=cursor, next_value=value), viewer_id
        )
        if not page.docs:
            assert page.next_cursor is None
            return pages
        pages.append([d.id for d in page.docs])
        cursor, value = page.next_cursor, page.next_value
    raise AssertionError("feed did not terminate")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(tmp_path: Path):
    """A fresh sqlite database file with every table created."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'feed.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(store):
    return async_sessionmaker(bind=store, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def similarity() -> AsyncMock:
    """Nearest-neighbour lookup; tests set `return_value` / `side_effect`."""
    return AsyncMock(return_value={})


@pytest.fixture
def engine(db, similarity) -> FeedEngine:
    return FeedEngine(db, similarity=similarity)


@pytest.fixture
async def client(session_factory, similarity):
    """HTTP client bound to the app with the store and collaborators overridden."""
    from feed_api.main import app
    from feed_api.routers.feed import get_engine

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_engine(db: AsyncSession = Depends(get_db)) -> FeedEngine:
        return FeedEngine(db, similarity=similarity)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_engine] = override_engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
