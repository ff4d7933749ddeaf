"""
Shared fixtures: a throwaway SQLite database per test, a seeded user and
theme, and a fully wired Services container around a stub generator.
"""

from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from deckflow.core.config import get_settings
from deckflow.core.container import build_services
from deckflow.core.database import build_engine, create_tables
from deckflow.core.flags import get_flags
from deckflow.models.base import utcnow
from deckflow.models.theme import Theme
from deckflow.models.user import User
from deckflow.services.context import NullRetriever

from tests.stubs import StubGenerator, happy_responses

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setenv("FF_USE_REDIS", "false")
    monkeypatch.setenv("REDIS_URL", "")
    monkeypatch.setenv("GENERATION_RETRY_DELAY", "0")
    get_settings.cache_clear()
    get_flags.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()
    get_flags.cache_clear()


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'deckflow.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def add_user(
    session_factory,
    user_id: str = USER_ID,
    tier: str = "PRO",
    balance: int = 10,
    decks_this_month: int = 0,
    billing_cycle_start: Optional[datetime] = None,
) -> None:
    async with session_factory() as db:
        db.add(User(
            id=user_id,
            email=f"{user_id}@example.com",
            tier=tier,
            credit_balance=balance,
            decks_this_month=decks_this_month,
            billing_cycle_start=billing_cycle_start or utcnow(),
        ))
        await db.commit()


async def add_theme(session_factory, name: str = "pitchable-dark", is_builtin: bool = True) -> str:
    async with session_factory() as db:
        theme = Theme(name=name, category="dark", is_builtin=is_builtin, palette={})
        db.add(theme)
        await db.commit()
        return theme.id


@pytest.fixture
async def theme_id(session_factory):
    return await add_theme(session_factory)


@pytest.fixture
def generator():
    return StubGenerator(happy_responses())


@pytest.fixture
def services(session_factory, generator):
    return build_services(
        get_settings(), get_flags(), session_factory,
        generator=generator, retriever=NullRetriever(),
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
