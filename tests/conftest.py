import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from teamchat.client.http import ChatApiClient
from teamchat.config import settings
from teamchat.database import get_db, init_models
from teamchat.main import app
from teamchat.models.user import User
from teamchat.services.typing_service import TypingPresenceTracker, get_typing_tracker

from tests.factories import USERS

BASE_URL = "http://test"


@pytest.fixture
async def engine(tmp_path):
    # a file, not :memory:, so concurrent sessions each get their own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'teamchat.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        for user_id, name in USERS.values():
            session.add(User(id=user_id, name=name, email=f"{name.lower()}@example.com"))
        await session.commit()
    return factory


@pytest.fixture
def typing_tracker():
    return TypingPresenceTracker(ttl_seconds=settings.TYPING_TTL_SECONDS)


@pytest.fixture
def test_app(session_factory, typing_tracker):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_typing_tracker] = lambda: typing_tracker
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client_for(test_app):
    """Factory for raw httpx clients logged in as one of USERS."""
    clients = []

    def make(user: str) -> httpx.AsyncClient:
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=test_app),
            base_url=f"{BASE_URL}{settings.API_PREFIX}",
            cookies={settings.SESSION_COOKIE_NAME: USERS[user][0]},
        )
        clients.append(client)
        return client

    yield make
    for client in clients:
        await client.aclose()


@pytest.fixture
def alice(client_for):
    return client_for("alice")


@pytest.fixture
def bob(client_for):
    return client_for("bob")


@pytest.fixture
def carol(client_for):
    return client_for("carol")


@pytest.fixture
async def api_for(test_app):
    """Factory for ChatApiClient instances talking to the in-process app."""
    clients = []

    def make(user: str) -> ChatApiClient:
        client = ChatApiClient(
            base_url=f"{BASE_URL}{settings.API_PREFIX}",
            session_token=USERS[user][0],
            transport=httpx.ASGITransport(app=test_app),
        )
        clients.append(client)
        return client

    yield make
    for client in clients:
        await client.aclose()
