# neighbourhood_chat/tests/conftest.py
import os
from datetime import timedelta
from types import SimpleNamespace

import pytest
from fakeredis import aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from neighbourhood_chat.config import AppConfig
from neighbourhood_chat.domain.identifiers import new_id, utcnow
from neighbourhood_chat.infrastructure import models
from neighbourhood_chat.infrastructure.database import Base, create_database
from neighbourhood_chat.infrastructure.security import SecurityService

# neighbourhood_chat.main builds its module-level app from the environment
os.environ.setdefault("SECRET_KEY", "test_secret_key")

NEIGHBOURHOOD_ID = "64b7f0c2a1b2c3d4e5f60718"


class RecordingConnection:
    """Stands in for a WebSocket; keeps every frame it is sent."""

    def __init__(self):
        self.frames = []

    async def send_json(self, data):
        self.frames.append(data)

    def events(self, name: str) -> list[dict]:
        return [frame for frame in self.frames if frame["event"] == name]


class BrokenConnection:
    async def send_json(self, data):
        raise ConnectionResetError("socket closed")


@pytest.fixture(scope="function")
def app_config():
    return AppConfig(
        SECRET_KEY="test_secret_key",
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_HOST="localhost",
        REDIS_PORT=6379,
        PROJECT_NAME="Test Neighbourhood Chat API",
        ENVIRONMENT="test",
        ACCESS_TOKEN_EXPIRE_MINUTES=5,
    )


@pytest.fixture(scope="function")
async def mock_redis():
    """Provide a fake Redis client for testing."""
    redis = aioredis.FakeRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture(scope="function")
async def engine(app_config):
    """In-memory SQLite shared by every session of a test."""
    engine = create_async_engine(
        app_config.DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def database(engine):
    return create_database(engine)


@pytest.fixture(scope="function")
async def db_session(database):
    async with database.session() as session:
        yield session


@pytest.fixture(scope="function")
def application(app_config, database, mock_redis):
    from neighbourhood_chat.main import Application

    application = Application(config=app_config)
    application.database = database
    application.redis_client.client = mock_redis
    return application


@pytest.fixture(scope="function")
def app(application):
    return application.create_app()


@pytest.fixture(scope="function")
def hub(application):
    return application.realtime_hub


@pytest.fixture(scope="function")
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture(scope="function")
def security_service(app_config):
    return SecurityService(app_config)


@pytest.fixture(scope="function")
def auth_for(security_service):
    def _headers(user_id: str) -> dict[str, str]:
        token, _ = security_service.create_access_token({"sub": user_id})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(scope="function")
async def seed(database):
    """Users U1, U2, U3, U9 and admin A1; group G1 {U1 admin, U2}, group G2 {U9}.

    U3 has no neighbourhood.
    """
    now = utcnow()

    def user(key, first, last, neighbourhood=NEIGHBOURHOOD_ID, role="user"):
        return models.User(
            id=new_id(),
            username=f"{key.lower()}_{new_id()[-6:]}",
            email=f"{key.lower()}_{new_id()[-6:]}@example.com",
            first_name=first,
            last_name=last,
            neighbourhood_id=neighbourhood,
            role=role,
            is_active=True,
            created_at=now,
        )

    u1 = user("U1", "Test", "User")
    u2 = user("U2", "Second", "Neighbour")
    u3 = user("U3", "Third", "Resident", neighbourhood=None)
    u9 = user("U9", "Ninth", "Neighbour")
    a1 = user("A1", "Ada", "Admin", role="admin")

    g1 = models.Group(
        id=new_id(),
        neighbourhood_id=NEIGHBOURHOOD_ID,
        name="Maple Street Watch",
        description="Street news",
        type="public",
        created_by=u1.id,
        created_at=now,
        last_activity=now,
        is_active=True,
        members=[
            models.GroupMember(user_id=u1.id, role="admin", joined_at=now),
            models.GroupMember(user_id=u2.id, role="member", joined_at=now + timedelta(seconds=1)),
        ],
    )
    g2 = models.Group(
        id=new_id(),
        neighbourhood_id=NEIGHBOURHOOD_ID,
        name="Oak Avenue",
        description="",
        type="public",
        created_by=u9.id,
        created_at=now,
        last_activity=now,
        is_active=True,
        members=[models.GroupMember(user_id=u9.id, role="admin", joined_at=now)],
    )

    async with database.session() as session:
        session.add_all([u1, u2, u3, u9, a1])
        await session.flush()
        session.add_all([g1, g2])
        await session.commit()

    return SimpleNamespace(
        U1=u1.id, U2=u2.id, U3=u3.id, U9=u9.id, A1=a1.id, G1=g1.id, G2=g2.id
    )


@pytest.fixture(scope="function")
def make_message(database):
    """Insert a group message directly, bypassing the send pipeline."""

    async def _make(group_id: str, sender_id: str, content: str = "stored", **fields):
        now = utcnow()
        message = models.Message(
            id=new_id(),
            chat_id=group_id,
            chat_type=fields.pop("chat_type", "group"),
            sender_id=sender_id,
            sender_name=fields.pop("sender_name", "Test User"),
            content=content,
            message_type="text",
            attachments=fields.pop("attachments", []),
            reactions=fields.pop("reactions", []),
            reported_by=fields.pop("reported_by", []),
            status="sent",
            moderation_status=fields.pop("moderation_status", "active"),
            created_at=fields.pop("created_at", now),
            updated_at=now,
            **fields,
        )
        async with database.session() as session:
            session.add(message)
            await session.commit()
        return message.id

    return _make


@pytest.fixture(scope="function")
def recorder():
    return RecordingConnection


@pytest.fixture(scope="function")
def broken_connection():
    return BrokenConnection()
