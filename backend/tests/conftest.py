import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("REALTIME_PROVIDER", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api import deps
from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.db.session import get_db
from app.main import create_app
from app.client.socket import TransportError
from app.models import Chat, ClientProfile, CoachProfile, CoachStatus, User, UserRole
from app.realtime.memory import InMemoryBroker, MemorySocket

PASSWORD = "supersecure"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class FlakyBroker(InMemoryBroker):
    """Broker that can be told to fail publishes or refuse connections."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_with: Exception | None = None
        self.accepting_connections = True

    def trigger(self, channel, event, data):
        if self.fail_with is not None:
            raise self.fail_with
        super().trigger(channel, event, data)

    def attach(self, socket: MemorySocket) -> str:
        if not self.accepting_connections:
            raise TransportError("Broker is not accepting connections")
        return super().attach(socket)


@pytest.fixture
def broker():
    return FlakyBroker(key="test-key", secret="test-secret")


@pytest.fixture
def app(session_factory, broker):
    app = create_app()

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_transport] = lambda: broker
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role: UserRole = UserRole.PROSPECT, name: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=f"{role.value}{counter['n']}@example.com",
            name=name or f"{role.value.title()} {counter['n']}",
            hashed_password=PASSWORD_HASH,
            role=role.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_coach(db, make_user):
    def factory(status: CoachStatus = CoachStatus.APPROVED, name: str | None = None) -> CoachProfile:
        user = make_user(UserRole.COACH, name)
        profile = CoachProfile(user_id=user.id, discipline="Tennis", status=status.value)
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return factory


@pytest.fixture
def make_prospect(db, make_user):
    def factory(name: str | None = None) -> ClientProfile:
        user = make_user(UserRole.PROSPECT, name)
        profile = ClientProfile(user_id=user.id, goals="Improve my serve")
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    return factory


@pytest.fixture
def make_chat(db):
    def factory(coach: CoachProfile, prospect: ClientProfile) -> Chat:
        chat = Chat(coach_id=coach.id, client_id=prospect.id)
        db.add(chat)
        db.commit()
        db.refresh(chat)
        return chat

    return factory


def token_for(user: User) -> str:
    return create_access_token(user.id, user.role)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def chat_pair(make_coach, make_prospect, make_chat):
    """An approved coach, a prospect and the chat between them."""
    coach = make_coach()
    prospect = make_prospect()
    chat = make_chat(coach, prospect)
    return coach, prospect, chat


class BrokerAuthorizer:
    """Signs grants straight from the broker, skipping the HTTP handshake."""

    def __init__(self, broker: InMemoryBroker):
        self.broker = broker
        self.requests: list[tuple[str, str]] = []

    async def authorize(self, socket_id: str, channel_name: str) -> dict:
        self.requests.append((socket_id, channel_name))
        return self.broker.authorize_channel(socket_id, channel_name)


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def eventually(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
