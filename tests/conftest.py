"""Fixtures partagées : base SQLite en mémoire, Mongo simulé, client HTTP.

Les variables d'environnement sont posées avant tout import de `app`, car
`app.config.settings` est instancié à l'import.
"""
import os
import itertools
import tempfile

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("MONGO_URL", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="uniclubs-uploads-"))

import pytest
from httpx import AsyncClient, ASGITransport
from mongomock_motor import AsyncMongoMockClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.main import app
from app.config import settings
from app.db import mongo
from app.db.session import Base, get_db
from app.auth.dependencies import blacklist
from app.auth.models import User, RoleEnum, UserStatus
from app.auth.password import hash_password
from app.auth.jwt_handler import create_access_token
from app.clubs.models import Club, ClubStatus, ParticipationMembre, MembershipStatus
from app.utils import email

PASSWORD = "Secret#123"
HASHED_PASSWORD = hash_password(PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def mongo_db(monkeypatch):
    mock_db = AsyncMongoMockClient()["uniclubs_test"]
    monkeypatch.setattr(mongo, "incidents_collection", mock_db["moderation_incidents"])
    monkeypatch.setattr(mongo, "activity_collection", mock_db["activity_logs"])
    return mock_db


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Emails 'envoyés' pendant le test"""
    sent = []

    async def fake_send(subject, email_to, body, html=None):
        sent.append({"subject": subject, "to": email_to, "body": body})

    monkeypatch.setattr(email, "send_email_async", fake_send)
    return sent


@pytest.fixture(autouse=True)
def clear_blacklist():
    yield
    blacklist.clear()


@pytest.fixture(autouse=True)
def no_external_ai(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "TOXICITY_API_KEY", None)


@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    async def _make(role: RoleEnum = RoleEnum.NON_MEMBRE, **fields) -> User:
        n = next(counter)
        user = User(
            first_name=fields.pop("first_name", "Amine"),
            last_name=fields.pop("last_name", f"Test{chr(ord('a') + n % 26)}"),
            email=fields.pop("email", f"user{n}@uniclubs.tn"),
            hashed_password=HASHED_PASSWORD,
            role=role.value,
            status=fields.pop("status", UserStatus.ACTIVE.value),
            is_verified=fields.pop("is_verified", True),
            **fields,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user(RoleEnum.ADMINISTRATEUR, first_name="Sana", email="admin@uniclubs.tn")


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_access_token({"user_id": user.id, "role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_club(db):
    counter = itertools.count(1)

    async def _make(president: User, status: ClubStatus = ClubStatus.ACCEPTE, **fields) -> Club:
        club = Club(
            name=fields.pop("name", f"Club {next(counter)}"),
            description=fields.pop("description", "Un club de test"),
            status=status.value,
            points=fields.pop("points", 0),
            president_id=president.id,
            **fields,
        )
        db.add(club)
        await db.commit()
        await db.refresh(club)
        return club

    return _make


@pytest.fixture
def add_member(db):
    async def _add(user: User, club: Club, statut: MembershipStatus = MembershipStatus.ACCEPTE) -> ParticipationMembre:
        membership = ParticipationMembre(user_id=user.id, club_id=club.id, statut=statut.value)
        db.add(membership)
        await db.commit()
        return membership

    return _add
