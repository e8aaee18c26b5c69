import itertools
import os
import sys
from datetime import date
from pathlib import Path

os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.core.rate_limiter import rate_limiter
from app.core.security import get_password_hash
from app.db.base import Base
from app.db.models import Booking, Notification, ServiceProvider, User, UserRole  # noqa: F401
from app.db.session import get_db
from app.main import app
from app.schemas.actor import Actor
from app.schemas.booking import BookingCreateRequest
from app.schemas.provider import ProviderCreateRequest
from app.services.booking_service import accept_booking, create_booking
from app.services.notification_service import InMemoryNotificationDispatcher
from app.services.provider_service import create_provider_profile

TEST_DATABASE_URL = "sqlite+pysqlite:///:memory:"
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# A Monday: 09:00-17:00 in the default weekly template.
MONDAY = date(2026, 11, 2)
PASSWORD = "StrongPass123"


@pytest.fixture(autouse=True)
def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    rate_limiter.reset()


@pytest.fixture()
def client() -> TestClient:
    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def dispatcher() -> InMemoryNotificationDispatcher:
    return InMemoryNotificationDispatcher()


@pytest.fixture()
def make_user(db_session):
    counter = itertools.count(1)

    def factory(role: UserRole = UserRole.CLIENT) -> Actor:
        user = User(
            email=f"{role.value}{next(counter)}@example.com",
            hashed_password="x",
            role=role.value,
        )
        db_session.add(user)
        db_session.commit()
        return Actor(id=user.id, role=role)

    return factory


@pytest.fixture()
def make_provider(db_session, make_user):
    def factory(verified: bool = True, profession: str = "Plumber") -> tuple[Actor, ServiceProvider]:
        actor = make_user(UserRole.PROVIDER)
        provider = create_provider_profile(
            db_session,
            actor,
            ProviderCreateRequest(display_name="Pat Provider", profession=profession),
        )
        if verified:
            provider.documents_verified = True
            db_session.commit()
        return actor, provider

    return factory


@pytest.fixture()
def make_booking(db_session, make_user, make_provider, dispatcher):
    """Create a booking on MONDAY at 10:00, optionally accepted by the provider."""

    def factory(confirmed: bool = True, time: str = "10:00") -> tuple[Actor, Actor, Booking]:
        client_actor = make_user(UserRole.CLIENT)
        provider_actor, provider = make_provider()
        booking = create_booking(
            db_session,
            client_actor,
            BookingCreateRequest(provider_id=provider.id, date=MONDAY, time=time),
            dispatcher,
        )
        if confirmed:
            booking = accept_booking(db_session, provider_actor, booking.id, dispatcher)
        return client_actor, provider_actor, booking

    return factory


@pytest.fixture()
def auth_headers(client):
    def factory(email: str, role: str = "client") -> dict[str, str]:
        client.post("/auth/register", json={"email": email, "password": PASSWORD, "role": role})
        login = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        return {"Authorization": f"Bearer {login.json()['access_token']}"}

    return factory


@pytest.fixture()
def admin_headers(client):
    session = TestingSessionLocal()
    try:
        session.add(
            User(
                email="admin@example.com",
                hashed_password=get_password_hash(PASSWORD),
                role=UserRole.ADMIN.value,
            )
        )
        session.commit()
    finally:
        session.close()
    login = client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD})
    return {"Authorization": f"Bearer {login.json()['access_token']}"}
