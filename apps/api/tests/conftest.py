from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from salesdesk import models  # noqa: F401
from salesdesk.core.auth import create_access_token
from salesdesk.core.config import get_settings
from salesdesk.core.database import Base, get_db
from salesdesk.core.security import hash_password
from salesdesk.identity.models import User
from salesdesk.main import app
from salesdesk.middleware.rate_limit import reset_rate_limiter
from salesdesk.platform.security.context import AuthContext


DEMO_PASSWORD = "secret123"

ROLE_USERS = {
    "admin": ("Ada", "Admin", "System Admin"),
    "manager": ("Max", "Manager", "Sales Manager"),
    "sarah": ("Sarah", "Seller", "Sales Executive"),
    "mike": ("Mike", "Seller", "Sales Executive"),
    "marketing": ("Mia", "Marketer", "Marketing Executive"),
    "support": ("Sam", "Support", "Support Executive"),
}


@dataclass
class Actors:
    users: dict[str, User]

    def __getitem__(self, name: str) -> User:
        return self.users[name]

    def headers(self, name: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(self.users[name])}"}

    def ctx(self, name: str) -> AuthContext:
        user = self.users[name]
        return AuthContext(user_id=user.id, role=user.role, email=user.email, correlation_id="corr-test")


@pytest.fixture(autouse=True)
def quiet_rate_limiter(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def actors(db_session: Session) -> Actors:
    password_hash = hash_password(DEMO_PASSWORD)
    users: dict[str, User] = {}
    for index, (name, (first_name, last_name, role)) in enumerate(ROLE_USERS.items()):
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=f"{name}@salesdesk.io",
            mobile=f"+1555000{index:04d}",
            password_hash=password_hash,
            role=role,
        )
        db_session.add(user)
        users[name] = user
    db_session.commit()
    for user in users.values():
        db_session.refresh(user)
    return Actors(users=users)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def create_lead(client: TestClient, actors: Actors) -> Callable[..., dict]:
    def _create(actor: str = "manager", **overrides: object) -> dict:
        payload = {
            "first_name": "Alice",
            "last_name": "Williams",
            "email": "alice@example.com",
            "mobile": "+15550301",
            "company": "Startup Co.",
            "value": 50000,
        }
        payload.update(overrides)
        response = client.post("/api/leads", json=payload, headers=actors.headers(actor))
        assert response.status_code == 201, response.text
        return response.json()["data"]["lead"]

    return _create
