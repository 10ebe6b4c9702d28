# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import Response
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shonra_admin.core.security import hash_password
from shonra_admin.core.settings import Settings
from shonra_admin.db.session import Base
from shonra_admin.db.session import get_db as app_get_session
from shonra_admin.main import create_app
from shonra_admin.models import USER_STATUS_ACTIVE, AdminUser, Permission, Role

TEST_DB_URL = "sqlite://"

START_MS = 1_700_000_000_000
ADMIN_PERMISSIONS = ("users.unlock", "ip_blocking.manage", "categories.manage", "products.view")
ADMIN_PASSWORD = "Good!Passw0rd"
ADMIN_IP = "198.51.100.10"


class FakeClock:
    """Epoch-millisecond clock advanced explicitly by tests."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    session = SessionLocal()
    session.begin_nested()

    @event.listens_for(session, "after_transaction_end")
    def restart_savepoint(sess: Session, trans) -> None:  # pragma: no cover - SQLAlchemy internals
        if trans.nested and not getattr(trans._parent, "nested", False):
            session.begin_nested()

    try:
        yield session
    finally:
        event.remove(session, "after_transaction_end", restart_savepoint)
        session.close()

        if transaction.is_active:
            transaction.rollback()
        connection.close()

        # Ensure each test sees a clean database even if commits occurred.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def test_settings() -> Settings:
    """Settings isolated from the developer's environment and ``.env``."""
    return Settings(
        _env_file=None,
        NODE_ENV="test",
        DATABASE_URL=TEST_DB_URL,
        LOG_LEVEL="WARNING",
        SHOPEE_APP_ID="app-123",
        SHOPEE_APP_SECRET="secret-xyz",
        SHOPEE_API_URL="https://affiliate.test/graphql",
    )


@pytest.fixture()
def app(test_settings: Settings, fake_clock: FakeClock) -> FastAPI:
    return create_app(test_settings, clock=fake_clock)


@pytest.fixture(autouse=True)
def override_session_dependency(request: pytest.FixtureRequest) -> Iterator[None]:
    # Only API tests build an app; component tests never touch the dependency.
    if "app" not in request.fixturenames:
        yield
        return

    app: FastAPI = request.getfixturevalue("app")
    db_session: Session = request.getfixturevalue("db_session")

    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., AdminUser]:
    """Return a factory persisting admin users."""

    def _make_user(
        username: str,
        password: str | None = ADMIN_PASSWORD,
        *,
        role: Role | None = None,
        status: str = USER_STATUS_ACTIVE,
    ) -> AdminUser:
        user = AdminUser(
            username=username,
            password_hash=hash_password(password) if password is not None else None,
            full_name=username.title(),
            email=f"{username}@shonra.test",
            status=status,
            role=role,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture()
def admin_role(db_session: Session) -> Role:
    role = Role(
        name="admin",
        description="Full administrative access",
        permissions=[Permission(slug=slug, name=slug) for slug in ADMIN_PERMISSIONS],
    )
    db_session.add(role)
    db_session.commit()
    return role


@pytest.fixture()
def admin_user(make_user: Callable[..., AdminUser], admin_role: Role) -> AdminUser:
    return make_user("alice", ADMIN_PASSWORD, role=admin_role)


@pytest.fixture()
def login(client: TestClient) -> Callable[..., Response]:
    """Return a helper posting credentials from a given client IP."""

    def _login(username: str, password: str, ip: str = ADMIN_IP) -> Response:
        return client.post(
            "/api/auth/login",
            json={"username": username, "password": password},
            headers={"X-Forwarded-For": ip},
        )

    return _login


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    def _headers(token: str, ip: str = ADMIN_IP) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "X-Forwarded-For": ip}

    return _headers


@pytest.fixture()
def admin_token(admin_user: AdminUser, login: Callable[..., Response]) -> str:
    response = login(admin_user.username, ADMIN_PASSWORD)
    assert response.status_code == 200, response.text
    body: dict[str, Any] = response.json()
    return body["data"]["token"]
