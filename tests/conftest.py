"""
Shared pytest fixtures for CSRF Guard tests.

Provides:
- db_engine    – in-memory SQLite engine with all tables created
- client       – TestClient for the demo app, sessions stored in db_engine
- make_client  – builds a TestClient around a bare router (with the CSRF
                 middleware installed) for testing the library in isolation
- sign_cookie  – signs a token (and its SameSite policy) the way the
                 double-submit cookie is signed
- plant_csrf_cookie – puts a (signed) double-submit cookie into a client

All clients talk to https://testserver so Secure cookies round-trip.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from fastapi import APIRouter, FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from itsdangerous import URLSafeSerializer  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from src.csrf_guard.config import SECRET_KEY  # noqa: E402
from src.csrf_guard.context import COOKIE_SIGNING_SALT  # noqa: E402
from src.csrf_guard.cookie import DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME  # noqa: E402
from src.csrf_guard.middleware import CsrfCookieMiddleware  # noqa: E402
from src.demo_app.database import Base  # noqa: E402
from src.demo_app.main import app  # noqa: E402
from src.demo_app.sessions import SessionManager  # noqa: E402

BASE_URL = "https://testserver"


@pytest.fixture()
def db_engine():
    # StaticPool ensures all connections from this engine share the SAME
    # in-memory database (critical for SQLite :memory:).
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_manager(db_engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    return SessionManager(TestingSession)


@pytest.fixture()
def client(session_manager):
    with TestClient(app, base_url=BASE_URL, raise_server_exceptions=True) as c:
        # Lifespan has run by now; swap in the isolated store.
        app.state.session_manager = session_manager
        yield c


@pytest.fixture()
def make_client():
    def _make(router: APIRouter) -> TestClient:
        mini = FastAPI()
        mini.add_middleware(CsrfCookieMiddleware)
        mini.include_router(router)
        return TestClient(mini, base_url=BASE_URL)

    return _make


@pytest.fixture()
def sign_cookie():
    serializer = URLSafeSerializer(SECRET_KEY, salt=COOKIE_SIGNING_SALT)

    def _sign(token: str, samesite: str = "strict") -> str:
        return serializer.dumps([token, samesite])

    return _sign


@pytest.fixture()
def plant_csrf_cookie(sign_cookie):
    """Put a signed double-submit cookie holding *value* into *client*'s jar.

    http.cookiejar files host-only cookies for "testserver" under
    "testserver.local"; using the same domain lets server-side deletes clear it.
    """

    def _plant(client: TestClient, value: str, *, signed: bool = True) -> None:
        client.cookies.set(
            DOUBLE_SUBMIT_CSRF_TOKEN_COOKIE_NAME,
            sign_cookie(value) if signed else value,
            domain="testserver.local",
            path="/",
        )

    return _plant
