import os

# Settings are read at import time; configure them before importing app.*
os.environ.setdefault("JWT_ACCESS_SECRET", "test_access_secret_0123456789abcdefghijkl")
os.environ.setdefault("JWT_REFRESH_SECRET", "test_refresh_secret_0123456789abcdefghijk")
os.environ.setdefault("DATABASE_URL", "sqlite://")
# Cheap hashing parameters for the suite.
os.environ.setdefault("PASSWORD_HASH_TIME_COST", "1")
os.environ.setdefault("PASSWORD_HASH_MEMORY_COST", "1024")

from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.base import Base
from app.core import config as app_config
from app.core.security import hash_password
from app.core.tokens import TokenCodec

# Import models so they register with SQLAlchemy metadata.
from app.models.user import User  # noqa: F401
from app.models.refresh_token import RefreshToken  # noqa: F401

from app.core.database import get_db
from app.services.refresh_tokens import SessionStore
from app.services.sessions import SessionLifecycle


@pytest.fixture(scope="session")
def db_engine():
    # In-memory SQLite for fast, isolated tests.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def db_session(db_engine):
    # Important: because we use an in-memory SQLite DB with StaticPool, the DB
    # persists across tests. Reset schema per test to avoid cross-test coupling.
    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def _reset_mutable_settings():
    """
    Tests sometimes tweak global settings (app_config.settings.*). Because that object is
    process-global, we must restore values after each test to avoid cross-test coupling.
    """
    keys = [
        "JWT_ACCESS_SECRET",
        "JWT_REFRESH_SECRET",
        "JWT_ACCESS_EXPIRES_IN",
        "JWT_REFRESH_EXPIRES_IN",
        "REFRESH_TOKEN_ROTATION",
        "PASSWORD_MIN_LENGTH",
        "FRONTEND_URL",
        "PUBLIC_BASE_URL",
        "GOOGLE_CLIENT_ID",
        "GOOGLE_CLIENT_SECRET",
        "GOOGLE_CALLBACK_URL",
        "GITHUB_CLIENT_ID",
        "GITHUB_CLIENT_SECRET",
        "GITHUB_CALLBACK_URL",
    ]
    original = {k: getattr(app_config.settings, k) for k in keys}
    try:
        yield
    finally:
        for k, v in original.items():
            setattr(app_config.settings, k, v)


@pytest.fixture()
def codec():
    return TokenCodec.from_settings(app_config.settings)


@pytest.fixture()
def store(db_session):
    return SessionStore(db_session, hash_key=app_config.settings.JWT_REFRESH_SECRET)


@pytest.fixture()
def lifecycle(db_session, store, codec):
    return SessionLifecycle(db_session, store=store, codec=codec)


@pytest.fixture()
def app(db_session):
    import app.main as main

    fastapi_app = main.app

    def override_get_db():
        yield db_session
    fastapi_app.dependency_overrides[get_db] = override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def users(db_session):
    """
    Two password users plus one provider-only (GitHub) user.
    """
    user_a = User(
        email="test@example.com",
        name="Test User",
        password_hash=hash_password("test_password_123"),
    )
    user_b = User(
        email="other@example.com",
        name="Other User",
        password_hash=hash_password("test_password_123"),
    )
    user_gh = User(
        email="octo@example.com",
        name="Octo Cat",
        github_id="583231",
    )
    db_session.add_all([user_a, user_b, user_gh])
    db_session.commit()
    for u in (user_a, user_b, user_gh):
        db_session.refresh(u)
    return user_a, user_b, user_gh


@pytest.fixture()
def auth_headers(codec):
    """
    Build an Authorization header for a user row.

    Usage:
        headers = auth_headers(user)
    """
    from app.core.tokens import TokenClaims

    def _headers(user: User) -> dict[str, str]:
        token = codec.sign_access(TokenClaims(user_id=user.id, email=user.email)).token
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture()
def client_for(app, auth_headers):
    """
    Context manager yielding a client that sends a bearer token for `user`.

    Usage:
        with client_for(user) as c:
            ...
    """

    @contextmanager
    def _client_for(user: User):
        with TestClient(app, headers=auth_headers(user)) as c:
            yield c

    return _client_for
