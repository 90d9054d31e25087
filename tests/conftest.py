"""
Global test fixtures and configuration.

This module provides base fixtures for all tests:
- In-memory database per test (aiosqlite, override with TEST_DATABASE_URL)
- Redis client (in-memory fake)
- Frozen clock, recording mailer and recording challenge janitor
- HTTP client with dependency overrides
- Base data fixtures (user, auth_headers)
"""

import os
from typing import AsyncGenerator

import pytest
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables BEFORE importing app
os.environ["MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["MFA_ENCRYPTION_KEY"] = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

from authcore.main import app
from authcore.api.dependencies import (
    get_auth_config,
    get_clock,
    get_db,
    get_janitor,
    get_mailer,
    get_redis,
)
from authcore.core.clock import FrozenClock
from authcore.core.config import AuthConfig
from authcore.db.base import Base
from authcore.services.mail import MailService

# Test database URL
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

TEST_PASSWORD = "Password123!"


# ==================== Fakes ====================

class RecordingMailer(MailService):
    """Keeps every message instead of sending it."""

    def __init__(self):
        self.sent = []

    async def send_verification_email(self, email, first_name, token):
        self.sent.append(("verification", email, token))

    async def send_password_reset_email(self, email, first_name, token):
        self.sent.append(("password_reset", email, token))

    async def send_welcome_email(self, email, first_name):
        self.sent.append(("welcome", email, None))

    def last_token(self, kind: str) -> str:
        return [token for sent_kind, _, token in self.sent if sent_kind == kind][-1]


class RecordingJanitor:
    def __init__(self):
        self.scheduled = 0

    def schedule(self):
        self.scheduled += 1

    async def drain(self):
        pass


# ==================== Configuration ====================

@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(
        secret_key="test-secret-key",
        issuer_name="AuthCore Test",
        mfa_encryption_key="00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff",
        bcrypt_rounds=4,
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ==================== Database ====================

@pytest.fixture(scope="function")
async def test_engine():
    """
    Fresh database per test.

    In-memory SQLite needs a single shared connection (StaticPool) so every
    session sees the same tables.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False} if TEST_DATABASE_URL.startswith("sqlite") else {},
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    session = session_factory()
    yield session
    await session.close()


# ==================== Redis ====================

@pytest.fixture(scope="function")
async def redis_client() -> AsyncGenerator[FakeAsyncRedis, None]:
    redis = FakeAsyncRedis()
    yield redis
    await redis.flushall()
    await redis.aclose()


# ==================== Collaborators ====================

@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def janitor() -> RecordingJanitor:
    return RecordingJanitor()


# ==================== FastAPI Client ====================

@pytest.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    redis_client: FakeAsyncRedis,
    auth_config: AuthConfig,
    clock: FrozenClock,
    mailer: RecordingMailer,
    janitor: RecordingJanitor,
) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client for testing FastAPI endpoints.

    Requests share the test's db_session, so objects loaded by the test
    reflect what the endpoints wrote.
    """

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        yield redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_auth_config] = lambda: auth_config
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_janitor] = lambda: janitor

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ==================== Base Data Fixtures ====================

@pytest.fixture
async def user(db_session: AsyncSession):
    """Active, verified user with password TEST_PASSWORD."""
    from tests.factories.user import UserFactory
    user = await UserFactory.create_async(db_session)
    await db_session.commit()
    return user


@pytest.fixture
def token_issuer(db_session: AsyncSession, auth_config: AuthConfig, clock: FrozenClock):
    from authcore.services.tokens import TokenIssuer
    return TokenIssuer(db_session, auth_config, clock)


@pytest.fixture
def auth_headers(user, token_issuer):
    token = token_issuer.create_access_token(user)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_auth_headers(token_issuer):
    def _make(some_user):
        return {"Authorization": f"Bearer {token_issuer.create_access_token(some_user)}"}
    return _make


@pytest.fixture
def enable_mfa(client, clock):
    """
    Run setup + verify-setup through the API.

    Returns (secret, backup_codes).
    """
    from tests.factories.otp import totp_now

    async def _enable(headers):
        setup = await client.post("/api/auth/mfa/setup", headers=headers)
        assert setup.status_code == 200, setup.text
        data = setup.json()
        verify = await client.post(
            "/api/auth/mfa/verify-setup",
            headers=headers,
            json={"code": totp_now(data["secret"], clock)},
        )
        assert verify.status_code == 200, verify.text
        return data["secret"], data["backup_codes"]

    return _enable


@pytest.fixture
def device_key():
    from tests.factories.biometric import DeviceKey
    return DeviceKey()
