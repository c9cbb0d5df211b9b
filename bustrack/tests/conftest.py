"""
Centralized Test Configuration.
"""

import asyncio
import json

import httpx
import pytest
from httpx import AsyncClient, ASGITransport
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from bustrack.app.main import app
from bustrack.app.db.session import get_db, Base, init_models
from bustrack.app.core.auth_messages import AuthErrorCode
from bustrack.app.core.jwt import create_access_token
from bustrack.app.core.redis_client import get_redis
from bustrack.app.models.enums import UserType
from bustrack.app.models.user import User
from bustrack.app.services.geocoding import ReverseGeocoder, get_geocoder
from bustrack.app.services.identity_provider import Identity, IdentityProviderError, get_identity_provider
from bustrack.app.services.tracking import TrackingRegistry
import bustrack.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

DRIVER_UID = "driver-uid-1"
DRIVER_EMAIL = "raj@bitbus.com"
STUDENT_UID = "student-uid-1"
STUDENT_EMAIL = "btech12345.22@bitmesra.ac.in"
GEOCODED_ADDRESS = "Main Building, BIT Mesra, Ranchi, Jharkhand, India"


# Mock Redis for reliability in CI/CD
class MockRedis:
    """
    In-memory stand-in for the async Redis client.

    Set `fail = True` to make every call raise a connection error.
    """

    def __init__(self):
        self.store = {}
        self.hashes = {}
        self.channels = {}  # channel -> set of MockPubSub
        self.fail = False
        self._closed = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("Redis unavailable")

    async def ping(self):
        self._check()
        return not self._closed

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.store[key] = value
        return True

    async def delete(self, key):
        self._check()
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        self._check()
        return 1 if key in self.store else 0

    async def hset(self, name, key, value):
        self._check()
        bucket = self.hashes.setdefault(name, {})
        created = 0 if key in bucket else 1
        bucket[key] = value
        return created

    async def hget(self, name, key):
        self._check()
        return self.hashes.get(name, {}).get(key)

    async def hgetall(self, name):
        self._check()
        return dict(self.hashes.get(name, {}))

    async def flushdb(self):
        self.store = {}
        self.hashes = {}

    async def publish(self, channel, message):
        self._check()
        receivers = list(self.channels.get(channel, ()))
        for pubsub in receivers:
            pubsub.deliver(channel, message)
        return len(receivers)

    def pubsub(self):
        return MockPubSub(self)

    async def aclose(self):
        self._closed = True


class MockPubSub:
    """Pub/Sub connection on MockRedis; messages queue until `listen` reads them."""

    def __init__(self, redis):
        self._redis = redis
        self.channels = set()
        self.closed = False
        self._messages = asyncio.Queue()

    def deliver(self, channel, data, kind="message"):
        self._messages.put_nowait({"type": kind, "channel": channel, "data": data})

    async def subscribe(self, *channels):
        self._redis._check()
        for channel in channels:
            self.channels.add(channel)
            self._redis.channels.setdefault(channel, set()).add(self)
            self.deliver(channel, len(self.channels), kind="subscribe")

    async def unsubscribe(self, *channels):
        for channel in channels or tuple(self.channels):
            self.channels.discard(channel)
            self._redis.channels.get(channel, set()).discard(self)

    async def listen(self):
        while self.channels:
            yield await self._messages.get()

    async def aclose(self):
        await self.unsubscribe()
        self.closed = True


class FakeIdentityProvider:
    """In-memory identity provider recording sign-outs and reset requests."""

    def __init__(self):
        self.accounts = {}  # email -> (uid, password, display_name)
        self.google_tokens = {}  # id_token -> Identity
        self.signed_out = []
        self.reset_requests = []
        self.next_error = None

    def add_account(self, uid, email, password, display_name=None):
        self.accounts[email.lower()] = (uid, password, display_name)

    def add_google_account(self, id_token, uid, email, display_name=None):
        self.google_tokens[id_token] = Identity(uid=uid, email=email, display_name=display_name)

    def _raise_pending(self):
        if self.next_error is not None:
            code, self.next_error = self.next_error, None
            raise IdentityProviderError(code)

    async def sign_in_with_password(self, email, password):
        self._raise_pending()
        account = self.accounts.get(email.lower())
        if account is None:
            raise IdentityProviderError(AuthErrorCode.USER_NOT_FOUND)
        uid, stored_password, display_name = account
        if password != stored_password:
            raise IdentityProviderError(AuthErrorCode.WRONG_PASSWORD)
        return Identity(uid=uid, email=email, display_name=display_name)

    async def sign_in_with_google(self, id_token):
        self._raise_pending()
        if id_token not in self.google_tokens:
            raise IdentityProviderError(AuthErrorCode.INVALID_CREDENTIAL)
        return self.google_tokens[id_token]

    async def create_user(self, email, password):
        self._raise_pending()
        if email.lower() in self.accounts:
            raise IdentityProviderError(AuthErrorCode.EMAIL_IN_USE)
        uid = f"uid-{len(self.accounts) + 1}"
        self.add_account(uid, email, password)
        return Identity(uid=uid, email=email)

    async def send_password_reset(self, email):
        self._raise_pending()
        if email.lower() not in self.accounts:
            raise IdentityProviderError(AuthErrorCode.USER_NOT_FOUND)
        self.reset_requests.append(email)

    async def sign_out(self, identity):
        self.signed_out.append(identity.uid)


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def geocoder_requests():
    return []


@pytest.fixture
async def geocoder(geocoder_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        geocoder_requests.append(request)
        return httpx.Response(200, json={"display_name": GEOCODED_ADDRESS})

    geocoder = ReverseGeocoder(base_url="https://geocode.test", transport=httpx.MockTransport(handler))
    yield geocoder
    await geocoder.close()


@pytest.fixture(autouse=True)
def apply_overrides(mock_redis, identity_provider, geocoder, monkeypatch):
    """Point the app at the in-memory database, Redis, provider and geocoder."""
    # Patch the global redis client used by token revocation
    monkeypatch.setattr(redis_client_module, "redis_client", mock_redis)

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.state.tracking_registry = TrackingRegistry()
    yield

    app.state.tracking_registry.stop_all()
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    await init_models(engine)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


def make_token(user_id: str, email: str, name: str = None, persistence: str = "session") -> str:
    return create_access_token({
        "sub": email,
        "user_id": user_id,
        "email": email,
        "name": name,
        "persistence": persistence,
    })


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def driver_profile(db_session):
    """A registered driver account."""
    profile = User(id=DRIVER_UID, email=DRIVER_EMAIL, name="Raj", user_type=UserType.DRIVER.value)
    db_session.add(profile)
    await db_session.commit()
    return profile


@pytest.fixture
def driver_token(driver_profile):
    return make_token(DRIVER_UID, DRIVER_EMAIL, "Raj")


@pytest.fixture
def driver_headers(driver_token):
    return auth_headers(driver_token)


@pytest.fixture
def student_token():
    return make_token(STUDENT_UID, STUDENT_EMAIL, "Asha")


@pytest.fixture
def student_headers(student_token):
    return auth_headers(student_token)


def seed_driver(mock_redis: MockRedis, driver_id: str = "drv-raj", name: str = "Raj", number: str = "9876543210") -> dict:
    """Put a driver profile straight into the registry hash."""
    profile = {"id": driver_id, "name": name, "number": number}
    mock_redis.hashes.setdefault("drivers", {})[driver_id] = json.dumps(profile)
    return profile


async def flush_pubsub():
    """Give subscription listener tasks a chance to deliver queued messages."""
    await asyncio.sleep(0.01)
