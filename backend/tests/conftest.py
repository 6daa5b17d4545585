"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.config import settings
from backend.app.core.jwt import create_access_token
from backend.app.core.redis_client import get_redis
import backend.app.core.redis_client as redis_client_module
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.models.building import Building, RoomType
from backend.app.models.room import Room
from backend.app.models.tenant import Tenant
from backend.app.models.contract import Contract
from backend.app.models.residency_enums import ContractStatus, TenantStatus
from backend.app.models.utility import UtilityType, UtilityRate
from backend.app.services.directory import DirectoryError, DirectoryUser, get_directory_client

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

ADMIN_GROUP = settings.ldap_admin_group_dn
ACCESS_GROUP = settings.ldap_allowed_group_dn


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


class FakeDirectory:
    """In-memory stand-in for the LDAP directory."""

    def __init__(self):
        self.accounts = {}

    def add_user(self, username, password, groups, display_name=None, disabled=False):
        self.accounts[username] = {
            "password": password,
            "disabled": disabled,
            "profile": DirectoryUser(
                username=username,
                display_name=display_name or username,
                email=f"{username}@rpphosp.local",
                groups=groups,
            ),
        }

    async def authenticate(self, username, password):
        if not username or not password:
            raise DirectoryError(DirectoryError.MISSING_CREDENTIALS, "Username and password are required")
        account = self.accounts.get(username)
        if account is None:
            raise DirectoryError(DirectoryError.USER_NOT_FOUND, "User not found in directory")
        if account["disabled"]:
            raise DirectoryError(DirectoryError.ACCOUNT_DISABLED, "Account is disabled")
        if account["password"] != password:
            raise DirectoryError(DirectoryError.INVALID_CREDENTIALS, "Invalid username or password")
        return account["profile"]


mock_redis = MockRedis()
fake_directory = FakeDirectory()


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by token revocation
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_directory_client] = lambda: fake_directory
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await mock_redis.flushdb()
    fake_directory.accounts = {}

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Uploaded files land in a per-test directory."""
    monkeypatch.setattr(settings, "upload_dir", str(tmp_path))
    return tmp_path


@pytest.fixture
def directory():
    return fake_directory


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


async def make_token(db_session, username: str, role: UserRole) -> str:
    """Create a local user row and a session token for it."""
    user = User(username=username, display_name=username, role=role, is_active=True)
    db_session.add(user)
    await db_session.commit()
    return create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "name": user.display_name,
        "role": role.value,
    })


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def admin_headers(db_session):
    return auth(await make_token(db_session, "admin.it", UserRole.ADMIN))


@pytest.fixture
async def staff_headers(db_session):
    return auth(await make_token(db_session, "dorm.staff", UserRole.SUPER_USER))


@pytest.fixture
async def regular_headers(db_session):
    return auth(await make_token(db_session, "tenant.user", UserRole.REGULAR))


async def seed_utilities(db_session, electric_rate: float = 8.0, water_rate: float = 18.0,
                         effective_date: date = date(2024, 1, 1)):
    """Electric and water reference rows with one rate each."""
    electric = UtilityType(code="electric", name_th="ค่าไฟฟ้า")
    water = UtilityType(code="water", name_th="ค่าน้ำประปา")
    db_session.add_all([electric, water])
    await db_session.flush()
    db_session.add_all([
        UtilityRate(utility_type_id=electric.id, rate_per_unit=electric_rate, effective_date=effective_date),
        UtilityRate(utility_type_id=water.id, rate_per_unit=water_rate, effective_date=effective_date),
    ])
    await db_session.commit()
    return electric, water


async def seed_room(db_session, room_number: str = "101", max_occupants: int = 2) -> Room:
    building = Building(name_th="อาคาร 1", name_en="Building 1")
    room_type = RoomType(name=f"type-{room_number}", max_occupants=max_occupants)
    db_session.add_all([building, room_type])
    await db_session.flush()
    room = Room(building_id=building.id, room_type_id=room_type.id, room_number=room_number, floor_no=1)
    db_session.add(room)
    await db_session.commit()
    return room


async def seed_tenant(db_session, room: Room = None, first_name: str = "สมชาย",
                      ad_username: str = None, start_date: date = date(2025, 1, 1)) -> Tenant:
    """Tenant, with an active contract when ``room`` is given."""
    tenant = Tenant(
        first_name_th=first_name,
        last_name_th="ใจดี",
        ad_username=ad_username,
        status=TenantStatus.ACTIVE if room else TenantStatus.INACTIVE,
    )
    db_session.add(tenant)
    await db_session.flush()
    if room is not None:
        db_session.add(Contract(
            tenant_id=tenant.id, room_id=room.id, start_date=start_date, status=ContractStatus.ACTIVE
        ))
    await db_session.commit()
    return tenant


JPEG = ("meter.jpg", b"\xff\xd8\xff\xe0fake-jpeg", "image/jpeg")


async def upload(client, headers, room_id, utility, value, year=2568, month=1, file=JPEG):
    """Upload a meter photo through the API."""
    return await client.post(
        "/v1/meter-photos",
        data={
            "room_id": str(room_id),
            "utility_type": utility,
            "meter_value": str(value),
            "reading_date": "2025-01-31",
            "year": str(year),
            "month": str(month),
        },
        files={"file": file},
        headers=headers
    )
