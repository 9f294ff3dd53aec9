"""
Pytest configuration and fixtures
"""

import os

# Must be set before the application modules read their settings
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("WHATSAPP_API_URL", "https://whatsapp.test/v1")
os.environ.setdefault("WHATSAPP_API_TOKEN", "test-token")

import pytest
import pytest_asyncio
import httpx
from decimal import Decimal
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool
from core.database import build_session_factory
from core.security import create_access_token
from models import Base, Branch, User, Package, PackagePrice, PartnerWallet
from models.base import UserRole
from services.settings import invalidate_settings_cache

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,  # One shared in-memory database per test
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with build_session_factory(test_engine)() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; start every test cold"""
    invalidate_settings_cache()
    yield
    invalidate_settings_cache()


# ============================================================================
# Domain fixtures
# ============================================================================

@pytest_asyncio.fixture
async def branch(db_session):
    row = Branch(code="LPG", name="Lampung", tax_rate=Decimal("0.11"), tax_inclusive=False)
    db_session.add(row)
    await db_session.commit()
    return row


@pytest_asyncio.fixture
async def other_branch(db_session):
    row = Branch(code="JKT", name="Jakarta", tax_rate=Decimal("0.11"), tax_inclusive=True)
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
def make_user(db_session):
    """Factory creating a committed user with the given role"""
    counter = {"n": 0}

    async def _make(role: UserRole, branch=None, is_active: bool = True) -> User:
        counter["n"] += 1
        user = User(
            email=f"{role.value}{counter['n']}@example.com",
            full_name=f"{role.value.title()} {counter['n']}",
            phone="081234567890",
            role=role,
            branch_id=branch.id if branch is not None else None,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


@pytest_asyncio.fixture
async def super_admin(make_user):
    return await make_user(UserRole.SUPER_ADMIN)


@pytest_asyncio.fixture
async def branch_admin(make_user, branch):
    return await make_user(UserRole.BRANCH_ADMIN, branch)


@pytest_asyncio.fixture
async def mitra(make_user, branch):
    return await make_user(UserRole.MITRA, branch)


@pytest_asyncio.fixture
async def guide(make_user, branch):
    return await make_user(UserRole.GUIDE, branch)


@pytest_asyncio.fixture
async def customer(make_user, branch):
    return await make_user(UserRole.CUSTOMER, branch)


@pytest_asyncio.fixture
async def package(db_session, branch):
    """Package with two price tiers: 1-4 pax and 5-20 pax"""
    row = Package(branch_id=branch.id, name="Pahawang Island Hopping", destination="Pahawang")
    db_session.add(row)
    await db_session.flush()
    db_session.add_all([
        PackagePrice(package_id=row.id, min_pax=1, max_pax=4,
                     price_publish=Decimal("500000"), price_nta=Decimal("400000"),
                     price_weekend=Decimal("600000")),
        PackagePrice(package_id=row.id, min_pax=5, max_pax=20,
                     price_publish=Decimal("450000"), price_nta=Decimal("360000")),
    ])
    await db_session.commit()
    await db_session.refresh(row, attribute_names=["prices", "branch"])
    return row


@pytest_asyncio.fixture
async def wallet(db_session, mitra):
    row = PartnerWallet(mitra_id=mitra.id, balance=Decimal("2000000"), credit_limit=Decimal("0"))
    db_session.add(row)
    await db_session.commit()
    return row


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def client(db_session) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client against the app with the test database"""
    from api.main import app
    from api.dependencies import get_db

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    """Build an Authorization header for a user"""
    return auth_headers
