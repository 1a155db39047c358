"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read at import time, so the environment is prepared first
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRICE_BASIC", "price_basic")
os.environ.setdefault("STRIPE_PRICE_PREMIUM", "price_premium")

import httpx
import pytest
import stripe
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from auth_utils import create_jwt, hash_password
from crud.user import UserRepository
from database import get_db, Base
from database_models import ActivityLog, Subscription, User
from main import app

TEST_PASSWORD = "StrongPass123!"


def stripe_object(values: dict):
    """Build a Stripe API object the way the Stripe client returns it."""
    return stripe.StripeObject.construct_from(values, "sk_test_123")


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_jwt(str(user.id))}"}


@pytest.fixture
async def test_engine(tmp_path):
    """
    Engine on a per-test SQLite file with all tables created.
    NullPool keeps every connection on the running event loop.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated database session for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
async def client(session_factory):
    """
    Async HTTP client with the test database wired into get_db.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """
    Factory creating a committed user.

    Usage: await make_user(roles=["admin"], stripe_id="cus_123")
    """
    async def _make_user(email: str = "user@example.com", roles=("user",), **fields) -> User:
        async with session_factory() as session:
            repo = UserRepository(session)
            user = await repo.create_user({
                "email": email,
                "hashed_password": hash_password(TEST_PASSWORD),
                "roles": list(roles),
            })
            if fields:
                await repo.update_user(user, fields)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def make_subscription(session_factory):
    """
    Factory creating a committed local subscription for a user.
    """
    async def _make_subscription(user: User, **fields) -> Subscription:
        values = {
            "user_id": user.id,
            "type": "default",
            "stripe_id": "sub_123",
            "stripe_status": "active",
            "stripe_price": "price_basic",
            "quantity": 1,
        }
        values.update(fields)
        async with session_factory() as session:
            subscription = Subscription(**values)
            session.add(subscription)
            await session.commit()
            return subscription

    return _make_subscription


@pytest.fixture
def fetch_user(session_factory):
    """Load a user in a fresh session, with roles and subscriptions."""
    async def _fetch_user(user_id: int) -> User:
        async with session_factory() as session:
            return await UserRepository(session).get_user_by_id(user_id)

    return _fetch_user


@pytest.fixture
def fetch_activities(session_factory):
    """Activity descriptions and properties logged for a user, oldest first."""
    async def _fetch_activities(user_id: int) -> list:
        async with session_factory() as session:
            result = await session.execute(
                select(ActivityLog).where(ActivityLog.causer_id == user_id).order_by(ActivityLog.id)
            )
            return [(entry.description, entry.properties) for entry in result.scalars().all()]

    return _fetch_activities
