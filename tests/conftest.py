"""Shared fixtures: in-memory database, fake WooCommerce API and an API client."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storehook.config import settings
from storehook.database import get_db
from storehook.dependencies.auth import get_current_user
from storehook.main import app
from storehook.models.base import Base
from storehook.models.organization import Organization
from storehook.models.store import Store
from storehook.services.woocommerce import WooCommerceClientFactory, get_client_factory

# Register every model on Base.metadata
from storehook.models.audit_log import AuditLog  # noqa: F401
from storehook.models.customer import Customer  # noqa: F401
from storehook.models.order import Order  # noqa: F401
from storehook.models.product import Product  # noqa: F401
from storehook.models.webhook import WebhookDelivery, WebhookRegistration  # noqa: F401

from helpers import OPERATOR, FakeWooCommerce, make_registration


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_BULK_BATCH_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "WEBHOOK_DEFAULT_CREATION_DELAY_SECONDS", 0)
    monkeypatch.setattr(settings, "WEBHOOK_ALLOW_UNSIGNED", False)
    monkeypatch.setattr(settings, "API_BASE_URL", "https://api.storehook.test")


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def woo():
    return FakeWooCommerce()


@pytest.fixture
async def client_factory(woo):
    factory = WooCommerceClientFactory(transport=httpx.MockTransport(woo.handler))
    yield factory
    await factory.aclose()


@pytest.fixture
async def client(session_factory, client_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: OPERATOR
    app.dependency_overrides[get_client_factory] = lambda: client_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()


@pytest.fixture
async def organization(db):
    org = Organization(name="Acme Corp", domain="acme.com")
    db.add(org)
    await db.commit()
    return org


@pytest.fixture
async def store(db, organization):
    store = Store(
        organization_id=organization.id,
        user_id="owner-1",
        name="Acme Shop",
        url="https://shop.acme.com",
        api_key="ck_test",
        secret_key="cs_test",
        is_active=True,
    )
    db.add(store)
    await db.commit()
    return store


@pytest.fixture
async def registration(db, store, woo):
    return await make_registration(db, store, woo)
