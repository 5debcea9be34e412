"""
Procurement Orders - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite file database (aiosqlite), so tests can open
several sessions against the same data when they need to.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Callable, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app import models  # noqa: F401
from app.database import Base, get_async_session
from app.dependencies import get_notification_sink
from app.models.product import Product
from app.models.user import Role, User
from app.services.notification_service import NotificationDispatcher
from app.services.order_service import OrderService
from main import app
from tests.fixtures.orders import MARCH_10, RecordingSink, create_user


# ===========================================
# DATABASE FIXTURES
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Fresh SQLite file database per test."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_service(db_session: AsyncSession, sink: RecordingSink) -> Callable[..., OrderService]:
    """Build an OrderService; defaults to the shared session, recording sink and March clock."""

    def _make(
        clock: datetime = MARCH_10,
        session: Optional[AsyncSession] = None,
        notification_sink=None,
        **kwargs,
    ) -> OrderService:
        return OrderService(
            session or db_session,
            notifier=NotificationDispatcher(notification_sink or sink),
            clock=lambda: clock,
            **kwargs,
        )

    return _make


@pytest.fixture
def order_service(make_service) -> OrderService:
    return make_service()


# ===========================================
# DATA FIXTURES
# ===========================================

@dataclass
class TenantStaff:
    tenant_id: UUID
    cost_center_id: UUID
    requester: User
    other_requester: User
    supervisor: User
    procurement_officer: User
    executive: User
    operations: User


@pytest_asyncio.fixture
async def staff(db_session: AsyncSession) -> TenantStaff:
    """One user per role in a single tenant; requesters sit in one cost center."""
    tenant_id = uuid4()
    cost_center_id = uuid4()
    return TenantStaff(
        tenant_id=tenant_id,
        cost_center_id=cost_center_id,
        requester=await create_user(db_session, Role.REQUESTER, tenant_id, "req@acme.test", cost_center_id),
        other_requester=await create_user(db_session, Role.REQUESTER, tenant_id, "req2@acme.test", cost_center_id),
        supervisor=await create_user(db_session, Role.SUPERVISOR, tenant_id, "sup@acme.test", cost_center_id),
        procurement_officer=await create_user(db_session, Role.PROCUREMENT_OFFICER, tenant_id, "po@acme.test"),
        executive=await create_user(db_session, Role.EXECUTIVE_ADMIN, tenant_id, "exec@acme.test"),
        operations=await create_user(db_session, Role.OPERATIONS, tenant_id, "ops@acme.test"),
    )


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, Role.SUPER_ADMIN, None, "root@platform.test")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    """Executive admin of a different tenant."""
    return await create_user(db_session, Role.EXECUTIVE_ADMIN, uuid4(), "exec@other.test")


@dataclass
class Catalog:
    pencil: Product        # 10.00
    desk: Product          # 4347.82 -> grand total 4999.99
    workstation: Product   # 21739.13 -> grand total 25000.00
    uniform_pack: Product  # 782.61 -> grand total 900.00
    server_rack: Product   # 50000.00 -> grand total 57500.00
    discontinued: Product  # not available


@pytest_asyncio.fixture
async def products(db_session: AsyncSession) -> Catalog:
    def product(sku: str, name: str, price: str, available: bool = True) -> Product:
        return Product(id=uuid4(), sku=sku, name=name, price=Decimal(price), is_available=available)

    catalog = Catalog(
        pencil=product("PEN-HB", "HB Pencil", "10.00"),
        desk=product("DSK-01", "Standing Desk", "4347.82"),
        workstation=product("WKS-01", "CAD Workstation", "21739.13"),
        uniform_pack=product("UNI-PK", "School Uniform Pack", "782.61"),
        server_rack=product("SRV-42", "Server Rack", "50000.00"),
        discontinued=product("OLD-01", "Fax Machine", "300.00", available=False),
    )
    db_session.add_all([
        catalog.pencil, catalog.desk, catalog.workstation,
        catalog.uniform_pack, catalog.server_rack, catalog.discontinued,
    ])
    await db_session.commit()
    return catalog


# ===========================================
# API CLIENT
# ===========================================

@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, sink: RecordingSink) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session and notification overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_notification_sink] = lambda: sink

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
