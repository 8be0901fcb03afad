"""
Pytest fixtures: a fresh SQLite file per test, seeded users/project/order,
service-call helpers and an httpx client wired to the same database.
"""
import inspect
import os
import tempfile
from types import SimpleNamespace

# settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["DB_TYPE"] = "sqlite"
os.environ.setdefault("SQLITE_PATH", os.path.join(tempfile.mkdtemp(), "app.db"))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from app.core.db import enable_sqlite_foreign_keys, get_db, get_session_factory, init_models
from app.core.notifications import InMemoryNotificationSink, get_notification_sink
from app.core.security import create_access_token
from app.models.project_models import Project
from app.models.purchase_order_models import PurchaseOrder, OrderStatus
from app.models.user_models import User, UserRole


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sink():
    return InMemoryNotificationSink()


def _user(email, role, **kwargs):
    return User(email=email, role=role, password_hash="not-a-real-hash", **kwargs)


@pytest.fixture
async def world(session_factory):
    """Owner, two vendors, an assigned and an unassigned employee, a client, an admin and one draft order."""
    async with session_factory() as session:
        owner = _user("owner@example.com", UserRole.owner, first_name="Olivia", last_name="Owner")
        vendor = _user("vendor@example.com", UserRole.vendor, company_name="Steel & Co")
        other_vendor = _user("other-vendor@example.com", UserRole.vendor, company_name="Cement Works")
        employee = _user("site-engineer@example.com", UserRole.employee, first_name="Esha")
        outsider = _user("outsider@example.com", UserRole.employee, first_name="Omar")
        client = _user("client@example.com", UserRole.client, first_name="Chris")
        admin = _user("admin@example.com", UserRole.admin)
        session.add_all([owner, vendor, other_vendor, employee, outsider, client, admin])
        await session.flush()

        project = Project(title="Riverside Tower", client_id=client.id)
        project.assigned_employees.append(employee)
        session.add(project)
        await session.flush()

        order = PurchaseOrder(
            order_number="PO-TEST-0001",
            project_id=project.id,
            vendor_id=vendor.id,
            created_by=owner.id,
            title="Rebar supply",
            description="TMT bars for the podium slab",
            items=[{"material_name": "TMT bar 12mm", "description": None, "quantity": 20, "unit": "tonne"}],
            currency="INR",
            status=OrderStatus.draft,
        )
        session.add(order)
        await session.commit()

        return SimpleNamespace(
            owner=owner.id,
            vendor=vendor.id,
            other_vendor=other_vendor.id,
            employee=employee.id,
            outsider=outsider.id,
            client=client.id,
            admin=admin.id,
            project=project.id,
            order=order.id,
        )


@pytest.fixture
def as_user(session_factory, sink):
    """
    Run a service call as ``user_id`` in its own session:

        await as_user(world.vendor, submit_quotation, world.order, QuotationCreate(amount=100))

    The acting user is passed right after the positional arguments, which is
    where every service expects it.
    """
    async def _call(user_id, fn, *args, **kwargs):
        async with session_factory() as session:
            user = await session.get(User, user_id)
            if "sink" in inspect.signature(fn).parameters:
                kwargs.setdefault("sink", sink)
            return await fn(session, *args, user, **kwargs)
    return _call


@pytest.fixture
def token_for(session_factory):
    async def _token(user_id):
        async with session_factory() as session:
            user = await session.get(User, user_id)
            return create_access_token(user)
    return _token


@pytest.fixture
def headers_for(token_for):
    async def _headers(user_id):
        return {"Authorization": f"Bearer {await token_for(user_id)}"}
    return _headers


@pytest.fixture
def app(session_factory, sink):
    from main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notification_sink] = lambda: sink
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
