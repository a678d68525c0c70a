"""Shared fixtures.

Uses an in-memory SQLite engine so tests run without PostgreSQL; the overlap
constraint is installed as triggers by the same metadata hooks.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.models import Base, Service, Staff, Tenant
from app.services.db import enable_sqlite_foreign_keys, get_db

engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
enable_sqlite_foreign_keys(engine)
TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def override_get_db():
    session = TestSession()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Direct DB session for test setup/assertions."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def salon(db):
    tenant = Tenant(slug="studio-mila", name="Studio Mila", timezone="Europe/Berlin", email="hello@studio-mila.test")
    db.add(tenant)
    db.flush()

    services = {
        "cut": Service(tenant_id=tenant.id, name="Haircut", duration_minutes=30, price=Decimal("35.00")),
        "color": Service(tenant_id=tenant.id, name="Color", duration_minutes=90, price=Decimal("80.00")),
        "blowdry": Service(tenant_id=tenant.id, name="Blow-dry", duration_minutes=45, price=Decimal("25.00")),
        "retired": Service(tenant_id=tenant.id, name="Perm", duration_minutes=120, price=Decimal("90.00"), is_active=False),
    }
    staff = {
        "anna": Staff(tenant_id=tenant.id, first_name="Anna", last_name="Berg"),
        "ben": Staff(tenant_id=tenant.id, first_name="Ben", last_name="Kraus"),
        "desk": Staff(tenant_id=tenant.id, first_name="Carla", last_name="Desk", can_book_appointments=False),
    }
    db.add_all([*services.values(), *staff.values()])
    db.commit()

    return {"tenant": tenant, "services": services, "staff": staff}


@pytest.fixture
def other_salon(db):
    tenant = Tenant(slug="barber-nord", name="Barber Nord", timezone="Europe/Berlin")
    db.add(tenant)
    db.flush()
    service = Service(tenant_id=tenant.id, name="Beard trim", duration_minutes=20, price=Decimal("15.00"))
    staff = Staff(tenant_id=tenant.id, first_name="Ole", last_name="Lind")
    db.add_all([service, staff])
    db.commit()
    return {"tenant": tenant, "service": service, "staff": staff}


@pytest.fixture
def client():
    """HTTP client with its own cookie jar (one browser)."""
    test_client = TestClient(app)
    yield test_client
    test_client.close()


@pytest.fixture
def make_client():
    """Factory for independent clients, one per simulated customer."""
    clients: list[TestClient] = []

    def _make() -> TestClient:
        c = TestClient(app)
        clients.append(c)
        return c

    yield _make
    for c in clients:
        c.close()
