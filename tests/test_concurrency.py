import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event, func, select
from sqlalchemy.orm import sessionmaker

from app.core.errors import SlotConflict
from app.models import Appointment, Base, Hold, HoldServiceItem, Service, Staff, Tenant
from app.schemas import ConfirmBookingPayload, ConfirmBookingResponse
from app.services.appointments import get_booking_manager
from app.services.db import enable_sqlite_foreign_keys
from app.utils.time import utcnow

SLOT = datetime(2030, 6, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    enable_sqlite_foreign_keys(engine)

    # take the write lock at BEGIN so concurrent writers queue instead of failing the lock upgrade
    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


def _seed(engine) -> tuple[str, list[str]]:
    """One salon, one stylist and two overlapping holds from different sessions."""
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        tenant = Tenant(slug="studio-mila", name="Studio Mila", timezone="Europe/Berlin")
        session.add(tenant)
        session.flush()
        service = Service(tenant_id=tenant.id, name="Haircut", duration_minutes=30, price=Decimal("35.00"))
        staff = Staff(tenant_id=tenant.id, first_name="Anna", last_name="Berg")
        session.add_all([service, staff])
        session.flush()

        holds = []
        for offset, session_id in ((0, "sess-a"), (15, "sess-b")):
            start = SLOT + timedelta(minutes=offset)
            hold = Hold(
                tenant_id=tenant.id,
                staff_id=staff.id,
                session_id=session_id,
                start_time=start,
                end_time=start + timedelta(minutes=30),
                duration_minutes=30,
                expires_at=utcnow() + timedelta(minutes=10),
            )
            hold.services = [HoldServiceItem(service_id=service.id, position=0)]
            holds.append(hold)
        session.add_all(holds)
        session.commit()
        return tenant.id, [hold.id for hold in holds]
    finally:
        session.close()


def test_concurrent_confirms_of_overlapping_holds_book_once(file_engine):
    tenant_id, hold_ids = _seed(file_engine)
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    barrier = threading.Barrier(len(hold_ids))
    outcomes: list[object] = []

    def confirm(hold_id: str, email: str) -> None:
        session = factory()
        try:
            tenant = session.get(Tenant, tenant_id)
            session.commit()
            payload = ConfirmBookingPayload.model_validate(
                {
                    "hold_id": hold_id,
                    "customer": {"name": "Lena Vogt", "email": email, "phone": "0151 1234567", "terms_accepted": True},
                }
            )
            barrier.wait(timeout=10)
            outcomes.append(get_booking_manager(session).confirm(tenant, payload))
        except Exception as exc:  # collected and asserted below
            outcomes.append(exc)
        finally:
            session.close()

    threads = [
        threading.Thread(target=confirm, args=(hold_id, f"guest{index}@example.com"))
        for index, hold_id in enumerate(hold_ids)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert len(outcomes) == 2
    assert sum(isinstance(outcome, SlotConflict) for outcome in outcomes) == 1, outcomes
    assert sum(isinstance(outcome, ConfirmBookingResponse) for outcome in outcomes) == 1, outcomes

    session = factory()
    try:
        assert session.scalar(select(func.count()).select_from(Appointment)) == 1
    finally:
        session.close()
