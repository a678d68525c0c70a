from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import HoldExpired, HoldNotFound, SlotConflict, TermsNotAccepted
from app.models import Appointment, AppointmentStatus, Customer, Hold, HoldServiceItem
from app.schemas import ConfirmBookingPayload, DirectBookingPayload
from app.services.appointments import BookingManager, get_booking_manager
from app.services.holds import HoldManager
from app.utils.time import utcnow

SLOT = datetime(2030, 6, 3, 12, 0, tzinfo=timezone.utc)


def _payload(hold_id: str, *, email: str = "lena@example.com", terms: bool | None = True, **customer) -> ConfirmBookingPayload:
    details = {"name": "Lena Vogt", "email": email, "phone": "+49 151 1234-5678", **customer}
    if terms is not None:
        details["terms_accepted"] = terms
    return ConfirmBookingPayload.model_validate({"hold_id": hold_id, "customer": details})


def _hold(db, salon, service_keys=("cut",), staff="anna", start=SLOT, minutes=None, session_id="sess-a", now=None) -> Hold:
    return HoldManager(session=db).create_hold(
        salon["tenant"],
        service_ids=[salon["services"][key].id for key in service_keys],
        staff_id=salon["staff"][staff].id,
        start_time=start,
        duration_minutes=minutes,
        session_id=session_id,
        now=now,
    )


def _count(db, model) -> int:
    return db.scalar(select(func.count()).select_from(model))


def test_confirm_single_service(db, salon):
    hold = _hold(db, salon, minutes=30)
    result = get_booking_manager(db).confirm(salon["tenant"], _payload(hold.id, notes="Short please"))

    appointment = db.get(Appointment, result.appointment_id)
    assert result.status == "confirmed"
    assert appointment.status is AppointmentStatus.CONFIRMED
    assert appointment.start_time == SLOT
    assert appointment.end_time == SLOT + timedelta(minutes=30)
    assert appointment.notes == "Short please"
    assert appointment.service_ids == [salon["services"]["cut"].id]
    assert _count(db, Hold) == 0

    customer = db.get(Customer, appointment.customer_id)
    assert (customer.first_name, customer.last_name) == ("Lena", "Vogt")
    assert customer.phone == "+4915112345678"


@pytest.mark.parametrize("order", [("color", "cut", "blowdry"), ("blowdry", "cut", "color")])
def test_confirm_multi_service_sums_durations(db, salon, order):
    hold = _hold(db, salon, service_keys=order)
    result = get_booking_manager(db).confirm(salon["tenant"], _payload(hold.id))

    appointment = db.get(Appointment, result.appointment_id)
    services = salon["services"]
    expected = sum(services[key].duration_minutes for key in order)
    assert appointment.end_time - appointment.start_time == timedelta(minutes=expected)
    assert appointment.duration_minutes == expected
    assert appointment.total_price == Decimal("140.00")
    assert appointment.service_id == services[order[0]].id
    assert appointment.service_ids == [services[key].id for key in order]
    assert [line.position for line in appointment.services] == [0, 1, 2]


def test_confirm_expired_hold_is_gone(db, salon):
    hold = _hold(db, salon, minutes=30, now=utcnow() - timedelta(minutes=30))
    db.commit()

    with pytest.raises(HoldExpired):
        get_booking_manager(db).confirm(salon["tenant"], _payload(hold.id))

    assert _count(db, Hold) == 0
    assert _count(db, Appointment) == 0
    assert _count(db, Customer) == 0


def test_confirm_unknown_hold(db, salon):
    with pytest.raises(HoldNotFound):
        get_booking_manager(db).confirm(salon["tenant"], _payload("6f1c1c1e-8d1b-4a44-9a53-2f3f5d1e0b10"))


def test_confirm_hold_of_another_tenant_is_not_found(db, salon, other_salon):
    hold = _hold(db, salon, minutes=30)
    db.commit()

    with pytest.raises(HoldNotFound):
        get_booking_manager(db).confirm(other_salon["tenant"], _payload(hold.id))


@pytest.mark.parametrize("terms", [False, None])
def test_terms_gate_touches_no_storage(terms):
    hold_manager, crm, store, tenants, session = (MagicMock() for _ in range(5))
    manager = BookingManager(
        hold_manager=hold_manager, crm_service=crm, store=store, tenant_service=tenants, session=session
    )
    with pytest.raises(TermsNotAccepted):
        manager.confirm(MagicMock(), _payload("6f1c1c1e-8d1b-4a44-9a53-2f3f5d1e0b10", terms=terms))

    for spy in (hold_manager, crm, store, tenants, session):
        assert spy.mock_calls == []


def test_store_constraint_prevents_double_booking(db, salon):
    """Holds are advisory: two holds on one slot still yield one appointment."""
    first = _hold(db, salon, minutes=30, session_id="sess-a")
    # a racing hold that slipped past the advisory check
    racing = Hold(
        tenant_id=salon["tenant"].id,
        staff_id=salon["staff"]["anna"].id,
        session_id="sess-b",
        start_time=SLOT + timedelta(minutes=15),
        end_time=SLOT + timedelta(minutes=45),
        duration_minutes=30,
        expires_at=utcnow() + timedelta(minutes=10),
    )
    racing.services = [HoldServiceItem(service_id=salon["services"]["cut"].id, position=0)]
    db.add(racing)
    db.commit()

    manager = get_booking_manager(db)
    manager.confirm(salon["tenant"], _payload(first.id))
    with pytest.raises(SlotConflict) as excinfo:
        manager.confirm(salon["tenant"], _payload(racing.id, email="jonas@example.com"))

    assert _count(db, Appointment) == 1
    assert [slot["time"] for slot in excinfo.value.alternative_slots] == ["13:30", "14:30", "14:45"]


def test_repeat_booking_reuses_customer(db, salon):
    manager = get_booking_manager(db)
    first = manager.confirm(salon["tenant"], _payload(_hold(db, salon, minutes=30).id))
    second_hold = _hold(db, salon, minutes=30, start=SLOT + timedelta(hours=2))
    second = manager.confirm(salon["tenant"], _payload(second_hold.id, name="Lena Sommer", phone="999"))

    a = db.get(Appointment, first.appointment_id)
    b = db.get(Appointment, second.appointment_id)
    assert a.customer_id == b.customer_id
    assert _count(db, Customer) == 1
    customer = db.scalars(select(Customer).execution_options(populate_existing=True)).one()
    assert customer.last_name == "Sommer"
    assert customer.phone == "999"


def test_hold_cleanup_failure_does_not_fail_confirmation(db, salon, monkeypatch):
    hold = _hold(db, salon, minutes=30)
    manager = get_booking_manager(db)

    def broken_discard(**_kwargs):
        raise SQLAlchemyError("hold table unavailable")

    monkeypatch.setattr(manager.hold_manager, "discard", broken_discard)
    result = manager.confirm(salon["tenant"], _payload(hold.id))

    assert result.status == "confirmed"
    assert _count(db, Appointment) == 1
    assert _count(db, Hold) == 1


def test_book_direct_localizes_and_picks_free_staff(db, salon):
    manager = get_booking_manager(db)
    payload = DirectBookingPayload.model_validate(
        {
            "service_id": salon["services"]["blowdry"].id,
            "starts_at": "2030-06-03T09:00:00",
            "customer": {"full_name": "Jonas Weber", "email": "Jonas@Example.com"},
        }
    )
    first = manager.book_direct(salon["tenant"], payload)
    second = manager.book_direct(salon["tenant"], payload)

    # 09:00 Berlin summer time
    assert first.appointment.starts_at == datetime(2030, 6, 3, 7, 0, tzinfo=timezone.utc)
    assert first.appointment.ends_at - first.appointment.starts_at == timedelta(minutes=45)
    staff = {db.get(Appointment, booked.appointment.id).staff_id for booked in (first, second)}
    assert staff == {salon["staff"]["anna"].id, salon["staff"]["ben"].id}

    customer = db.scalars(select(Customer)).one()
    assert customer.email == "jonas@example.com"
    with pytest.raises(SlotConflict):
        manager.book_direct(salon["tenant"], payload)
