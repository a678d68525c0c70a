from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from loguru import logger
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import AppConfig, get_settings
from app.core.errors import (
    HoldExpired,
    HoldNotFound,
    NoStaffAvailable,
    SlotConflict,
    StorageError,
    TermsNotAccepted,
)
from app.models import (
    Appointment,
    AppointmentServiceItem,
    AppointmentSource,
    AppointmentStatus,
    Service,
    Tenant,
)
from app.schemas.appointment import (
    BookedAppointment,
    ConfirmBookingPayload,
    ConfirmBookingResponse,
    DirectBookingPayload,
    DirectBookingResponse,
)
from app.services.conflicts import classify_store_error
from app.services.crm import CRMService
from app.services.holds import HoldManager
from app.services.tenants import TenantService
from app.utils.time import add_minutes, localize


class AppointmentStore:
    """Appointment writes. Each call is one transaction: all rows or none."""

    def __init__(self, session: Session, settings: AppConfig | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def insert_single(
        self,
        *,
        tenant_id: str,
        customer_id: str | None,
        staff_id: str,
        service: Service,
        start_time: datetime,
        end_time: datetime,
        notes: str | None = None,
        source: AppointmentSource = AppointmentSource.ONLINE,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    ) -> Appointment:
        duration = int((end_time - start_time).total_seconds() // 60)
        appointment = Appointment(
            tenant_id=tenant_id,
            customer_id=customer_id,
            staff_id=staff_id,
            service_id=service.id,
            start_time=start_time,
            end_time=end_time,
            duration_minutes=duration,
            total_price=service.price or Decimal("0"),
            status=status,
            source=source,
            notes=notes,
        )
        appointment.services = [
            AppointmentServiceItem(
                service_id=service.id,
                position=0,
                duration_minutes=duration,
                price=service.price or Decimal("0"),
            )
        ]
        return self._commit(appointment)

    def create_multi(
        self,
        *,
        tenant_id: str,
        customer_id: str | None,
        staff_id: str,
        services: list[Service],
        start_time: datetime,
        notes: str | None = None,
        source: AppointmentSource = AppointmentSource.ONLINE,
    ) -> Appointment:
        """Insert the appointment and one service line per service, in order.

        Duration and price are the sums over ``services``; the first service is
        the primary one.
        """
        default = self.settings.default_service_duration_minutes
        lines = [
            AppointmentServiceItem(
                service_id=service.id,
                position=index,
                duration_minutes=service.duration_minutes or default,
                price=service.price or Decimal("0"),
            )
            for index, service in enumerate(services)
        ]
        total_duration = sum(line.duration_minutes for line in lines)
        total_price = sum((line.price for line in lines), Decimal("0"))

        appointment = Appointment(
            tenant_id=tenant_id,
            customer_id=customer_id,
            staff_id=staff_id,
            service_id=services[0].id,
            start_time=start_time,
            end_time=add_minutes(start_time, total_duration),
            duration_minutes=total_duration,
            total_price=total_price,
            status=AppointmentStatus.CONFIRMED,
            source=source,
            notes=notes,
        )
        appointment.services = lines
        return self._commit(appointment)

    def _commit(self, appointment: Appointment) -> Appointment:
        self.session.add(appointment)
        try:
            self.session.flush()
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            if classify_store_error(exc) is not None:
                logger.warning(
                    "Overlap constraint rejected appointment staff={staff_id} range={time_range}",
                    staff_id=appointment.staff_id,
                    time_range=appointment.time_range,
                )
                raise SlotConflict() from exc
            logger.exception("Appointment insert failed")
            raise StorageError() from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Appointment insert failed")
            raise StorageError() from exc

        logger.info(
            "Created appointment id={appointment_id} staff={staff_id} services={count}",
            appointment_id=appointment.id,
            staff_id=appointment.staff_id,
            count=len(appointment.services),
        )
        return appointment


class BookingManager:
    def __init__(
        self,
        *,
        hold_manager: HoldManager,
        crm_service: CRMService,
        store: AppointmentStore,
        tenant_service: TenantService,
        session: Session,
    ) -> None:
        self.hold_manager = hold_manager
        self.crm_service = crm_service
        self.store = store
        self.tenant_service = tenant_service
        self.session = session
        self.settings = get_settings()

    def confirm(self, tenant: Tenant, payload: ConfirmBookingPayload) -> ConfirmBookingResponse:
        customer_details = payload.customer
        if customer_details.terms_accepted is not True:
            raise TermsNotAccepted()

        hold_id = str(payload.hold_id)
        hold = self.hold_manager.get_hold(hold_id=hold_id, tenant=tenant)
        if not hold:
            raise HoldNotFound()

        if self.hold_manager.is_expired(hold):
            self.hold_manager.discard(hold_id=hold_id)
            self.session.commit()
            logger.info("Discarded expired hold id={hold_id}", hold_id=hold_id)
            raise HoldExpired()

        customer = self.crm_service.upsert_customer(
            tenant_id=tenant.id,
            email=customer_details.email,
            name=customer_details.name,
            phone=customer_details.phone,
            marketing_consent=customer_details.marketing_consent,
        )
        customer_id = customer.id
        staff_id = hold.staff_id
        start_time = hold.start_time
        service_ids = hold.service_ids
        duration_minutes = hold.duration_minutes
        hold_session_id = hold.session_id
        self.session.commit()

        services = self.tenant_service.get_services(tenant, service_ids)
        try:
            appointment = self._insert_from_hold(
                tenant,
                customer_id=customer_id,
                staff_id=staff_id,
                services=services,
                start_time=start_time,
                duration_minutes=duration_minutes,
                notes=customer_details.notes,
            )
        except SlotConflict as exc:
            exc.alternative_slots = self.hold_manager.alternative_slots(
                tenant, staff_id, start_time, add_minutes(start_time, duration_minutes), hold_session_id
            )
            raise

        self._release_confirmed_hold(hold_id)

        return ConfirmBookingResponse(
            appointment_id=appointment.id,
            status=appointment.status.value,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
        )

    def _insert_from_hold(
        self,
        tenant: Tenant,
        *,
        customer_id: str,
        staff_id: str,
        services: list[Service],
        start_time: datetime,
        duration_minutes: int,
        notes: str | None,
    ) -> Appointment:
        if len(services) > 1:
            return self.store.create_multi(
                tenant_id=tenant.id,
                customer_id=customer_id,
                staff_id=staff_id,
                services=services,
                start_time=start_time,
                notes=notes,
            )
        return self.store.insert_single(
            tenant_id=tenant.id,
            customer_id=customer_id,
            staff_id=staff_id,
            service=services[0],
            start_time=start_time,
            end_time=add_minutes(start_time, duration_minutes),
            notes=notes,
        )

    def book_direct(self, tenant: Tenant, payload: DirectBookingPayload) -> DirectBookingResponse:
        """Book a single service without a hold step."""
        service = self.tenant_service.get_services(tenant, [payload.service_id])[0]
        start_time = localize(payload.starts_at, tenant.timezone or self.settings.timezone)
        end_time = add_minutes(start_time, service.duration_minutes or self.settings.default_service_duration_minutes)

        if payload.staff_id:
            staff_id = self.tenant_service.get_staff(tenant, payload.staff_id).id
        else:
            staff_id = self._first_free_staff(tenant, start_time, end_time)

        customer = self.crm_service.upsert_customer(
            tenant_id=tenant.id,
            email=payload.customer.email,
            name=payload.customer.full_name,
            phone=payload.customer.phone,
        )
        customer_id = customer.id
        self.session.commit()

        try:
            appointment = self.store.insert_single(
                tenant_id=tenant.id,
                customer_id=customer_id,
                staff_id=staff_id,
                service=service,
                start_time=start_time,
                end_time=end_time,
                notes=f"Online booking from {payload.customer.full_name}",
            )
        except SlotConflict as exc:
            exc.alternative_slots = self.hold_manager.alternative_slots(tenant, staff_id, start_time, end_time)
            raise
        return DirectBookingResponse(
            appointment=BookedAppointment(
                id=appointment.id,
                status=appointment.status.value,
                starts_at=appointment.start_time,
                ends_at=appointment.end_time,
            )
        )

    def _first_free_staff(self, tenant: Tenant, start_time: datetime, end_time: datetime) -> str:
        candidates = self.tenant_service.bookable_staff(tenant)
        if not candidates:
            raise NoStaffAvailable()
        for staff in candidates:
            if not self.hold_manager.find_overlapping_appointments(tenant.id, staff.id, start_time, end_time):
                return staff.id
        # every candidate is busy; the overlap constraint reports the conflict
        return candidates[0].id

    def _release_confirmed_hold(self, hold_id: str) -> None:
        try:
            self._discard_with_retry(hold_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning(
                "Failed to delete hold {hold_id} after confirmation, it will expire: {error}",
                hold_id=hold_id,
                error=exc,
            )

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        reraise=True,
    )
    def _discard_with_retry(self, hold_id: str) -> None:
        try:
            self.hold_manager.discard(hold_id=hold_id)
            self.session.commit()
        except OperationalError:
            self.session.rollback()
            raise


def get_booking_manager(session: Session) -> BookingManager:
    return BookingManager(
        hold_manager=HoldManager(session=session),
        crm_service=CRMService(session=session),
        store=AppointmentStore(session=session),
        tenant_service=TenantService(session=session),
        session=session,
    )
