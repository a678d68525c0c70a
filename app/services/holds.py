from __future__ import annotations

from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from app.core.config import AppConfig, get_settings
from app.core.errors import (
    InvalidRequest,
    NoActiveHold,
    NoStaffAvailable,
    SlotConflict,
    SlotHeldByOther,
    StaffNotFound,
)
from app.models import ACTIVE_STATUSES, Appointment, Hold, HoldServiceItem, Service, Tenant
from app.services.availability import SlotFinder
from app.services.tenants import TenantService
from app.utils.time import add_minutes, as_utc, utcnow


class HoldManager:
    def __init__(self, session: Session, settings: AppConfig | None = None) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.tenants = TenantService(session=session)
        self.slots = SlotFinder(self)

    @property
    def ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.hold_ttl_minutes)

    def create_hold(
        self,
        tenant: Tenant,
        *,
        service_ids: list[str],
        start_time: datetime,
        duration_minutes: int | None = None,
        staff_id: str | None = None,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> Hold:
        if not service_ids:
            raise InvalidRequest(details="service_ids must not be empty")

        services = self.tenants.get_services(tenant, service_ids)
        duration = self.resolve_duration(services, duration_minutes)
        start = as_utc(start_time)
        end = add_minutes(start, duration)
        now = now or utcnow()

        if staff_id:
            staff = self.tenants.get_staff(tenant, staff_id)
            self.ensure_slot_free(tenant, staff_id=staff.id, start=start, end=end, session_id=session_id, now=now)
            assigned_staff_id = staff.id
        else:
            assigned_staff_id = self._assign_staff(tenant, start=start, end=end, session_id=session_id, now=now)

        if session_id:
            released = self.release_session_holds(tenant, session_id)
            if released:
                logger.info("Abandoned {count} previous hold(s) for session={session_id}", count=released, session_id=session_id)

        hold = Hold(
            tenant_id=tenant.id,
            staff_id=assigned_staff_id,
            session_id=session_id,
            start_time=start,
            end_time=end,
            duration_minutes=duration,
            created_at=now,
            expires_at=now + self.ttl,
        )
        hold.services = [HoldServiceItem(service_id=service.id, position=index) for index, service in enumerate(services)]
        self.session.add(hold)
        self.session.flush()
        logger.info(
            "Created hold id={hold_id} staff={staff_id} start={start} end={end} expires={expires_at}",
            hold_id=hold.id,
            staff_id=assigned_staff_id,
            start=start.isoformat(),
            end=end.isoformat(),
            expires_at=hold.expires_at.isoformat(),
        )
        return hold

    def ensure_slot_free(
        self,
        tenant: Tenant,
        *,
        staff_id: str,
        start: datetime,
        end: datetime,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Best-effort early rejection; raises the first conflict found."""
        now = now or utcnow()
        if self.find_overlapping_appointments(tenant.id, staff_id, start, end):
            logger.warning(
                "Slot conflict source=confirmed_appointment staff={staff_id} start={start}",
                staff_id=staff_id,
                start=start.isoformat(),
            )
            raise SlotConflict(alternative_slots=self.alternative_slots(tenant, staff_id, start, end, session_id, now))

        if self.find_overlapping_holds(tenant.id, staff_id, start, end, now=now, exclude_session_id=session_id):
            logger.warning(
                "Slot conflict source=held_by_other staff={staff_id} start={start}",
                staff_id=staff_id,
                start=start.isoformat(),
            )
            raise SlotHeldByOther(
                retry_after=self.settings.hold_ttl_seconds,
                alternative_slots=self.alternative_slots(tenant, staff_id, start, end, session_id, now),
            )

    def alternative_slots(
        self,
        tenant: Tenant,
        staff_id: str,
        start: datetime,
        end: datetime,
        session_id: str | None = None,
        now: datetime | None = None,
    ) -> list[dict]:
        try:
            slots = self.slots.alternatives(
                tenant, staff_id=staff_id, start=start, end=end, exclude_session_id=session_id, now=now
            )
        except StaffNotFound:
            # staff left the bookable roster after the hold was taken
            return []
        return [slot.model_dump(mode="json") for slot in slots]

    def find_overlapping_appointments(
        self, tenant_id: str, staff_id: str, start: datetime, end: datetime
    ) -> list[Appointment]:
        stmt = select(Appointment).where(
            Appointment.tenant_id == tenant_id,
            Appointment.staff_id == staff_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.start_time < end,
            Appointment.end_time > start,
        )
        return list(self.session.scalars(stmt))

    def find_overlapping_holds(
        self,
        tenant_id: str,
        staff_id: str,
        start: datetime,
        end: datetime,
        *,
        now: datetime,
        exclude_session_id: str | None = None,
    ) -> list[Hold]:
        stmt = select(Hold).where(
            Hold.tenant_id == tenant_id,
            Hold.staff_id == staff_id,
            Hold.expires_at > now,
            Hold.start_time < end,
            Hold.end_time > start,
        )
        if exclude_session_id:
            stmt = stmt.where(or_(Hold.session_id.is_(None), Hold.session_id != exclude_session_id))
        return list(self.session.scalars(stmt))

    def get_hold(self, *, hold_id: str, tenant: Tenant | None = None) -> Hold | None:
        stmt = select(Hold).where(Hold.id == hold_id)
        if tenant is not None:
            stmt = stmt.where(Hold.tenant_id == tenant.id)
        return self.session.scalars(stmt).first()

    @staticmethod
    def is_expired(hold: Hold, now: datetime | None = None) -> bool:
        return hold.expires_at <= (now or utcnow())

    def release_hold(self, tenant: Tenant, session_id: str | None) -> int:
        if not session_id:
            raise NoActiveHold()
        released = self.release_session_holds(tenant, session_id)
        logger.info("Released {count} hold(s) for session={session_id}", count=released, session_id=session_id)
        return released

    def release_session_holds(self, tenant: Tenant, session_id: str) -> int:
        result = self.session.execute(
            delete(Hold)
            .where(Hold.tenant_id == tenant.id, Hold.session_id == session_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def discard(self, *, hold_id: str) -> int:
        result = self.session.execute(
            delete(Hold).where(Hold.id == hold_id).execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def resolve_duration(self, services: list[Service], duration_minutes: int | None) -> int:
        if duration_minutes is None:
            default = self.settings.default_service_duration_minutes
            duration_minutes = sum(service.duration_minutes or default for service in services)

        low = self.settings.hold_min_duration_minutes
        high = self.settings.hold_max_duration_minutes
        if not low <= duration_minutes <= high:
            raise InvalidRequest(details=f"duration_minutes must be between {low} and {high}")
        return duration_minutes

    def _assign_staff(
        self, tenant: Tenant, *, start: datetime, end: datetime, session_id: str | None, now: datetime
    ) -> str:
        candidates = self.tenants.bookable_staff(tenant)
        if not candidates:
            raise NoStaffAvailable()

        first_conflict: SlotConflict | None = None
        for staff in candidates:
            try:
                self.ensure_slot_free(tenant, staff_id=staff.id, start=start, end=end, session_id=session_id, now=now)
            except SlotConflict as exc:
                first_conflict = first_conflict or exc
                continue
            logger.debug("Auto-assigned staff={staff_id}", staff_id=staff.id)
            return staff.id

        raise first_conflict or NoStaffAvailable()


def get_hold_manager(session: Session) -> HoldManager:
    return HoldManager(session=session)
