from __future__ import annotations

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.errors import ServiceNotFound, StaffNotFound, TenantNotFound
from app.models import Service, Staff, Tenant


class TenantService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def resolve(self, *, slug: str | None = None, tenant_id: str | None = None) -> Tenant:
        if slug:
            stmt = select(Tenant).where(Tenant.slug == slug)
        elif tenant_id:
            stmt = select(Tenant).where(Tenant.id == tenant_id)
        else:
            raise TenantNotFound()

        tenant = self.session.scalars(stmt).first()
        if not tenant or not tenant.is_active:
            logger.debug("Tenant lookup failed slug={slug} id={tenant_id}", slug=slug, tenant_id=tenant_id)
            raise TenantNotFound()
        return tenant

    def list_services(self, tenant: Tenant) -> list[Service]:
        stmt = (
            select(Service)
            .where(Service.tenant_id == tenant.id, Service.is_active.is_(True))
            .order_by(Service.name)
        )
        return list(self.session.scalars(stmt))

    def get_services(self, tenant: Tenant, service_ids: list[str]) -> list[Service]:
        """Return the tenant's active services in the order of ``service_ids``."""
        if not service_ids:
            raise ServiceNotFound()
        stmt = select(Service).where(
            Service.tenant_id == tenant.id,
            Service.id.in_(set(service_ids)),
            Service.is_active.is_(True),
        )
        by_id = {service.id: service for service in self.session.scalars(stmt)}
        missing = [service_id for service_id in service_ids if service_id not in by_id]
        if missing:
            raise ServiceNotFound(details={"service_ids": missing})
        return [by_id[service_id] for service_id in service_ids]

    def bookable_staff(self, tenant: Tenant) -> list[Staff]:
        stmt = (
            select(Staff)
            .where(
                Staff.tenant_id == tenant.id,
                Staff.is_active.is_(True),
                Staff.can_book_appointments.is_(True),
            )
            .order_by(Staff.first_name, Staff.last_name, Staff.id)
        )
        return list(self.session.scalars(stmt))

    def get_staff(self, tenant: Tenant, staff_id: str) -> Staff:
        staff = self.session.get(Staff, staff_id)
        if not staff or staff.tenant_id != tenant.id or not staff.is_active or not staff.can_book_appointments:
            raise StaffNotFound()
        return staff


def get_tenant_service(session: Session) -> TenantService:
    return TenantService(session=session)
