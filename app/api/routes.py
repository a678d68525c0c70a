from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from loguru import logger
from sqlalchemy.orm import Session

from app.api.deps import get_booking_session_id, get_tenant, mint_session_id, set_session_cookie
from app.core.config import get_settings
from app.models import Tenant
from app.schemas import (
    ConfirmBookingPayload,
    ConfirmBookingResponse,
    CreateHoldPayload,
    DirectBookingPayload,
    DirectBookingResponse,
    FreeSlotsPayload,
    FreeSlotsResponse,
    HoldResponse,
    ReleaseHoldResponse,
    ServiceList,
    ServiceOut,
    StaffList,
    StaffOut,
    TenantInfo,
)
from app.services.appointments import get_booking_manager
from app.services.db import get_db
from app.services.holds import get_hold_manager
from app.services.tenants import get_tenant_service
from app.utils.time import localize

router = APIRouter()

SITE = "/api/site"
PUBLIC = "/{tenant_slug}/api/public"


@router.post(f"{SITE}/appointments/hold", response_model=HoldResponse)
@router.post(f"{PUBLIC}/appointments/hold", response_model=HoldResponse)
def create_hold(
    payload: CreateHoldPayload,
    request: Request,
    response: Response,
    tenant: Tenant = Depends(get_tenant),
    session: Session = Depends(get_db),
) -> HoldResponse:
    session_id = get_booking_session_id(request) or mint_session_id()
    start_time = localize(payload.start_time, tenant.timezone or get_settings().timezone)

    hold = get_hold_manager(session).create_hold(
        tenant,
        service_ids=payload.service_ids,
        staff_id=payload.staff_id,
        start_time=start_time,
        duration_minutes=payload.duration_minutes,
        session_id=session_id,
    )
    set_session_cookie(response, session_id)
    return HoldResponse(
        hold_id=hold.id,
        expires_at=hold.expires_at,
        session_id=session_id,
        staff_id=hold.staff_id,
        service_ids=hold.service_ids,
        start_time=hold.start_time,
        end_time=hold.end_time,
    )


@router.delete(f"{SITE}/appointments/hold", response_model=ReleaseHoldResponse)
@router.delete(f"{PUBLIC}/appointments/hold", response_model=ReleaseHoldResponse)
def release_hold(
    request: Request,
    tenant: Tenant = Depends(get_tenant),
    session: Session = Depends(get_db),
) -> ReleaseHoldResponse:
    released = get_hold_manager(session).release_hold(tenant, get_booking_session_id(request))
    return ReleaseHoldResponse(released=released)


@router.post(f"{SITE}/appointments/confirm", response_model=ConfirmBookingResponse)
@router.post(f"{PUBLIC}/appointments/confirm", response_model=ConfirmBookingResponse)
def confirm_booking(
    payload: ConfirmBookingPayload,
    tenant: Tenant = Depends(get_tenant),
    session: Session = Depends(get_db),
) -> ConfirmBookingResponse:
    result = get_booking_manager(session).confirm(tenant, payload)
    logger.info("Confirmed hold {hold_id} as appointment {appointment_id}", hold_id=payload.hold_id, appointment_id=result.appointment_id)
    return result


@router.post(f"{SITE}/appointments", response_model=DirectBookingResponse)
def book_appointment(
    payload: DirectBookingPayload,
    tenant: Tenant = Depends(get_tenant),
    session: Session = Depends(get_db),
) -> DirectBookingResponse:
    return get_booking_manager(session).book_direct(tenant, payload)


@router.post(f"{SITE}/free-slots", response_model=FreeSlotsResponse)
def free_slots(
    payload: FreeSlotsPayload,
    request: Request,
    tenant: Tenant = Depends(get_tenant),
    session: Session = Depends(get_db),
) -> FreeSlotsResponse:
    manager = get_hold_manager(session)
    services = manager.tenants.get_services(tenant, [payload.service_id])
    duration = manager.resolve_duration(services, payload.duration_minutes)
    slots = manager.slots.free_slots(
        tenant,
        day=payload.date,
        duration_minutes=duration,
        staff_id=payload.staff_id,
        exclude_session_id=get_booking_session_id(request),
    )
    return FreeSlotsResponse(slots=slots, date=payload.date, service_id=payload.service_id, duration_minutes=duration)


@router.get(f"{SITE}/tenant-info", response_model=TenantInfo)
def tenant_info(tenant: Tenant = Depends(get_tenant)) -> TenantInfo:
    return TenantInfo(
        tenant_id=tenant.id,
        tenant_slug=tenant.slug,
        name=tenant.name,
        email=tenant.email,
        phone=tenant.phone,
        address=tenant.address,
        timezone=tenant.timezone or get_settings().timezone,
    )


@router.get(f"{SITE}/services", response_model=ServiceList)
def list_services(tenant: Tenant = Depends(get_tenant), session: Session = Depends(get_db)) -> ServiceList:
    services = get_tenant_service(session).list_services(tenant)
    return ServiceList(services=[ServiceOut.model_validate(service) for service in services])


@router.get(f"{SITE}/staff", response_model=StaffList)
@router.get(f"{PUBLIC}/staff", response_model=StaffList)
def list_staff(tenant: Tenant = Depends(get_tenant), session: Session = Depends(get_db)) -> StaffList:
    staff = [StaffOut.model_validate(member) for member in get_tenant_service(session).bookable_staff(tenant)]
    return StaffList(staff=staff, count=len(staff))


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
