from __future__ import annotations

from fastapi import Depends, Header, Request, Response
from nanoid import generate
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models import Tenant
from app.services.db import get_db
from app.services.tenants import TenantService

SESSION_HEADER = "x-booking-session"
SESSION_ID_SIZE = 21


def get_tenant(
    request: Request,
    session: Session = Depends(get_db),
    x_tenant_id: str | None = Header(default=None, alias="x-tenant-id"),
) -> Tenant:
    """One resolver for both entry points: path slug first, then the injected header."""
    slug = request.path_params.get("tenant_slug")
    return TenantService(session=session).resolve(slug=slug, tenant_id=None if slug else x_tenant_id)


def get_booking_session_id(request: Request) -> str | None:
    settings = get_settings()
    return request.cookies.get(settings.session_cookie_name) or request.headers.get(SESSION_HEADER) or None


def mint_session_id() -> str:
    return generate(size=SESSION_ID_SIZE)


def set_session_cookie(response: Response, session_id: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
