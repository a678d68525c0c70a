from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class TenantInfo(BaseModel):
    tenant_id: str
    tenant_slug: str
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    timezone: str


class ServiceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    duration_minutes: int | None = None
    price: Decimal


class StaffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    color: str | None = None


class ServiceList(BaseModel):
    services: list[ServiceOut]


class StaffList(BaseModel):
    staff: list[StaffOut]
    count: int
