from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, StrictBool, field_validator


def normalize_phone(value: str | None) -> str | None:
    if not value:
        return value
    cleaned = value.strip().replace(" ", "").replace("-", "")
    if cleaned.startswith("+"):
        digits = "".join(ch for ch in cleaned[1:] if ch.isdigit())
        return "+" + digits if digits else None
    digits = "".join(ch for ch in cleaned if ch.isdigit())
    return digits or None


class CustomerDetails(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    phone: str
    notes: str | None = None
    marketing_consent: bool | None = None
    terms_accepted: StrictBool = False

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, value: str) -> str:
        normalized = normalize_phone(value)
        if not normalized:
            raise ValueError("phone is required")
        return normalized


class ConfirmBookingPayload(BaseModel):
    hold_id: UUID
    customer: CustomerDetails


class ConfirmBookingResponse(BaseModel):
    appointment_id: str
    status: str = "confirmed"
    message: str = "Appointment confirmed successfully"
    start_time: datetime | None = None
    end_time: datetime | None = None


class DirectBookingCustomer(BaseModel):
    full_name: str = Field(min_length=1)
    email: EmailStr
    phone: str | None = None

    @field_validator("phone")
    @classmethod
    def _normalize_phone(cls, value: str | None) -> str | None:
        return normalize_phone(value)


class DirectBookingPayload(BaseModel):
    service_id: str
    starts_at: datetime
    staff_id: str | None = None
    customer: DirectBookingCustomer


class BookedAppointment(BaseModel):
    id: str
    status: str
    starts_at: datetime
    ends_at: datetime


class DirectBookingResponse(BaseModel):
    success: bool = True
    appointment: BookedAppointment
