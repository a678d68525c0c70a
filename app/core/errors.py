from __future__ import annotations

import enum
from typing import Any


class ConflictSource(str, enum.Enum):
    HELD_BY_OTHER = "held_by_other"
    CONFIRMED_APPOINTMENT = "confirmed_appointment"


class BookingError(Exception):
    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, error: str | None = None, *, details: Any | None = None) -> None:
        self.error = error or self.error
        self.details = details
        super().__init__(self.error)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.error}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def headers(self) -> dict[str, str] | None:
        return None


class InvalidRequest(BookingError):
    status_code = 400
    error = "Invalid request"


class TermsNotAccepted(InvalidRequest):
    error = "Terms must be accepted"


class NoStaffAvailable(InvalidRequest):
    error = "No staff available"


class TenantNotFound(BookingError):
    status_code = 404
    error = "Tenant not found"


class HoldNotFound(BookingError):
    status_code = 404
    error = "Hold not found or expired"


class NoActiveHold(HoldNotFound):
    error = "No active hold found"


class ServiceNotFound(BookingError):
    status_code = 404
    error = "Service not found"


class StaffNotFound(BookingError):
    status_code = 404
    error = "Staff member not found"


class HoldExpired(BookingError):
    status_code = 410
    error = "Hold has expired"


class SlotConflict(BookingError):
    """The slot overlaps a confirmed or requested appointment."""

    status_code = 409
    error = "Slot is no longer available"
    source = ConflictSource.CONFIRMED_APPOINTMENT

    def __init__(
        self,
        error: str | None = None,
        *,
        retry_after: int | None = None,
        alternative_slots: list[dict[str, Any]] | None = None,
        details: Any | None = None,
    ) -> None:
        super().__init__(error, details=details)
        self.retry_after = retry_after
        self.alternative_slots = alternative_slots or []

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["conflict"] = self.source.value
        payload["retryable"] = True
        payload["alternative_slots"] = self.alternative_slots
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload

    def headers(self) -> dict[str, str] | None:
        if self.retry_after is None:
            return None
        return {"Retry-After": str(self.retry_after)}


class SlotHeldByOther(SlotConflict):
    error = "Slot is being held by another customer"
    source = ConflictSource.HELD_BY_OTHER


class StorageError(BookingError):
    status_code = 500
    error = "Internal server error"
