from .appointment import (
    BookedAppointment,
    ConfirmBookingPayload,
    ConfirmBookingResponse,
    CustomerDetails,
    DirectBookingCustomer,
    DirectBookingPayload,
    DirectBookingResponse,
)
from .availability import FreeSlot, FreeSlotsPayload, FreeSlotsResponse
from .hold import CreateHoldPayload, HoldResponse, ReleaseHoldResponse
from .tenant import ServiceList, ServiceOut, StaffList, StaffOut, TenantInfo

__all__ = [
    "BookedAppointment",
    "ConfirmBookingPayload",
    "ConfirmBookingResponse",
    "CustomerDetails",
    "DirectBookingCustomer",
    "DirectBookingPayload",
    "DirectBookingResponse",
    "FreeSlot",
    "FreeSlotsPayload",
    "FreeSlotsResponse",
    "CreateHoldPayload",
    "HoldResponse",
    "ReleaseHoldResponse",
    "ServiceList",
    "ServiceOut",
    "StaffList",
    "StaffOut",
    "TenantInfo",
]
