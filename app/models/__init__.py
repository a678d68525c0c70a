from .appointment import ACTIVE_STATUSES, Appointment, AppointmentServiceItem, AppointmentSource, AppointmentStatus
from .base import Base
from .customer import Customer
from .hold import Hold, HoldServiceItem
from .tenant import Service, Staff, Tenant

__all__ = [
    "ACTIVE_STATUSES",
    "Appointment",
    "AppointmentServiceItem",
    "AppointmentSource",
    "AppointmentStatus",
    "Base",
    "Customer",
    "Hold",
    "HoldServiceItem",
    "Service",
    "Staff",
    "Tenant",
]
