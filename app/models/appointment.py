from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DDL, CheckConstraint, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text, event
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.utils.time import utcnow

from .base import Base, UTCDateTime, new_id


class AppointmentStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    REQUESTED = "requested"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentSource(str, enum.Enum):
    ONLINE = "online"
    MANUAL = "manual"


# statuses that occupy the staff member's calendar
ACTIVE_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.REQUESTED)

OVERLAP_CONSTRAINT = "appointments_no_overlap"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (CheckConstraint("end_time > start_time", name="ck_appointments_time_order"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id"), nullable=False, index=True)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus, name="appointment_status", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=AppointmentStatus.CONFIRMED,
    )
    source: Mapped[AppointmentSource] = mapped_column(
        SQLEnum(AppointmentSource, name="appointment_source", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=AppointmentSource.ONLINE,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)

    services: Mapped[list[AppointmentServiceItem]] = relationship(
        back_populates="appointment",
        order_by="AppointmentServiceItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
    )

    @property
    def service_ids(self) -> list[str]:
        return [item.service_id for item in self.services]

    @property
    def time_range(self) -> str:
        return f"[{self.start_time.isoformat()},{self.end_time.isoformat()})"


class AppointmentServiceItem(Base):
    __tablename__ = "appointment_services"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    appointment: Mapped[Appointment] = relationship(back_populates="services")


# Overlap constraint on active appointments. PostgreSQL gets a real exclusion
# constraint; SQLite gets triggers raising the same wording.
_ACTIVE_SQL = "('confirmed', 'requested')"

event.listen(
    Appointment.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist (staff_id WITH =, tstzrange(start_time, end_time, '[)') WITH &&) "
        f"WHERE (status IN {_ACTIVE_SQL})"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"CREATE TRIGGER IF NOT EXISTS {OVERLAP_CONSTRAINT}_insert BEFORE INSERT ON appointments "
        f"WHEN NEW.status IN {_ACTIVE_SQL} AND EXISTS ("
        "SELECT 1 FROM appointments WHERE staff_id = NEW.staff_id "
        f"AND status IN {_ACTIVE_SQL} "
        "AND start_time < NEW.end_time AND end_time > NEW.start_time) "
        "BEGIN SELECT RAISE(ABORT, 'conflicting key value violates exclusion constraint "
        f"\"{OVERLAP_CONSTRAINT}\"'); END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Appointment.__table__,
    "after_create",
    DDL(
        f"CREATE TRIGGER IF NOT EXISTS {OVERLAP_CONSTRAINT}_update "
        "BEFORE UPDATE OF staff_id, start_time, end_time, status ON appointments "
        f"WHEN NEW.status IN {_ACTIVE_SQL} AND EXISTS ("
        "SELECT 1 FROM appointments WHERE staff_id = NEW.staff_id AND id != NEW.id "
        f"AND status IN {_ACTIVE_SQL} "
        "AND start_time < NEW.end_time AND end_time > NEW.start_time) "
        "BEGIN SELECT RAISE(ABORT, 'conflicting key value violates exclusion constraint "
        f"\"{OVERLAP_CONSTRAINT}\"'); END"
    ).execute_if(dialect="sqlite"),
)
