from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.ext.orderinglist import ordering_list
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.utils.time import utcnow

from .base import Base, UTCDateTime, new_id


class Hold(Base):
    __tablename__ = "appointment_holds"
    __table_args__ = (
        Index("ix_appointment_holds_tenant_session", "tenant_id", "session_id"),
        Index("ix_appointment_holds_staff_expiry", "staff_id", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    staff_id: Mapped[str] = mapped_column(ForeignKey("staff.id", ondelete="CASCADE"), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    services: Mapped[list[HoldServiceItem]] = relationship(
        back_populates="hold",
        order_by="HoldServiceItem.position",
        collection_class=ordering_list("position"),
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def service_ids(self) -> list[str]:
        return [item.service_id for item in self.services]


class HoldServiceItem(Base):
    __tablename__ = "appointment_hold_services"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    hold_id: Mapped[str] = mapped_column(ForeignKey("appointment_holds.id", ondelete="CASCADE"), nullable=False)
    service_id: Mapped[str] = mapped_column(ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    hold: Mapped[Hold] = relationship(back_populates="services")
