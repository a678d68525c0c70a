from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from loguru import logger

from app.models import Staff, Tenant
from app.schemas.availability import FreeSlot
from app.utils.time import add_minutes, as_utc, utcnow

if TYPE_CHECKING:
    from app.services.holds import HoldManager


class SlotFinder:
    """Free slots on a fixed grid inside business hours, one entry per start time."""

    def __init__(self, hold_manager: HoldManager) -> None:
        self.hold_manager = hold_manager
        self.tenants = hold_manager.tenants
        self.settings = hold_manager.settings

    def free_slots(
        self,
        tenant: Tenant,
        *,
        day: date,
        duration_minutes: int,
        staff_id: str | None = None,
        exclude_session_id: str | None = None,
        now: datetime | None = None,
    ) -> list[FreeSlot]:
        now = now or utcnow()
        tz = ZoneInfo(tenant.timezone or self.settings.timezone)
        staff = [self.tenants.get_staff(tenant, staff_id)] if staff_id else self.tenants.bookable_staff(tenant)
        if not staff:
            return []

        opens_at = datetime.combine(day, time(hour=self.settings.business_open_hour), tzinfo=tz)
        closes_at = datetime.combine(day, time(hour=self.settings.business_close_hour), tzinfo=tz)
        window_start, window_end = as_utc(opens_at), as_utc(closes_at)
        busy = {
            member.id: self._busy_windows(tenant, member, window_start, window_end, now, exclude_session_id)
            for member in staff
        }

        slots: list[FreeSlot] = []
        step = timedelta(minutes=self.settings.slot_interval_minutes)
        start = window_start
        while add_minutes(start, duration_minutes) <= window_end:
            end = add_minutes(start, duration_minutes)
            if start >= now:
                member = next(
                    (m for m in staff if not any(b_start < end and b_end > start for b_start, b_end in busy[m.id])),
                    None,
                )
                if member is not None:
                    slots.append(
                        FreeSlot(
                            time=start.astimezone(tz).strftime("%H:%M"),
                            staff_id=member.id,
                            staff_name=f"{member.first_name} {member.last_name}".strip(),
                            start_time=start,
                            end_time=end,
                        )
                    )
            start += step

        logger.debug(
            "Found {count} free slot(s) tenant={tenant_id} day={day} duration={duration}",
            count=len(slots),
            tenant_id=tenant.id,
            day=day.isoformat(),
            duration=duration_minutes,
        )
        return slots

    def alternatives(
        self,
        tenant: Tenant,
        *,
        staff_id: str,
        start: datetime,
        end: datetime,
        exclude_session_id: str | None = None,
        now: datetime | None = None,
    ) -> list[FreeSlot]:
        """Free slots of the same staff member and length on the same local day, nearest first."""
        tz = ZoneInfo(tenant.timezone or self.settings.timezone)
        duration = int((end - start).total_seconds() // 60)
        slots = self.free_slots(
            tenant,
            day=start.astimezone(tz).date(),
            duration_minutes=duration,
            staff_id=staff_id,
            exclude_session_id=exclude_session_id,
            now=now,
        )
        nearest = sorted(slots, key=lambda slot: abs(slot.start_time - start))[: self.settings.alternative_slots_limit]
        return sorted(nearest, key=lambda slot: slot.start_time)

    def _busy_windows(
        self,
        tenant: Tenant,
        member: Staff,
        start: datetime,
        end: datetime,
        now: datetime,
        exclude_session_id: str | None,
    ) -> list[tuple[datetime, datetime]]:
        appointments = self.hold_manager.find_overlapping_appointments(tenant.id, member.id, start, end)
        holds = self.hold_manager.find_overlapping_holds(
            tenant.id, member.id, start, end, now=now, exclude_session_id=exclude_session_id
        )
        return [(item.start_time, item.end_time) for item in [*appointments, *holds]]
