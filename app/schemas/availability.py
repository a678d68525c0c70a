from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, field_validator


class FreeSlotsPayload(BaseModel):
    service_id: str = Field(min_length=1)
    date: dt.date
    duration_minutes: int | None = Field(default=None, gt=0)
    staff_id: str | None = None

    @field_validator("staff_id")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class FreeSlot(BaseModel):
    time: str
    available: bool = True
    staff_id: str
    staff_name: str
    start_time: dt.datetime
    end_time: dt.datetime


class FreeSlotsResponse(BaseModel):
    slots: list[FreeSlot]
    date: dt.date
    service_id: str
    duration_minutes: int
