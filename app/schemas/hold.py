from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator


class CreateHoldPayload(BaseModel):
    service_id: str | None = None
    service_ids: list[str] = Field(default_factory=list)
    staff_id: str | None = None
    start_time: datetime
    duration_minutes: int | None = Field(default=None, gt=0)

    @field_validator("service_id", "staff_id")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _merge_service_ids(self) -> "CreateHoldPayload":
        # single-service clients send service_id, multi-service clients send service_ids
        if not self.service_ids and self.service_id:
            self.service_ids = [self.service_id]
        if not self.service_ids:
            raise ValueError("service_id or service_ids is required")
        self.service_id = self.service_ids[0]
        return self


class HoldResponse(BaseModel):
    hold_id: str
    expires_at: datetime
    session_id: str | None = None
    staff_id: str
    service_ids: list[str]
    start_time: datetime
    end_time: datetime


class ReleaseHoldResponse(BaseModel):
    success: bool = True
    released: int = 0
