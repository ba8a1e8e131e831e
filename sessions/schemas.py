import uuid
from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

from sessions.materials import LegacyMaterial, Material, StructuredMaterial, decode_materials
from sessions.models import SessionStatus


class SessionBook(BaseModel):
    tutor_id: uuid.UUID
    date: date
    slots: list[time] = Field(..., min_length=1, description="Start-of-hour times, one per booked hour")
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    title: str | None = Field(None, max_length=200)


class SessionRead(BaseModel):
    id: uuid.UUID
    tutor_id: uuid.UUID
    student_id: uuid.UUID | None = None
    title: str | None = None
    status: SessionStatus
    date: date
    slots: list[str]
    price: Decimal
    meeting_urls: list[str]
    materials: list[Material]
    cancel_reason: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("materials", mode="before")
    @classmethod
    def decode_stored_materials(cls, v):
        if v and isinstance(v[0], str):
            return decode_materials(v)
        return v


class SessionCancel(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class StartEligibilityRead(BaseModel):
    session_id: uuid.UUID
    status: SessionStatus
    can_start: bool
    start_at: datetime
    seconds_until_start: float | None = None


class MeetingUrlCreate(BaseModel):
    url: HttpUrl


class HostUrlRead(BaseModel):
    host_url: str


MaterialCreate = LegacyMaterial | StructuredMaterial
MaterialRead = LegacyMaterial | StructuredMaterial
