from datetime import datetime, time
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

HANDLE_PATTERN = "^[a-z0-9-]+$"


class TutorProfileBase(BaseModel):
    public_handle: str = Field(..., max_length=50, pattern=HANDLE_PATTERN)
    specialty: str | None = Field(None, max_length=100)
    bio: str | None = None
    session_duration_minutes: int = Field(60, ge=15, le=180)
    hourly_rate: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


class TutorProfileCreate(TutorProfileBase):
    pass


class TutorProfileUpdate(BaseModel):
    public_handle: str | None = Field(None, max_length=50, pattern=HANDLE_PATTERN)
    specialty: str | None = Field(None, max_length=100)
    bio: str | None = None
    session_duration_minutes: int | None = Field(None, ge=15, le=180)
    hourly_rate: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


class TutorProfileRead(TutorProfileBase):
    full_name: str | None = None
    # Maintained from reviews, read-only
    rating: float = 0.0

    model_config = ConfigDict(from_attributes=True)


class AvailabilityPatternBase(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Sunday, 6=Saturday")
    start_time: time
    end_time: time
    is_active: bool = True

    @field_validator("end_time")
    @classmethod
    def end_after_start(cls, v: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if start is not None and v <= start:
            raise ValueError("end_time must be after start_time")
        return v


class AvailabilityPatternCreate(AvailabilityPatternBase):
    pass


class AvailabilityPatternUpdate(BaseModel):
    day_of_week: int | None = Field(None, ge=0, le=6)
    start_time: time | None = None
    end_time: time | None = None
    is_active: bool | None = None


class AvailabilityPatternRead(AvailabilityPatternBase):
    id: int

    model_config = ConfigDict(from_attributes=True)


class SlotRead(BaseModel):
    """One bookable block of a tutor's day."""

    start_datetime: datetime
    end_datetime: datetime
    available: bool
    pattern_id: int
