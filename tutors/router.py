import uuid
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_async_session
from errors import NotFound, ValidationError
from reviews import service as review_service
from reviews.schemas import TutorRatingRead, TutorReviewRead
from sessions.models import BookedSlot
from sessions.time_gate import service_timezone
from tutors.models import AvailabilityPattern, TutorProfile
from tutors.schemas import (
    AvailabilityPatternCreate,
    AvailabilityPatternRead,
    AvailabilityPatternUpdate,
    SlotRead,
    TutorProfileCreate,
    TutorProfileRead,
    TutorProfileUpdate,
)
from users.auth import get_current_tutor
from users.models import User

router = APIRouter()


async def _profile_of(session: AsyncSession, tutor_id: uuid.UUID) -> TutorProfile | None:
    result = await session.execute(select(TutorProfile).where(TutorProfile.user_id == tutor_id))
    return result.scalar_one_or_none()


async def _ensure_handle_free(session: AsyncSession, handle: str) -> None:
    result = await session.execute(select(TutorProfile.user_id).where(TutorProfile.public_handle == handle))
    if result.scalar_one_or_none() is not None:
        raise ValidationError("Public handle already taken")


def _profile_read(profile: TutorProfile, full_name: str | None) -> TutorProfileRead:
    # full_name lives on the user row
    response = TutorProfileRead.model_validate(profile)
    response.full_name = full_name
    return response


async def _own_pattern(session: AsyncSession, pattern_id: int, tutor_id: uuid.UUID) -> AvailabilityPattern:
    result = await session.execute(
        select(AvailabilityPattern).where(
            AvailabilityPattern.id == pattern_id,
            AvailabilityPattern.tutor_id == tutor_id,
        )
    )
    pattern = result.scalar_one_or_none()
    if not pattern:
        raise NotFound("Availability pattern not found")
    return pattern


# Own profile

@router.post("/me", response_model=TutorProfileRead)
async def create_my_profile(
    profile_data: TutorProfileCreate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    if await _profile_of(session, user.id):
        raise ValidationError("Profile already exists")
    await _ensure_handle_free(session, profile_data.public_handle)

    profile = TutorProfile(**profile_data.model_dump(), user_id=user.id)
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    return _profile_read(profile, user.full_name)


@router.get("/me", response_model=TutorProfileRead)
async def get_my_profile(
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    profile = await _profile_of(session, user.id)
    if not profile:
        raise NotFound("Profile not found")
    return _profile_read(profile, user.full_name)


@router.put("/me", response_model=TutorProfileRead)
async def update_my_profile(
    profile_update: TutorProfileUpdate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    profile = await _profile_of(session, user.id)
    if not profile:
        raise NotFound("Profile not found")

    changes = profile_update.model_dump(exclude_unset=True)
    new_handle = changes.get("public_handle")
    if new_handle and new_handle != profile.public_handle:
        await _ensure_handle_free(session, new_handle)

    for field, value in changes.items():
        setattr(profile, field, value)
    await session.commit()
    await session.refresh(profile)
    return _profile_read(profile, user.full_name)


# Bookable slots for a day

@router.get("/availability", response_model=list[SlotRead])
async def get_availability_slots(
    tutor_id: uuid.UUID,
    date: date,
    session: AsyncSession = Depends(get_async_session),
):
    tutor = await _profile_of(session, tutor_id)
    if not tutor:
        raise NotFound("Tutor not found")

    # weekday() is Mon=0; patterns use Sun=0
    day_of_week = (date.weekday() + 1) % 7
    patterns = (
        await session.execute(
            select(AvailabilityPattern).where(
                AvailabilityPattern.tutor_id == tutor_id,
                AvailabilityPattern.day_of_week == day_of_week,
                AvailabilityPattern.is_active,
            )
        )
    ).scalars().all()

    # Hours held by scheduled/ongoing sessions; canceled sessions have released theirs
    tz = service_timezone()
    held = (
        await session.execute(
            select(BookedSlot.start_time).where(BookedSlot.tutor_id == tutor_id, BookedSlot.date == date)
        )
    ).scalars().all()
    held_hours = [datetime.combine(date, start, tzinfo=tz) for start in held]

    step = timedelta(minutes=tutor.session_duration_minutes)
    slots = []
    for pattern in patterns:
        slot_start = datetime.combine(date, pattern.start_time, tzinfo=tz)
        pattern_end = datetime.combine(date, pattern.end_time, tzinfo=tz)
        while slot_start + step <= pattern_end:
            slot_end = slot_start + step
            taken = any(slot_start < hour + timedelta(hours=1) and slot_end > hour for hour in held_hours)
            slots.append(
                SlotRead(start_datetime=slot_start, end_datetime=slot_end, available=not taken, pattern_id=pattern.id)
            )
            slot_start = slot_end

    return slots


# Public profile, rating & reviews

@router.get("/{public_handle}", response_model=TutorProfileRead)
async def get_tutor_profile(public_handle: str, session: AsyncSession = Depends(get_async_session)):
    row = (
        await session.execute(
            select(TutorProfile, User.full_name)
            .join(User, TutorProfile.user_id == User.id)
            .where(TutorProfile.public_handle == public_handle)
        )
    ).first()
    if not row:
        raise NotFound("Tutor not found")
    return _profile_read(*row)


@router.get("/{tutor_id}/rating", response_model=TutorRatingRead)
async def get_tutor_rating(tutor_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    rating = await review_service.get_tutor_rating(session, tutor_id)
    return TutorRatingRead(tutor_id=tutor_id, rating=rating)


@router.get("/{tutor_id}/reviews", response_model=list[TutorReviewRead])
async def get_tutor_reviews(tutor_id: uuid.UUID, session: AsyncSession = Depends(get_async_session)):
    return await review_service.get_reviews_for_tutor(session, tutor_id)


# Availability patterns

@router.post("/me/availability", response_model=AvailabilityPatternRead)
async def create_availability_pattern(
    pattern_data: AvailabilityPatternCreate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    if not await _profile_of(session, user.id):
        raise ValidationError("Tutor profile must be created first")

    pattern = AvailabilityPattern(**pattern_data.model_dump(), tutor_id=user.id)
    session.add(pattern)
    await session.commit()
    await session.refresh(pattern)
    return pattern


@router.get("/{public_handle}/availability", response_model=list[AvailabilityPatternRead])
async def get_tutor_availability(public_handle: str, session: AsyncSession = Depends(get_async_session)):
    tutor_id = (
        await session.execute(select(TutorProfile.user_id).where(TutorProfile.public_handle == public_handle))
    ).scalar_one_or_none()
    if tutor_id is None:
        raise NotFound("Tutor not found")

    result = await session.execute(
        select(AvailabilityPattern).where(AvailabilityPattern.tutor_id == tutor_id, AvailabilityPattern.is_active)
    )
    return result.scalars().all()


@router.put("/me/availability/{pattern_id}", response_model=AvailabilityPatternRead)
async def update_availability_pattern(
    pattern_id: int,
    pattern_update: AvailabilityPatternUpdate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    pattern = await _own_pattern(session, pattern_id, user.id)
    for field, value in pattern_update.model_dump(exclude_unset=True).items():
        setattr(pattern, field, value)

    await session.commit()
    await session.refresh(pattern)
    return pattern


@router.delete("/me/availability/{pattern_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_availability_pattern(
    pattern_id: int,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    pattern = await _own_pattern(session, pattern_id, user.id)
    await session.delete(pattern)
    await session.commit()
