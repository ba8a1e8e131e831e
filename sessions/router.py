import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_async_session
from meetings.client import MeetingProvider, get_meeting_provider
from payments.gateway import PaymentGateway, get_payment_gateway
from sessions import service
from sessions.materials import decode_materials
from sessions.models import SessionStatus
from sessions.schemas import (
    HostUrlRead,
    MaterialCreate,
    MaterialRead,
    MeetingUrlCreate,
    SessionBook,
    SessionCancel,
    SessionRead,
    StartEligibilityRead,
)
from users.auth import current_active_user, get_current_tutor
from users.models import User

router = APIRouter()


@router.post("/", response_model=SessionRead, status_code=201)
async def book_session(
    booking: SessionBook,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.book_session(
        session,
        student_id=user.id,
        tutor_id=booking.tutor_id,
        session_date=booking.date,
        slots=booking.slots,
        price=booking.price,
        title=booking.title,
    )


@router.get("/me", response_model=List[SessionRead])
async def get_my_sessions(
    status: Optional[SessionStatus] = None,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    # Sessions where the user is the student OR the tutor
    return await service.list_user_sessions(session, user.id, status)


@router.get("/{session_id}", response_model=SessionRead)
async def get_session(
    session_id: uuid.UUID,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.get_session_for_participant(session, session_id, user.id)


@router.get("/{session_id}/start-eligibility", response_model=StartEligibilityRead)
async def get_start_eligibility(
    session_id: uuid.UUID,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    tutoring_session = await service.get_session_for_participant(session, session_id, user.id)
    return service.start_eligibility(tutoring_session)


@router.post("/{session_id}/start", response_model=SessionRead)
async def start_session(
    session_id: uuid.UUID,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
    meetings: MeetingProvider = Depends(get_meeting_provider),
):
    return await service.start_session(session, session_id, user.id, meetings=meetings)


@router.post("/{session_id}/complete", response_model=SessionRead)
async def complete_session(
    session_id: uuid.UUID,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.complete_session(session, session_id, user.id)


@router.post("/{session_id}/cancel", response_model=SessionRead)
async def cancel_session(
    session_id: uuid.UUID,
    cancel: SessionCancel | None = None,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
    payments: PaymentGateway = Depends(get_payment_gateway),
):
    reason = cancel.reason if cancel else None
    return await service.cancel_session(session, session_id, user.id, reason, payments=payments)


# Materials

@router.get("/{session_id}/materials", response_model=List[MaterialRead])
async def list_materials(
    session_id: uuid.UUID,
    user: User = Depends(current_active_user),
    session: AsyncSession = Depends(get_async_session),
):
    tutoring_session = await service.get_session_for_participant(session, session_id, user.id)
    return decode_materials(tutoring_session.materials)


@router.post("/{session_id}/materials", response_model=SessionRead)
async def add_material(
    session_id: uuid.UUID,
    material: MaterialCreate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.add_material(session, session_id, user.id, material)


@router.delete("/{session_id}/materials/{index}", response_model=SessionRead)
async def remove_material(
    session_id: uuid.UUID,
    index: int,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.remove_material(session, session_id, user.id, index)


# Meeting links

@router.post("/{session_id}/meeting-urls", response_model=SessionRead)
async def add_meeting_url(
    session_id: uuid.UUID,
    meeting_url: MeetingUrlCreate,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
):
    return await service.add_meeting_url(session, session_id, user.id, str(meeting_url.url))


@router.get("/{session_id}/host-url", response_model=HostUrlRead)
async def get_host_url(
    session_id: uuid.UUID,
    user: User = Depends(get_current_tutor),
    session: AsyncSession = Depends(get_async_session),
    meetings: MeetingProvider = Depends(get_meeting_provider),
):
    host_url = await service.get_host_url(session, session_id, user.id, meetings=meetings)
    return HostUrlRead(host_url=host_url)
