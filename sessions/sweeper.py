"""Cancel scheduled sessions that were never started.

Meant to run from cron or a scheduler:

    python -m sessions.sweeper

Each stale session goes through the regular ``cancel_session`` transition as
the system actor, so it gets the same refund request and slot release as a
manual cancellation.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from errors import SessionServiceError
from payments.gateway import PaymentGateway
from sessions.models import SessionStatus, TutoringSession
from sessions.service import SYSTEM_ACTOR_ID, cancel_session
from sessions.time_gate import service_timezone, start_instant

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Session expired without being started"


async def expire_stale_sessions(
    db: AsyncSession,
    now: datetime | None = None,
    grace: timedelta | None = None,
    payments: PaymentGateway | None = None,
) -> list[uuid.UUID]:
    now = now or datetime.now(timezone.utc)
    grace = grace if grace is not None else timedelta(hours=settings.STALE_SESSION_GRACE_HOURS)
    tz = service_timezone()
    cutoff = now.astimezone(tz) if now.tzinfo else now.replace(tzinfo=tz)
    cutoff -= grace

    result = await db.execute(
        select(TutoringSession.id, TutoringSession.date, TutoringSession.slots).where(
            TutoringSession.status == SessionStatus.SCHEDULED.value,
            TutoringSession.date <= cutoff.date(),
        )
    )
    candidates = [
        session_id for session_id, session_date, slots in result.all()
        if start_instant(session_date, slots, tz) <= cutoff
    ]

    expired = []
    for session_id in candidates:
        try:
            await cancel_session(db, session_id, SYSTEM_ACTOR_ID, EXPIRED_REASON, payments=payments)
        except SessionServiceError as e:
            # Started or canceled since the query, or the refund was rejected
            logger.warning("Could not expire session %s: %s", session_id, e.message)
            continue
        expired.append(session_id)

    if expired:
        logger.info("Expired %d stale sessions: %s", len(expired), [str(i) for i in expired])
    return expired


async def main():
    from db import async_session_maker

    async with async_session_maker() as db:
        expired = await expire_stale_sessions(db)
    logger.info("Sweep finished, %d sessions expired", len(expired))


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(main())
