"""When may a scheduled session be started?

Pure functions over a session's calendar date and its first slot. A session
dated before today is always startable (late starts are allowed); one dated
after today never is; one dated today opens at its first slot's hour:minute,
boundary inclusive.
"""

from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

from config import settings


def service_timezone() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def parse_slot(slot: str | time) -> time:
    if isinstance(slot, time):
        return slot
    return time.fromisoformat(slot)


def _local(now: datetime, tz: tzinfo) -> datetime:
    # naive datetimes are taken to already be in the service timezone
    if now.tzinfo is None:
        return now.replace(tzinfo=tz)
    return now.astimezone(tz)


def start_instant(session_date: date, slots: list, tz: tzinfo | None = None) -> datetime:
    tz = tz or service_timezone()
    first = parse_slot(slots[0]) if slots else time.min
    return datetime.combine(session_date, time(first.hour, first.minute), tzinfo=tz)


def can_start(session, now: datetime, tz: tzinfo | None = None) -> bool:
    tz = tz or service_timezone()
    now = _local(now, tz)
    today = now.date()

    if session.date < today:
        return True
    if session.date > today:
        return False
    return now >= start_instant(session.date, session.slots, tz)


def time_until_start(session, now: datetime, tz: tzinfo | None = None) -> timedelta | None:
    """Remaining time before the gate opens, or None if it is open or the session is not today."""
    tz = tz or service_timezone()
    now = _local(now, tz)
    if session.date != now.date() or can_start(session, now, tz):
        return None
    return start_instant(session.date, session.slots, tz) - now
