"""Meeting-room collaborator.

Sessions only store join URLs. Host URLs are derived from the provider when a
tutor actually needs one, because some providers (Zoom) issue short-lived host
links.
"""

import base64
import logging
import re
import uuid
from abc import ABC, abstractmethod
from datetime import datetime

import httpx
from pydantic import BaseModel

from config import settings
from errors import DependencyFailure

logger = logging.getLogger(__name__)


class MeetingRoom(BaseModel):
    host_url: str
    join_url: str


class MeetingProvider(ABC):
    @abstractmethod
    async def create_meeting(self, topic: str, start_time: datetime, duration_minutes: int) -> MeetingRoom: ...

    @abstractmethod
    async def get_host_url(self, join_url: str) -> str: ...


class StaticMeetingProvider(MeetingProvider):
    """Open rooms addressed by URL (Jitsi style); host and join links are the same."""

    def __init__(self, base_url: str | None = None):
        self.base_url = (base_url or settings.MEETING_BASE_URL).rstrip("/")

    async def create_meeting(self, topic, start_time, duration_minutes):
        slug = re.sub(r"[^a-z0-9]+", "-", topic.lower()).strip("-") or "session"
        join_url = f"{self.base_url}/{slug}-{uuid.uuid4().hex[:12]}"
        return MeetingRoom(host_url=join_url, join_url=join_url)

    async def get_host_url(self, join_url):
        return join_url


class ZoomMeetingProvider(MeetingProvider):
    """Zoom server-to-server OAuth app."""

    BASE_URL = "https://api.zoom.us/v2"
    TOKEN_URL = "https://zoom.us/oauth/token"  # noqa: S105 - OAuth endpoint URL

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.account_id = settings.ZOOM_ACCOUNT_ID
        self.client_id = settings.ZOOM_CLIENT_ID
        self.client_secret = settings.ZOOM_CLIENT_SECRET
        self.timeout = settings.ZOOM_API_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def _get_access_token(self, client: httpx.AsyncClient) -> str:
        if not (self.account_id and self.client_id and self.client_secret):
            logger.error("Zoom credentials are not configured")
            raise DependencyFailure("The meeting service is not configured")

        credentials = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        response = await client.post(
            self.TOKEN_URL,
            params={"grant_type": "account_credentials", "account_id": self.account_id},
            headers={"Authorization": f"Basic {credentials}"},
        )
        response.raise_for_status()
        return response.json()["access_token"]

    async def create_meeting(self, topic, start_time, duration_minutes):
        payload = {
            "topic": topic or "Tutoring Session",
            "type": 2,  # scheduled meeting
            "start_time": start_time.isoformat(),
            "duration": duration_minutes or 60,
            "settings": {
                "host_video": True,
                "participant_video": True,
                "join_before_host": False,
                "waiting_room": True,
                "mute_upon_entry": True,
            },
        }
        try:
            async with self._client() as client:
                token = await self._get_access_token(client)
                response = await client.post(
                    f"{self.BASE_URL}/users/me/meetings",
                    json=payload,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                data = response.json()
                return MeetingRoom(host_url=data["start_url"], join_url=data["join_url"])
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Zoom meeting creation failed: {e!r}", exc_info=True)
            raise DependencyFailure("The meeting service rejected the request") from e

    async def get_host_url(self, join_url):
        match = re.search(r"/j/(\d+)", join_url)
        if not match:
            raise DependencyFailure("The meeting link is not a Zoom meeting")

        try:
            async with self._client() as client:
                token = await self._get_access_token(client)
                response = await client.get(
                    f"{self.BASE_URL}/meetings/{match.group(1)}",
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                return response.json()["start_url"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Zoom host URL lookup failed: {e!r}", exc_info=True)
            raise DependencyFailure("The meeting service rejected the request") from e


def get_meeting_provider() -> MeetingProvider:
    if settings.MEETING_PROVIDER == "zoom":
        return ZoomMeetingProvider()
    return StaticMeetingProvider()
