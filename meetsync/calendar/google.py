"""
Tool: Google Calendar Source
Purpose: Busy intervals and token refresh via Google APIs

Fetches events rather than the FreeBusy endpoint so that event titles are
available for display. All-day events and events marked "show as free"
(transparency=transparent) are not treated as busy.

Dependencies:
    - aiohttp (pip install aiohttp)
"""

import asyncio
import os
from datetime import datetime, timezone
from typing import Any

import aiohttp

from meetsync.calendar.base import CalendarSource
from meetsync.config_models import get_config
from meetsync.errors import CalendarFetchError
from meetsync.logging_config import get_logger
from meetsync.models import Interval, ensure_aware

logger = get_logger(__name__)


CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

PAGE_SIZE = 250


def get_google_credentials() -> tuple[str, str]:
    """
    Get Google OAuth client credentials from the environment.

    Raises:
        CalendarFetchError: If credentials are not configured
    """
    client_id = os.environ.get("GOOGLE_CLIENT_ID")
    client_secret = os.environ.get("GOOGLE_CLIENT_SECRET")

    if not client_id or not client_secret:
        raise CalendarFetchError(
            "Google OAuth credentials not found. "
            "Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET environment variables."
        )

    return client_id, client_secret


def _timeout() -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=get_config().calendar.fetch_timeout_seconds)


def _rfc3339(dt: datetime) -> str:
    return ensure_aware(dt).astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


async def refresh_access_token(refresh_token: str) -> dict[str, Any]:
    """
    Exchange a refresh token for a new access token.

    Returns:
        dict with access_token, expires_in and, when Google rotates it, refresh_token

    Raises:
        CalendarFetchError: If the token endpoint rejects the refresh or is unreachable
    """
    client_id, client_secret = get_google_credentials()
    token_data = {
        "client_id": client_id,
        "client_secret": client_secret,
        "refresh_token": refresh_token,
        "grant_type": "refresh_token",
    }

    try:
        async with aiohttp.ClientSession(timeout=_timeout()) as session:
            async with session.post(GOOGLE_TOKEN_URL, data=token_data) as resp:
                if resp.status != 200:
                    error = await resp.text()
                    raise CalendarFetchError(f"Token refresh failed: HTTP {resp.status} {error}")
                tokens = await resp.json()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise CalendarFetchError(f"Token refresh request failed: {e!s}") from e

    return {
        "access_token": tokens.get("access_token"),
        "refresh_token": tokens.get("refresh_token"),
        "expires_in": tokens.get("expires_in", 3600),
    }


class GoogleCalendarSource(CalendarSource):
    """Google Calendar events.list reader for the user's primary calendar."""

    def __init__(self, calendar_id: str = "primary"):
        self.calendar_id = calendar_id

    @property
    def provider_name(self) -> str:
        return "google"

    async def list_busy(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[Interval]:
        url = f"{CALENDAR_API_BASE}/calendars/{self.calendar_id}/events"
        headers = {"Authorization": f"Bearer {access_token}"}
        params = {
            "timeMin": _rfc3339(time_min),
            "timeMax": _rfc3339(time_max),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(PAGE_SIZE),
        }

        busy: list[Interval] = []
        try:
            async with aiohttp.ClientSession(timeout=_timeout()) as session:
                while True:
                    async with session.get(url, headers=headers, params=params) as resp:
                        data = await self._handle_response(resp)
                    for item in data.get("items", []):
                        interval = self._parse_event(item)
                        if interval is not None:
                            busy.append(interval)
                    page_token = data.get("nextPageToken")
                    if not page_token:
                        break
                    params["pageToken"] = page_token
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CalendarFetchError(f"Calendar request failed: {e!s}") from e

        busy.sort()
        return busy

    async def _handle_response(self, resp: aiohttp.ClientResponse) -> dict[str, Any]:
        try:
            data = await resp.json()
        except (aiohttp.ContentTypeError, ValueError):
            data = {}

        if resp.status == 200:
            return data
        if resp.status == 401:
            raise CalendarFetchError("Authentication failed - token may be expired")
        if resp.status == 403:
            raise CalendarFetchError("Permission denied - insufficient scopes")
        if resp.status == 404:
            raise CalendarFetchError(f"Calendar not found: {self.calendar_id}")
        error_msg = data.get("error", {}).get("message", f"HTTP {resp.status}")
        raise CalendarFetchError(error_msg)

    @staticmethod
    def _parse_event(data: dict) -> Interval | None:
        """Parse a Google Calendar event into a busy Interval, or None if it is not busy time."""
        if data.get("status") == "cancelled":
            return None
        if data.get("transparency") == "transparent":
            return None

        start_str = data.get("start", {}).get("dateTime")
        end_str = data.get("end", {}).get("dateTime")
        # All-day events carry "date" instead of "dateTime"
        if not start_str or not end_str:
            return None

        # An unreadable timestamp fails the whole fetch; dropping the event
        # would report the owner free while they are busy.
        try:
            start = datetime.fromisoformat(start_str.replace("Z", "+00:00"))
            end = datetime.fromisoformat(end_str.replace("Z", "+00:00"))
        except (AttributeError, ValueError) as e:
            logger.warning("event_unparseable", event_id=data.get("id"), error=str(e))
            raise CalendarFetchError(f"Unreadable event time from provider: {e!s}") from e
        return Interval(
            ensure_aware(start).astimezone(timezone.utc),
            ensure_aware(end).astimezone(timezone.utc),
            data.get("summary") or "Busy",
        )
