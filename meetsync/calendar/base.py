"""
Tool: Calendar Source Base
Purpose: Abstract interface for external busy-time sources

Usage:
    from meetsync.calendar.google import GoogleCalendarSource

    source = GoogleCalendarSource()
    busy = await source.list_busy(access_token, time_min, time_max)
"""

from abc import ABC, abstractmethod
from datetime import datetime

from meetsync.models import Interval


class CalendarSource(ABC):
    """
    Read-only view of one user's external calendar.

    Implementations return raw (unbuffered) busy intervals with event titles
    and raise CalendarFetchError on any provider or network failure.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'google')."""
        pass

    @abstractmethod
    async def list_busy(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[Interval]:
        """
        List busy intervals overlapping [time_min, time_max).

        Args:
            access_token: Valid provider access token
            time_min: Range start (aware)
            time_max: Range end (aware)

        Returns:
            Busy intervals sorted by start
        """
        pass
