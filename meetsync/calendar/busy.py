"""
Tool: Busy-Interval Provider
Purpose: A user's external busy time for a range, padded by their buffer

Every interval is widened by the user's buffer on both ends, even when that
makes it overlap a neighbour. Nothing is cached between calls.

Usage:
    from meetsync.calendar.busy import fetch_busy, fetch_many

    busy = await fetch_busy(user_id, start, end)
    results, failures = await fetch_many([a, b, c], start, end)
"""

import asyncio
from datetime import datetime, timedelta

from meetsync.calendar.base import CalendarSource
from meetsync.calendar.oauth import TokenManager, token_manager
from meetsync.config_models import get_config
from meetsync.errors import CalendarError, CalendarFetchError
from meetsync.logging_config import get_logger
from meetsync.models import Interval, ensure_aware
from meetsync.users import get_user

logger = get_logger(__name__)


def default_source() -> CalendarSource:
    from meetsync.calendar.google import GoogleCalendarSource

    return GoogleCalendarSource()


def apply_buffer(
    events: list[Interval],
    buffer_minutes: int,
    range_start: datetime,
    range_end: datetime,
) -> list[Interval]:
    """Drop events entirely outside [range_start, range_end), pad the rest."""
    pad = timedelta(minutes=buffer_minutes)
    return sorted(
        Interval(e.start - pad, e.end + pad, e.summary)
        for e in events
        if e.overlaps(range_start, range_end)
    )


async def fetch_busy(
    user_id: str,
    range_start: datetime,
    range_end: datetime,
    source: CalendarSource | None = None,
    tokens: TokenManager | None = None,
) -> list[Interval]:
    """
    Fetch buffered busy intervals for one user.

    Args:
        user_id: Calendar owner
        range_start: Inclusive range start
        range_end: Exclusive range end
        source: Calendar source (Google by default)
        tokens: Token manager (module default if omitted)

    Returns:
        Buffered intervals sorted by start

    Raises:
        NoCalendarConnected: User has no linked credential
        AuthExpired: Stored credential expired and refresh failed
        CalendarFetchError: Provider unreachable or returned an error
    """
    range_start = ensure_aware(range_start)
    range_end = ensure_aware(range_end)
    source = source or default_source()
    tokens = tokens or token_manager

    user = get_user(user_id)
    buffer_minutes = (
        user.buffer_minutes if user is not None else get_config().calendar.default_buffer_minutes
    )

    token = await tokens.get_valid_access_token(user_id)
    events = await source.list_busy(token.access_token, range_start, range_end)

    return apply_buffer(events, buffer_minutes, range_start, range_end)


async def fetch_many(
    user_ids: list[str],
    range_start: datetime,
    range_end: datetime,
    source: CalendarSource | None = None,
    tokens: TokenManager | None = None,
    timeout: float | None = None,
) -> tuple[dict[str, list[Interval]], dict[str, CalendarError]]:
    """
    Fetch busy intervals for several users concurrently.

    One task per user, each bounded by `timeout` seconds. A user whose fetch
    fails or times out lands in the failures map instead of aborting the batch.

    Returns:
        (busy intervals by user id, errors by user id)
    """
    source = source or default_source()
    tokens = tokens or token_manager
    if timeout is None:
        timeout = get_config().calendar.fetch_timeout_seconds

    async def _one(user_id: str) -> list[Interval]:
        try:
            return await asyncio.wait_for(
                fetch_busy(user_id, range_start, range_end, source, tokens),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise CalendarFetchError(f"Calendar fetch timed out after {timeout}s") from e

    outcomes = await asyncio.gather(*(_one(u) for u in user_ids), return_exceptions=True)

    results: dict[str, list[Interval]] = {}
    failures: dict[str, CalendarError] = {}
    for user_id, outcome in zip(user_ids, outcomes):
        if isinstance(outcome, CalendarError):
            logger.warning(
                "busy_fetch_failed",
                user_id=user_id,
                error_type=type(outcome).__name__,
                error=str(outcome),
            )
            failures[user_id] = outcome
        elif isinstance(outcome, BaseException):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            logger.error("busy_fetch_crashed", user_id=user_id, error=repr(outcome))
            failures[user_id] = CalendarFetchError(f"Unexpected error: {outcome!r}")
        else:
            results[user_id] = outcome

    return results, failures
