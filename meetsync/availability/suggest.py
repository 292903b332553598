"""
Tool: Availability Suggestions
Purpose: A quick "here are some reasonable times" hint for one user

Walks forward day by day from tomorrow (user's local date), trying a short
list of preferred clock times in order. Keeps up to 3 per day and stops once
3 days have produced something, or after 14 days. Never fails because the
calendar is unreachable: that just means no busy data.
"""

import asyncio
from datetime import datetime, timedelta

from meetsync.availability.rules import blocked_in_range, is_within_rules, load_rule_set
from meetsync.calendar.base import CalendarSource
from meetsync.calendar.busy import fetch_busy
from meetsync.calendar.oauth import TokenManager
from meetsync.config_models import get_config
from meetsync.errors import CalendarError
from meetsync.logging_config import get_logger
from meetsync.models import Interval, UserFreeBusy, ensure_aware, utc_now
from meetsync.users import require_user

logger = get_logger(__name__)

PREFERRED_HOURS = [10, 14, 11, 15, 9, 16, 13]
SLOT_MINUTES = 60
PER_DAY = 3
TARGET_DAYS = 3
MAX_DAYS = 14


async def _busy_or_nothing(
    user_id: str,
    start: datetime,
    end: datetime,
    source: CalendarSource | None,
    tokens: TokenManager | None,
) -> list[Interval]:
    timeout = get_config().calendar.fetch_timeout_seconds
    try:
        return await asyncio.wait_for(fetch_busy(user_id, start, end, source, tokens), timeout)
    except (CalendarError, asyncio.TimeoutError) as e:
        logger.info("suggest_without_busy_data", user_id=user_id, reason=type(e).__name__)
        return []
    except Exception as e:
        logger.error("suggest_busy_fetch_crashed", user_id=user_id, error=repr(e))
        return []


async def suggest(
    user_id: str,
    now: datetime | None = None,
    source: CalendarSource | None = None,
    tokens: TokenManager | None = None,
) -> list[datetime]:
    """Suggested one-hour start times, in the user's timezone, in scan order."""
    user = require_user(user_id)
    zone = user.zone
    now = ensure_aware(now or utc_now())

    first_day = now.astimezone(zone).date() + timedelta(days=1)
    window_start = datetime(first_day.year, first_day.month, first_day.day, tzinfo=zone)
    last_day = first_day + timedelta(days=MAX_DAYS)
    window_end = datetime(last_day.year, last_day.month, last_day.day, tzinfo=zone)

    participant = UserFreeBusy(
        user_id=user.id,
        email=user.email,
        timezone=user.timezone,
        busy=await _busy_or_nothing(user.id, window_start, window_end, source, tokens),
        blocked=[b.as_interval() for b in blocked_in_range(user.id, window_start, window_end)],
        rules=load_rule_set(user.id),
    )

    suggestions: list[datetime] = []
    days_with_slots = 0
    for offset in range(MAX_DAYS):
        if days_with_slots >= TARGET_DAYS:
            break
        day = first_day + timedelta(days=offset)

        picked: list[datetime] = []
        for hour in PREFERRED_HOURS:
            if len(picked) >= PER_DAY:
                break
            start = datetime(day.year, day.month, day.day, hour, tzinfo=zone)
            end = start + timedelta(minutes=SLOT_MINUTES)
            if start <= now:
                continue
            if not is_within_rules(start, end, participant.rules):
                continue
            if participant.is_free(start, end):
                picked.append(start)

        if picked:
            suggestions.extend(picked)
            days_with_slots += 1

    return suggestions
