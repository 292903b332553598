"""
Tool: Slot Search
Purpose: Find half-open slots where every participant is free

The scan walks a fixed 30-minute grid regardless of the requested duration;
duration only sets the slot length. A slot is kept when, for every
participant, it overlaps none of their buffered busy intervals or blocked
times and sits inside their weekly rules (evaluated in the participant's own
timezone). At most MAX_SLOTS_PER_DAY slots are kept per calendar date of the
search window's timezone.

Usage:
    from meetsync.availability.slots import find_common_slots

    slots = find_common_slots(participants, start, end, duration_minutes=60)
"""

from collections import defaultdict
from datetime import date, datetime, timedelta, timezone

from meetsync.availability.rules import is_within_rules
from meetsync.errors import InvalidRequest
from meetsync.logging_config import get_logger
from meetsync.models import Interval, UserFreeBusy, ensure_aware, load_zone, utc_now

logger = get_logger(__name__)

SLOT_GRANULARITY_MINUTES = 30
MAX_SLOTS_PER_DAY = 5


def round_up_to_grid(dt: datetime) -> datetime:
    """
    Round up to the next :00 or :30 on dt's own wall clock.

    Minutes in (0, 30] go to :30, minutes past 30 go to the next hour, an exact
    :00 is kept. Seconds are dropped.
    """
    dt = dt.replace(second=0, microsecond=0)
    if dt.minute == 0:
        return dt
    if dt.minute <= 30:
        return dt.replace(minute=30)
    return dt.replace(minute=0) + timedelta(hours=1)


def _accepts(
    participant: UserFreeBusy,
    start: datetime,
    end: datetime,
    zone,
) -> bool:
    if not participant.is_free(start, end):
        return False
    return is_within_rules(start.astimezone(zone), end.astimezone(zone), participant.rules)


def find_common_slots(
    participants: list[UserFreeBusy],
    search_start: datetime,
    search_end: datetime,
    duration_minutes: int,
    now: datetime | None = None,
) -> list[Interval]:
    """
    Compute common free slots.

    Args:
        participants: Busy data and rules per participant
        search_start: Window start; naive values are taken as UTC
        search_end: Window end; no slot ends after it
        duration_minutes: Length of every returned slot
        now: Clock override, defaults to the current time

    Returns:
        Slots ordered by start, each exactly duration_minutes long

    Raises:
        InvalidRequest: duration_minutes is not positive
    """
    if duration_minutes <= 0:
        raise InvalidRequest("duration_minutes must be positive")

    search_start = ensure_aware(search_start)
    search_end = ensure_aware(search_end)
    now = ensure_aware(now or utc_now())
    display_tz = search_start.tzinfo

    if not participants:
        logger.warning("slot_search_without_participants")

    zones = [load_zone(p.timezone) for p in participants]

    effective_start = max(search_start, now).astimezone(display_tz)
    candidate = round_up_to_grid(effective_start).astimezone(timezone.utc)
    step = timedelta(minutes=SLOT_GRANULARITY_MINUTES)
    duration = timedelta(minutes=duration_minutes)

    slots: list[Interval] = []
    per_day: dict[date, int] = defaultdict(int)

    while candidate < search_end:
        candidate_end = candidate + duration
        if candidate_end > search_end:
            break

        day = candidate.astimezone(display_tz).date()
        if candidate_end > now and per_day[day] < MAX_SLOTS_PER_DAY:
            if all(_accepts(p, candidate, candidate_end, z) for p, z in zip(participants, zones)):
                slots.append(Interval(candidate, candidate_end))
                per_day[day] += 1

        candidate += step

    logger.debug(
        "slot_search_complete",
        participants=len(participants),
        duration_minutes=duration_minutes,
        slots=len(slots),
    )
    return slots
