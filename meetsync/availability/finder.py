"""
Tool: Meeting Time Finder
Purpose: The permission-gated "find a meeting time" flow

Flow:
    1. Resolve every participant email to a registered user (all must exist).
    2. Classify each participant:
         no_calendar      - no linked calendar credential
         ready            - requester may read their busy time
         pending_approval - a request is pending (one is filed if needed)
    3. Fetch busy time concurrently for the ready participants only; a failed
       fetch downgrades that participant to no_calendar.
    4. Search common slots over whoever is left.

Authorization is decided once in step 2 and holds for the whole call, even if
a grant is revoked while busy data is being fetched.

Usage:
    from meetsync.availability.finder import find_meeting_times

    result = await find_meeting_times(requester_id, ["ana@acme.com"], start, end, 60)
    print(result.to_dict())
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from meetsync.availability.rules import blocked_in_range, load_rule_set
from meetsync.availability.slots import find_common_slots
from meetsync.calendar.base import CalendarSource
from meetsync.calendar.busy import fetch_many
from meetsync.calendar.oauth import TokenManager, has_calendar
from meetsync.errors import InvalidRequest, ParticipantsNotFound
from meetsync.logging_config import get_logger
from meetsync.models import Interval, User, UserFreeBusy, ensure_aware, utc_now
from meetsync.permissions.grants import has_permission
from meetsync.permissions.requests import create_request, find_pending
from meetsync.users import find_by_emails, normalize_email, require_user

logger = get_logger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480

STATUS_READY = "ready"
STATUS_NO_CALENDAR = "no_calendar"
STATUS_PENDING_APPROVAL = "pending_approval"


@dataclass
class ParticipantStatus:
    user: User
    status: str
    request_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = {
            "id": self.user.id,
            "email": self.user.email,
            "name": self.user.name,
            "status": self.status,
        }
        if self.request_id:
            d["request_id"] = self.request_id
        return d


@dataclass
class FindTimesResult:
    slots: list[Interval] = field(default_factory=list)
    participants: list[ParticipantStatus] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available_slots": [s.to_dict() for s in self.slots],
            "participants": [p.to_dict() for p in self.participants],
            "message": self.message,
        }


def _validate(emails: list[str], start: datetime, end: datetime, duration_minutes: int) -> None:
    if not emails:
        raise InvalidRequest("At least one participant email is required")
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise InvalidRequest(
            f"duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes"
        )
    if ensure_aware(start) >= ensure_aware(end):
        raise InvalidRequest("start must be before end")


def resolve_participants(emails: list[str]) -> list[User]:
    """
    Look up every email, preserving the caller's order.

    Raises:
        ParticipantsNotFound: One or more emails have no account
    """
    wanted = list(dict.fromkeys(normalize_email(e) for e in emails))
    by_email = {u.email: u for u in find_by_emails(wanted)}
    missing = [e for e in wanted if e not in by_email]
    if missing:
        raise ParticipantsNotFound(missing)
    return [by_email[e] for e in wanted]


def classify_participant(requester_id: str, participant: User, now: datetime) -> ParticipantStatus:
    """Work out where a participant stands, filing a request if one is needed."""
    if not has_calendar(participant.id):
        return ParticipantStatus(participant, STATUS_NO_CALENDAR)

    if has_permission(participant.id, requester_id, now):
        return ParticipantStatus(participant, STATUS_READY)

    pending = find_pending(requester_id, recipient_id=participant.id, now=now)
    if pending is None:
        pending = create_request(requester_id, recipient_id=participant.id, now=now)
    return ParticipantStatus(participant, STATUS_PENDING_APPROVAL, pending.id)


async def find_meeting_times(
    requester_id: str,
    participant_emails: list[str],
    start: datetime,
    end: datetime,
    duration_minutes: int,
    now: datetime | None = None,
    source: CalendarSource | None = None,
    tokens: TokenManager | None = None,
) -> FindTimesResult:
    """
    Find common slots for the participants the requester is allowed to see.

    Args:
        requester_id: User running the search
        participant_emails: Registered participant emails
        start: Search window start
        end: Search window end
        duration_minutes: Slot length, 15 to 480 minutes
        now: Clock override
        source: Calendar source override
        tokens: Token manager override

    Returns:
        FindTimesResult with slots, per-participant status and a message

    Raises:
        InvalidRequest: Bad duration, window, or empty participant list
        ParticipantsNotFound: Some emails have no account
    """
    _validate(participant_emails, start, end, duration_minutes)
    require_user(requester_id)
    now = ensure_aware(now or utc_now())
    start = ensure_aware(start)
    end = ensure_aware(end)

    participants = resolve_participants(participant_emails)
    statuses = [classify_participant(requester_id, p, now) for p in participants]

    ready = [s for s in statuses if s.status == STATUS_READY]
    if not ready:
        return FindTimesResult(
            participants=statuses,
            message="Permission requests sent. Waiting for approvals.",
        )

    busy_by_user, failures = await fetch_many(
        [s.user.id for s in ready], start, end, source=source, tokens=tokens
    )
    for status in ready:
        if status.user.id in failures:
            status.status = STATUS_NO_CALENDAR

    free_busy = [
        UserFreeBusy(
            user_id=s.user.id,
            email=s.user.email,
            timezone=s.user.timezone,
            busy=busy_by_user[s.user.id],
            blocked=[b.as_interval() for b in blocked_in_range(s.user.id, start, end)],
            rules=load_rule_set(s.user.id),
        )
        for s in ready
        if s.user.id in busy_by_user
    ]

    if not free_busy:
        return FindTimesResult(
            participants=statuses,
            message="No calendar data could be loaded for the authorized participants.",
        )

    slots = find_common_slots(free_busy, start, end, duration_minutes, now=now)

    message = None
    if len(free_busy) < len(participants):
        message = (
            f"Showing availability for {len(free_busy)} of {len(participants)} participants. "
            "Waiting for permission from others."
        )

    logger.info(
        "meeting_times_found",
        requester_id=requester_id,
        participants=len(participants),
        included=len(free_busy),
        slots=len(slots),
    )
    return FindTimesResult(slots=slots, participants=statuses, message=message)
