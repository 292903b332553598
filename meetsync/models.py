"""
Tool: Scheduling Models
Purpose: Data structures for users, availability, grants and requests

Usage:
    from meetsync.models import Interval, AvailabilityRule, CalendarPermission

All instants are timezone-aware. Anything read back from the store is
normalized to UTC; wall-clock rule times are plain `datetime.time` values
interpreted in the owning user's timezone.
"""

import json
import sqlite3
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timezone
from enum import Enum
from typing import Any, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meetsync.errors import InvalidRequest, InvalidTimezone


# =============================================================================
# Time helpers
# =============================================================================


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_storage(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return ensure_aware(dt).astimezone(timezone.utc).isoformat()


def from_storage(value: str | datetime | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    return ensure_aware(datetime.fromisoformat(value)).astimezone(timezone.utc)


def parse_clock(value: str | time) -> time:
    """Parse 'HH:MM' (or 'HH:MM:SS') into a time."""
    if isinstance(value, time):
        return value
    try:
        parts = [int(p) for p in value.split(":")]
        return time(parts[0], parts[1] if len(parts) > 1 else 0)
    except (ValueError, IndexError) as e:
        raise InvalidRequest(f"Invalid time of day: {value!r}") from e


def load_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimezone(name) from e


def generate_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Intervals
# =============================================================================


@dataclass(frozen=True, order=True)
class Interval:
    """
    Half-open [start, end) instant range.

    Busy intervals coming from the calendar provider carry the event title in
    `summary`; they are already buffered by the time anything else sees them.
    """

    start: datetime
    end: datetime
    summary: str | None = field(default=None, compare=False)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return start < self.end and end > self.start

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def to_dict(self) -> dict[str, Any]:
        d = {"start": self.start.isoformat(), "end": self.end.isoformat()}
        if self.summary is not None:
            d["summary"] = self.summary
        return d


# =============================================================================
# Users and credentials
# =============================================================================


@dataclass
class User:
    id: str
    email: str
    name: str
    timezone: str = "UTC"
    buffer_minutes: int = 30
    created_at: datetime | None = None

    @property
    def domain(self) -> str:
        return self.email.rsplit("@", 1)[-1].lower()

    @property
    def zone(self) -> ZoneInfo:
        return load_zone(self.timezone)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            timezone=row["timezone"],
            buffer_minutes=row["buffer_minutes"],
            created_at=from_storage(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "timezone": self.timezone,
            "buffer_minutes": self.buffer_minutes,
        }


@dataclass
class OAuthToken:
    """Linked external calendar credential."""

    user_id: str
    provider: str
    access_token: str
    refresh_token: str | None = None
    token_expiry: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Expired only once the stored expiry is in the past; no expiry means valid."""
        if self.token_expiry is None:
            return False
        return self.token_expiry < (now or utc_now())

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "OAuthToken":
        return cls(
            user_id=row["user_id"],
            provider=row["provider"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expiry=from_storage(row["token_expiry"]),
        )


# =============================================================================
# Availability
# =============================================================================


@dataclass
class AvailabilityRule:
    """
    Recurring weekly window. day_of_week follows datetime.weekday()
    (0 = Monday ... 6 = Sunday). No cross-midnight windows.
    """

    user_id: str
    day_of_week: int
    start_time: time
    end_time: time
    timezone: str = "UTC"
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        self.start_time = parse_clock(self.start_time)
        self.end_time = parse_clock(self.end_time)
        if not 0 <= self.day_of_week <= 6:
            raise InvalidRequest(f"day_of_week must be 0-6, got {self.day_of_week}")
        if self.start_time >= self.end_time:
            raise InvalidRequest("Rule start must precede its end within the same day")

    @property
    def start_minutes(self) -> int:
        return self.start_time.hour * 60 + self.start_time.minute

    @property
    def end_minutes(self) -> int:
        return self.end_time.hour * 60 + self.end_time.minute

    def covers(self, start_minutes: int, end_minutes: int) -> bool:
        return start_minutes >= self.start_minutes and end_minutes <= self.end_minutes

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AvailabilityRule":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            day_of_week=row["day_of_week"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            timezone=row["timezone"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "day_of_week": self.day_of_week,
            "start_time": self.start_time.strftime("%H:%M"),
            "end_time": self.end_time.strftime("%H:%M"),
            "timezone": self.timezone,
        }


@dataclass
class RuleSet:
    """
    A user's configured weekly rules.

    Callers pass `None` rather than an empty RuleSet when a user has no rules
    configured at all; both mean unrestricted availability.
    """

    rules: list[AvailabilityRule] = field(default_factory=list)

    def for_weekday(self, day_of_week: int) -> list[AvailabilityRule]:
        return [r for r in self.rules if r.day_of_week == day_of_week]

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self):
        return iter(self.rules)


@dataclass
class BlockedTime:
    user_id: str
    start: datetime
    end: datetime
    reason: str | None = None
    id: str = field(default_factory=generate_id)

    def __post_init__(self):
        self.start = ensure_aware(self.start)
        self.end = ensure_aware(self.end)
        if self.start >= self.end:
            raise InvalidRequest("Blocked time must end after it starts")

    def as_interval(self) -> Interval:
        return Interval(self.start, self.end, self.reason or "Blocked")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "BlockedTime":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            start=from_storage(row["start_time"]),
            end=from_storage(row["end_time"]),
            reason=row["reason"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "reason": self.reason,
        }


@dataclass
class UserFreeBusy:
    """Everything the slot search needs to know about one participant."""

    user_id: str
    email: str = ""
    timezone: str = "UTC"
    busy: list[Interval] = field(default_factory=list)
    blocked: list[Interval] = field(default_factory=list)
    rules: RuleSet | None = None

    def is_free(self, start: datetime, end: datetime) -> bool:
        return not any(i.overlaps(start, end) for i in self.busy) and not any(
            i.overlaps(start, end) for i in self.blocked
        )


# =============================================================================
# Grants
# =============================================================================


class PermissionType(str, Enum):
    ONCE = "once"
    USER = "user"
    DOMAIN = "domain"


class PermissionStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"


@dataclass(frozen=True)
class OnceGrant:
    grantee_id: str
    expires_at: datetime


@dataclass(frozen=True)
class UserGrant:
    grantee_id: str


@dataclass(frozen=True)
class DomainGrant:
    domain: str


Grant = Union[OnceGrant, UserGrant, DomainGrant]


def grant_type(grant: Grant) -> PermissionType:
    if isinstance(grant, OnceGrant):
        return PermissionType.ONCE
    if isinstance(grant, UserGrant):
        return PermissionType.USER
    if isinstance(grant, DomainGrant):
        return PermissionType.DOMAIN
    raise TypeError(f"Unknown grant variant: {grant!r}")


@dataclass
class CalendarPermission:
    """Directed edge grantor -> grantee (user or domain)."""

    id: str
    grantor_id: str
    grant: Grant
    status: PermissionStatus = PermissionStatus.ACTIVE
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @property
    def permission_type(self) -> PermissionType:
        return grant_type(self.grant)

    @property
    def grantee_id(self) -> str | None:
        if isinstance(self.grant, (OnceGrant, UserGrant)):
            return self.grant.grantee_id
        return None

    @property
    def grantee_domain(self) -> str | None:
        if isinstance(self.grant, DomainGrant):
            return self.grant.domain
        return None

    @property
    def expires_at(self) -> datetime | None:
        if isinstance(self.grant, OnceGrant):
            return self.grant.expires_at
        return None

    def authorizes(self, requester_id: str, requester_domain: str | None, now: datetime) -> bool:
        if self.status != PermissionStatus.ACTIVE:
            return False
        grant = self.grant
        if isinstance(grant, OnceGrant):
            return grant.grantee_id == requester_id and grant.expires_at > now
        if isinstance(grant, UserGrant):
            return grant.grantee_id == requester_id
        if isinstance(grant, DomainGrant):
            return requester_domain is not None and grant.domain == requester_domain
        raise TypeError(f"Unknown grant variant: {grant!r}")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CalendarPermission":
        kind = PermissionType(row["permission_type"])
        if kind == PermissionType.ONCE:
            grant: Grant = OnceGrant(row["grantee_id"], from_storage(row["expires_at"]))
        elif kind == PermissionType.USER:
            grant = UserGrant(row["grantee_id"])
        else:
            grant = DomainGrant(row["grantee_domain"])
        return cls(
            id=row["id"],
            grantor_id=row["grantor_id"],
            grant=grant,
            status=PermissionStatus(row["status"]),
            created_at=from_storage(row["created_at"]),
            updated_at=from_storage(row["updated_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "grantor_id": self.grantor_id,
            "grantee_id": self.grantee_id,
            "grantee_domain": self.grantee_domain,
            "permission_type": self.permission_type.value,
            "status": self.status.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PermissionRequest:
    """
    requester -> recipient (user id, or bare email before the recipient signs up).

    Expiry is never swept; a stored 'pending' row past its expiry reads as
    EXPIRED through effective_status().
    """

    id: str
    requester_id: str
    recipient_id: str | None
    recipient_email: str | None
    expires_at: datetime
    meeting_context: str | None = None
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = field(default_factory=utc_now)
    responded_at: datetime | None = None

    def effective_status(self, now: datetime | None = None) -> RequestStatus:
        if self.status == RequestStatus.PENDING and self.expires_at <= (now or utc_now()):
            return RequestStatus.EXPIRED
        return self.status

    def is_actionable(self, now: datetime | None = None) -> bool:
        return self.effective_status(now) == RequestStatus.PENDING

    @property
    def pending_signup(self) -> bool:
        return self.recipient_id is None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PermissionRequest":
        return cls(
            id=row["id"],
            requester_id=row["requester_id"],
            recipient_id=row["recipient_id"],
            recipient_email=row["recipient_email"],
            meeting_context=row["meeting_context"],
            status=RequestStatus(row["status"]),
            expires_at=from_storage(row["expires_at"]),
            created_at=from_storage(row["created_at"]),
            responded_at=from_storage(row["responded_at"]),
        )

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        return {
            "id": self.id,
            "requester_id": self.requester_id,
            "recipient_id": self.recipient_id,
            "recipient_email": self.recipient_email,
            "meeting_context": self.meeting_context,
            "status": self.effective_status(now).value,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "pending_signup": self.pending_signup,
        }


# =============================================================================
# Meetings and notifications
# =============================================================================


@dataclass
class Meeting:
    id: str
    coordinator_id: str
    title: str
    start: datetime
    end: datetime
    description: str | None = None
    status: str = "scheduled"
    participant_ids: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "coordinator_id": self.coordinator_id,
            "title": self.title,
            "description": self.description,
            "start_time": self.start.isoformat(),
            "end_time": self.end.isoformat(),
            "status": self.status,
            "participant_ids": self.participant_ids,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Notification:
    id: str
    user_id: str
    type: str
    title: str
    message: str
    link: str | None = None
    read: bool = False
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Notification":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            title=row["title"],
            message=row["message"],
            link=row["link"],
            read=bool(row["read"]),
            created_at=from_storage(row["created_at"]),
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)
