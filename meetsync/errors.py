"""Error taxonomy for meetsync.

Calendar errors are recoverable per participant: the caller excludes that
participant and carries on. Validation errors are returned to the caller as-is
and never retried.
"""


class MeetSyncError(Exception):
    """Base class for every meetsync error."""


# =============================================================================
# Calendar access
# =============================================================================


class CalendarError(MeetSyncError):
    """Busy data for a user could not be obtained."""


class NoCalendarConnected(CalendarError):
    def __init__(self, user_id: str):
        super().__init__(f"No calendar connected for user {user_id}")
        self.user_id = user_id


class AuthExpired(CalendarError):
    def __init__(self, user_id: str, reason: str = "token refresh failed"):
        super().__init__(f"Calendar authorization expired for user {user_id}: {reason}")
        self.user_id = user_id
        self.reason = reason


class CalendarFetchError(CalendarError):
    """Provider returned an error, the network failed, or the call timed out."""


# =============================================================================
# Input validation
# =============================================================================


class ValidationError(MeetSyncError):
    """Caller supplied input that can never succeed."""


class InvalidDomain(ValidationError):
    def __init__(self, domain: str):
        super().__init__(f"Invalid domain format: {domain!r}")
        self.domain = domain


class PersonalDomainRejected(ValidationError):
    def __init__(self, domain: str):
        super().__init__(
            f"Cannot grant domain-wide access to personal email provider @{domain}. "
            "Grant individual user access instead."
        )
        self.domain = domain


class SelfGrantRejected(ValidationError):
    def __init__(self, message: str = "You cannot grant or request access to your own calendar"):
        super().__init__(message)


class InvalidRequest(ValidationError):
    pass


class InvalidTimezone(ValidationError):
    def __init__(self, timezone: str):
        super().__init__(f"Unknown IANA timezone: {timezone!r}")
        self.timezone = timezone


# =============================================================================
# Ownership and lookup
# =============================================================================


class NotAuthorized(MeetSyncError):
    """Action attempted by someone other than the resource's owner."""


class NotFound(MeetSyncError):
    pass


class ParticipantsNotFound(NotFound):
    def __init__(self, missing_emails: list[str]):
        super().__init__(f"Some participants not found: {', '.join(missing_emails)}")
        self.missing_emails = missing_emails


class RequestNotActionable(MeetSyncError):
    """Permission request is no longer pending (answered or expired)."""


__all__ = [
    "AuthExpired",
    "CalendarError",
    "CalendarFetchError",
    "InvalidDomain",
    "InvalidRequest",
    "InvalidTimezone",
    "MeetSyncError",
    "NoCalendarConnected",
    "NotAuthorized",
    "NotFound",
    "ParticipantsNotFound",
    "PersonalDomainRejected",
    "RequestNotActionable",
    "SelfGrantRejected",
    "ValidationError",
]
