"""Request and response bodies for the HTTP API."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error message")
    code: str = Field(default="INTERNAL_ERROR", description="Error code")
    details: dict[str, Any] | None = Field(None, description="Additional details")


class HealthCheck(BaseModel):
    status: str = Field(default="healthy")
    version: str = Field(default="0.1.0")
    timestamp: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Users
# =============================================================================


class RegisterRequest(BaseModel):
    email: str = Field(..., description="Login email")
    name: str = Field(..., description="Display name")
    timezone: str | None = Field(None, description="IANA timezone")
    buffer_minutes: int | None = Field(None, ge=0, description="Padding around busy time")


class PreferencesUpdate(BaseModel):
    timezone: str | None = None
    buffer_minutes: int | None = Field(None, ge=0)


# =============================================================================
# Availability
# =============================================================================


class RuleCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    timezone: str | None = None


class RulesReplace(BaseModel):
    """Replace every rule at once."""

    rules: list[RuleCreate]


class BlockedTimeCreate(BaseModel):
    start_time: datetime
    end_time: datetime
    reason: str | None = None


# =============================================================================
# Meetings
# =============================================================================


class FindTimesRequest(BaseModel):
    participant_emails: list[str] = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    duration: int = Field(..., ge=15, le=480, description="Slot length in minutes")


class MeetingCreate(BaseModel):
    title: str = Field(..., min_length=1)
    description: str | None = None
    start_time: datetime
    end_time: datetime
    participant_ids: list[str] = Field(..., min_length=1)


# =============================================================================
# Permissions
# =============================================================================


class GrantRequest(BaseModel):
    type: Literal["email", "domain"]
    value: str


class RevokeRequest(BaseModel):
    permission_id: str


class AccessRequest(BaseModel):
    recipient_email: str
    context: str | None = None


class BulkAccessRequest(BaseModel):
    attendee_emails: list[str] = Field(..., min_length=1)
    context: str | None = None


class ApproveRequest(BaseModel):
    request_id: str
    permission_type: Literal["once", "user", "domain"]
    domain: str | None = None


class DenyRequest(BaseModel):
    request_id: str
