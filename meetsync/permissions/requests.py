"""
Tool: Permission Requests
Purpose: Ask a calendar owner for access, and answer such asks

Lifecycle:
    pending -> approved | denied
    pending -> expired (read lazily: a stored 'pending' row past expires_at
               is treated as expired by every query here; nothing sweeps them)

A request targets either a registered user or a bare email address. Email
requests wait for that person to sign up and are then rebound to the new
user id by resolve_pending_on_signup().

Usage:
    from meetsync.permissions.requests import create_request, approve_request

    req = create_request(requester_id, recipient_id=owner_id, context="Q3 planning")
    approve_request(req.id, owner_id, "once")
"""

import sqlite3
from datetime import datetime, timedelta
from typing import Any

from meetsync import get_connection
from meetsync.config_models import get_config
from meetsync.errors import (
    InvalidRequest,
    MeetSyncError,
    NotAuthorized,
    NotFound,
    RequestNotActionable,
    SelfGrantRejected,
)
from meetsync.logging_config import get_logger
from meetsync.models import (
    CalendarPermission,
    DomainGrant,
    Grant,
    PermissionRequest,
    PermissionType,
    RequestStatus,
    UserGrant,
    generate_id,
    to_storage,
    utc_now,
)
from meetsync.notifications import PERMISSION_GRANTED, PERMISSION_REQUEST, notify
from meetsync.permissions.domains import validate_grant_domain
from meetsync.permissions.grants import grant, has_permission, once_grant
from meetsync.users import find_by_email, get_user, normalize_email, require_user

logger = get_logger(__name__)

REQUESTS_LINK = "/permissions/requests"
DEFAULT_CONTEXT = "Meeting invitation"

# Per-attendee outcomes of request_access()
STATUS_SELF = "self"
STATUS_HAS_PERMISSION = "has_permission"
STATUS_REQUEST_PENDING = "request_pending"
STATUS_REQUEST_SENT = "request_sent"
STATUS_NOT_REGISTERED = "not_registered"
STATUS_ERROR = "error"


def get_request(request_id: str) -> PermissionRequest | None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM permission_requests WHERE id = ?", (request_id,)
        ).fetchone()
    finally:
        conn.close()
    return PermissionRequest.from_row(row) if row else None


def find_pending(
    requester_id: str,
    recipient_id: str | None = None,
    recipient_email: str | None = None,
    now: datetime | None = None,
) -> PermissionRequest | None:
    """An actionable request from requester_id to the given user or email."""
    if recipient_id is not None:
        query = "SELECT * FROM permission_requests WHERE requester_id = ? AND recipient_id = ? AND status = 'pending'"
        params: tuple = (requester_id, recipient_id)
    elif recipient_email is not None:
        query = (
            "SELECT * FROM permission_requests WHERE requester_id = ? AND recipient_email = ? "
            "AND recipient_id IS NULL AND status = 'pending'"
        )
        params = (requester_id, normalize_email(recipient_email))
    else:
        raise InvalidRequest("recipient_id or recipient_email is required")

    conn = get_connection()
    try:
        rows = conn.execute(query + " ORDER BY created_at DESC", params).fetchall()
    finally:
        conn.close()

    for row in rows:
        request = PermissionRequest.from_row(row)
        if request.is_actionable(now):
            return request
    return None


def create_request(
    requester_id: str,
    recipient_id: str | None = None,
    recipient_email: str | None = None,
    context: str | None = None,
    now: datetime | None = None,
) -> PermissionRequest:
    """
    File a permission request against a user or a not-yet-registered email.

    Exactly one of recipient_id / recipient_email must be given. Requests to a
    user notify that user; requests to an email notify nobody.

    Raises:
        InvalidRequest: Both or neither recipient given
        SelfGrantRejected: Recipient is the requester
    """
    if (recipient_id is None) == (recipient_email is None):
        raise InvalidRequest("Exactly one of recipient_id or recipient_email must be set")

    requester = require_user(requester_id)
    permissions_config = get_config().permissions
    now = now or utc_now()

    if recipient_id is not None:
        if recipient_id == requester_id:
            raise SelfGrantRejected("Cannot request permission from yourself")
        recipient = require_user(recipient_id)
        expires_at = now + timedelta(days=permissions_config.user_request_expiry_days)
    else:
        recipient = None
        recipient_email = normalize_email(recipient_email)
        if recipient_email == requester.email:
            raise SelfGrantRejected("Cannot request permission from yourself")
        expires_at = now + timedelta(days=permissions_config.email_request_expiry_days)

    request = PermissionRequest(
        id=generate_id(),
        requester_id=requester_id,
        recipient_id=recipient_id,
        recipient_email=recipient_email,
        expires_at=expires_at,
        meeting_context=context,
        created_at=now,
    )

    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO permission_requests (
                id, requester_id, recipient_id, recipient_email, meeting_context,
                status, expires_at, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request.id,
                request.requester_id,
                request.recipient_id,
                request.recipient_email,
                request.meeting_context,
                request.status.value,
                to_storage(request.expires_at),
                to_storage(request.created_at),
            ),
        )
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "permission_requested",
        request_id=request.id,
        requester_id=requester_id,
        pending_signup=request.pending_signup,
    )

    if recipient is not None:
        notify(
            recipient.id,
            PERMISSION_REQUEST,
            f"{requester.name} wants to see your calendar",
            f"{requester.name} ({requester.email}) has requested access to view your "
            "calendar availability.",
            REQUESTS_LINK,
        )

    return request


def _load_actionable(request_id: str, actor_id: str, now: datetime) -> PermissionRequest:
    request = get_request(request_id)
    if request is None:
        raise NotFound(f"Permission request not found: {request_id}")
    if request.recipient_id != actor_id:
        raise NotAuthorized("Only the recipient can answer this request")
    if not request.is_actionable(now):
        raise RequestNotActionable(
            f"Request {request_id} is {request.effective_status(now).value}"
        )
    return request


def _close(conn: sqlite3.Connection, request_id: str, status: RequestStatus, now: datetime) -> None:
    cursor = conn.execute(
        "UPDATE permission_requests SET status = ?, responded_at = ? "
        "WHERE id = ? AND status = 'pending'",
        (status.value, to_storage(now), request_id),
    )
    if cursor.rowcount == 0:
        raise RequestNotActionable(f"Request {request_id} was answered concurrently")


def approve_request(
    request_id: str,
    actor_id: str,
    permission_type: str | PermissionType,
    domain: str | None = None,
    now: datetime | None = None,
) -> CalendarPermission:
    """
    Approve a pending request with the grant kind the recipient picked.

    Closing the request and storing the grant commit together, so a failed
    insert leaves the request pending.

    Args:
        request_id: Request to approve
        actor_id: Must be the request's recipient
        permission_type: 'once', 'user' or 'domain'
        domain: Target domain, required for 'domain'

    Returns:
        The stored grant

    Raises:
        NotFound / NotAuthorized / RequestNotActionable
        InvalidRequest: Unknown permission type or missing domain
        InvalidDomain / PersonalDomainRejected: Domain validation failed
    """
    now = now or utc_now()
    try:
        kind = PermissionType(permission_type)
    except ValueError as e:
        raise InvalidRequest(f"Invalid permission type: {permission_type!r}") from e

    request = _load_actionable(request_id, actor_id, now)

    if kind == PermissionType.ONCE:
        chosen: Grant = once_grant(request.requester_id, now)
    elif kind == PermissionType.USER:
        chosen = UserGrant(request.requester_id)
    else:
        if not domain:
            raise InvalidRequest("Domain required for domain permission")
        chosen = DomainGrant(validate_grant_domain(domain))

    conn = get_connection()
    try:
        _close(conn, request_id, RequestStatus.APPROVED, now)
        permission = grant(actor_id, chosen, conn=conn)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()

    recipient = require_user(actor_id)
    notify(
        request.requester_id,
        PERMISSION_GRANTED,
        f"{recipient.name} granted you calendar access",
        f"You can now view {recipient.name}'s calendar availability.",
        "/find-meeting",
    )
    logger.info("permission_request_approved", request_id=request_id, permission_type=kind.value)
    return permission


def deny_request(request_id: str, actor_id: str, now: datetime | None = None) -> PermissionRequest:
    now = now or utc_now()
    request = _load_actionable(request_id, actor_id, now)

    conn = get_connection()
    try:
        _close(conn, request_id, RequestStatus.DENIED, now)
        conn.commit()
    finally:
        conn.close()

    request.status = RequestStatus.DENIED
    request.responded_at = now
    logger.info("permission_request_denied", request_id=request_id)
    return request


def resolve_pending_on_signup(
    new_user_id: str,
    email: str,
    now: datetime | None = None,
) -> list[PermissionRequest]:
    """
    Rebind email-addressed requests to a newly registered user.

    Every still-actionable request for this email gets recipient_id set and
    recipient_email cleared, and the new user is notified once per request.
    """
    now = now or utc_now()
    email = normalize_email(email)

    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM permission_requests "
            "WHERE recipient_email = ? AND recipient_id IS NULL AND status = 'pending'",
            (email,),
        ).fetchall()
        pending = [r for r in map(PermissionRequest.from_row, rows) if r.is_actionable(now)]
        for request in pending:
            conn.execute(
                "UPDATE permission_requests SET recipient_id = ?, recipient_email = NULL WHERE id = ?",
                (new_user_id, request.id),
            )
            request.recipient_id = new_user_id
            request.recipient_email = None
        conn.commit()
    finally:
        conn.close()

    for request in pending:
        requester = get_user(request.requester_id)
        if requester is None:
            continue
        notify(
            new_user_id,
            PERMISSION_REQUEST,
            "Permission Request Waiting",
            f"{requester.name} requested access to your calendar before you signed up",
            REQUESTS_LINK,
        )

    if pending:
        logger.info("pending_requests_rebound", user_id=new_user_id, count=len(pending))
    return pending


# =============================================================================
# Listings
# =============================================================================


def list_pending_for(user_id: str, now: datetime | None = None) -> list[dict[str, Any]]:
    """Actionable requests addressed to user_id, with requester details."""
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT pr.*, u.name AS requester_name, u.email AS requester_email
            FROM permission_requests pr
            LEFT JOIN users u ON pr.requester_id = u.id
            WHERE pr.recipient_id = ? AND pr.status = 'pending'
            ORDER BY pr.created_at DESC
            """,
            (user_id,),
        ).fetchall()
    finally:
        conn.close()

    pending = []
    for row in rows:
        request = PermissionRequest.from_row(row)
        if not request.is_actionable(now):
            continue
        entry = request.to_dict(now)
        entry["requester"] = (
            {"id": request.requester_id, "name": row["requester_name"], "email": row["requester_email"]}
            if row["requester_email"]
            else None
        )
        pending.append(entry)
    return pending


def list_sent(requester_id: str, now: datetime | None = None) -> list[dict[str, Any]]:
    """Actionable requests sent by requester_id, with recipient details or bare email."""
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT pr.*, u.name AS recipient_name, u.email AS recipient_user_email
            FROM permission_requests pr
            LEFT JOIN users u ON pr.recipient_id = u.id
            WHERE pr.requester_id = ? AND pr.status = 'pending'
            ORDER BY pr.created_at DESC
            """,
            (requester_id,),
        ).fetchall()
    finally:
        conn.close()

    sent = []
    for row in rows:
        request = PermissionRequest.from_row(row)
        if not request.is_actionable(now):
            continue
        entry = request.to_dict(now)
        if request.recipient_id and row["recipient_user_email"]:
            entry["recipient"] = {
                "id": request.recipient_id,
                "name": row["recipient_name"],
                "email": row["recipient_user_email"],
            }
        else:
            entry["recipient"] = {"email": request.recipient_email}
        sent.append(entry)
    return sent


# =============================================================================
# Requests by email
# =============================================================================


def request_access(
    requester_id: str,
    email: str,
    context: str | None = None,
    now: datetime | None = None,
) -> tuple[str, PermissionRequest | None]:
    """
    Ask the owner of `email` for access, unless that is unnecessary.

    Returns:
        (status, request) where status is one of self, has_permission,
        request_pending, request_sent, not_registered. request is the new or
        already-pending request, when there is one.
    """
    requester = require_user(requester_id)
    email = normalize_email(email)
    if email == requester.email:
        return STATUS_SELF, None

    recipient = find_by_email(email)
    if recipient is None:
        existing = find_pending(requester_id, recipient_email=email, now=now)
        if existing is not None:
            return STATUS_REQUEST_PENDING, existing
        return STATUS_NOT_REGISTERED, create_request(
            requester_id, recipient_email=email, context=context, now=now
        )

    if has_permission(recipient.id, requester_id, now):
        return STATUS_HAS_PERMISSION, None

    existing = find_pending(requester_id, recipient_id=recipient.id, now=now)
    if existing is not None:
        return STATUS_REQUEST_PENDING, existing

    return STATUS_REQUEST_SENT, create_request(
        requester_id, recipient_id=recipient.id, context=context, now=now
    )


_STATUS_MESSAGES = {
    STATUS_SELF: "This is your email",
    STATUS_HAS_PERMISSION: "Already have access",
    STATUS_REQUEST_PENDING: "Request already pending",
    STATUS_REQUEST_SENT: "Permission request sent",
    STATUS_NOT_REGISTERED: "User not registered yet. Request will be sent when they sign up.",
    STATUS_ERROR: "Failed to process request",
}


def request_access_for_attendees(
    requester_id: str,
    emails: list[str],
    context: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Run request_access() for every attendee.

    A failure for one attendee is reported as status 'error' for that attendee
    and does not stop the others.

    Returns:
        {"results": [{"email", "status", "message"}, ...], "summary": {...}}
    """
    if not emails:
        raise InvalidRequest("At least one attendee email is required")
    require_user(requester_id)
    context = context or DEFAULT_CONTEXT

    results = []
    for raw_email in emails:
        email = normalize_email(raw_email)
        try:
            status, _ = request_access(requester_id, email, context, now)
        except (MeetSyncError, sqlite3.Error) as e:
            logger.warning("attendee_request_failed", email=email, error=str(e))
            status = STATUS_ERROR
        results.append({"email": email, "status": status, "message": _STATUS_MESSAGES[status]})

    def _count(status: str) -> int:
        return sum(1 for r in results if r["status"] == status)

    summary = {
        "total": len(results),
        "has_permission": _count(STATUS_HAS_PERMISSION),
        "request_sent": _count(STATUS_REQUEST_SENT),
        "request_pending": _count(STATUS_REQUEST_PENDING),
        "not_registered": _count(STATUS_NOT_REGISTERED),
        "errors": _count(STATUS_ERROR),
    }
    return {"results": results, "summary": summary}
