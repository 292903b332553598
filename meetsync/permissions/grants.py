"""
Tool: Calendar Grants
Purpose: Decide who may read whose busy time, and manage the grants

Grant kinds:
    OnceGrant(grantee_id, expires_at): one scheduling round, expires
    UserGrant(grantee_id): durable, one grantee
    DomainGrant(domain): durable, everyone whose email is @domain

An owner can always read their own calendar; no row is needed for that.

The low-level grant functions do not deduplicate. Callers that must avoid
duplicate grants check find_active_grant() first, as grant_access() does.

Usage:
    from meetsync.permissions.grants import has_permission, grant_user, revoke

    if has_permission(owner_id, requester_id):
        ...
    permission = grant_user(owner_id, colleague_id)
    revoke(permission.id, owner_id)
"""

import re
import sqlite3
from datetime import datetime, timedelta
from typing import Any

from meetsync import get_connection
from meetsync.config_models import get_config
from meetsync.errors import InvalidRequest, NotAuthorized, NotFound, SelfGrantRejected
from meetsync.logging_config import get_logger
from meetsync.models import (
    CalendarPermission,
    DomainGrant,
    Grant,
    OnceGrant,
    PermissionStatus,
    UserGrant,
    generate_id,
    grant_type,
    to_storage,
    utc_now,
)
from meetsync.notifications import PERMISSION_GRANTED, notify
from meetsync.permissions.domains import domain_of, validate_grant_domain
from meetsync.users import find_by_email, get_user, normalize_email, require_user

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _get_permission(permission_id: str) -> CalendarPermission | None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM calendar_permissions WHERE id = ?", (permission_id,)
        ).fetchone()
    finally:
        conn.close()
    return CalendarPermission.from_row(row) if row else None


# =============================================================================
# Authorization check
# =============================================================================


def has_permission(owner_id: str, requester_id: str, now: datetime | None = None) -> bool:
    """
    Check whether requester may read owner's busy intervals.

    True for the owner themself, or when an active, unexpired grant from the
    owner names the requester or the requester's email domain.
    """
    if owner_id == requester_id:
        return True

    now = now or utc_now()
    requester = get_user(requester_id)
    requester_domain = domain_of(requester.email) if requester else None

    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT * FROM calendar_permissions
            WHERE grantor_id = ? AND status = 'active'
            AND (grantee_id = ? OR grantee_domain = ?)
            """,
            (owner_id, requester_id, requester_domain),
        ).fetchall()
    finally:
        conn.close()

    return any(
        CalendarPermission.from_row(row).authorizes(requester_id, requester_domain, now)
        for row in rows
    )


# =============================================================================
# Granting
# =============================================================================


def _insert_permission(conn: sqlite3.Connection, permission: CalendarPermission) -> None:
    conn.execute(
        """
        INSERT INTO calendar_permissions (
            id, grantor_id, grantee_id, grantee_domain, permission_type,
            status, expires_at, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            permission.id,
            permission.grantor_id,
            permission.grantee_id,
            permission.grantee_domain,
            permission.permission_type.value,
            permission.status.value,
            to_storage(permission.expires_at),
            to_storage(permission.created_at),
        ),
    )


def grant(
    grantor_id: str,
    grant: Grant,
    conn: sqlite3.Connection | None = None,
) -> CalendarPermission:
    """
    Store a grant from grantor_id.

    With conn, the insert joins the caller's open transaction and the caller
    commits.

    Raises:
        SelfGrantRejected: Grantee is the grantor
        InvalidDomain: Domain grant target is not a domain
        PersonalDomainRejected: Domain grant target is a consumer mail provider
    """
    if isinstance(grant, (OnceGrant, UserGrant)):
        if grant.grantee_id == grantor_id:
            raise SelfGrantRejected("You cannot grant access to yourself")
    elif isinstance(grant, DomainGrant):
        grant = DomainGrant(validate_grant_domain(grant.domain))
    else:
        raise TypeError(f"Unknown grant variant: {grant!r}")

    permission = CalendarPermission(id=generate_id(), grantor_id=grantor_id, grant=grant)

    if conn is not None:
        _insert_permission(conn, permission)
    else:
        own_conn = get_connection()
        try:
            _insert_permission(own_conn, permission)
            own_conn.commit()
        finally:
            own_conn.close()

    logger.info(
        "permission_granted",
        permission_id=permission.id,
        grantor_id=grantor_id,
        permission_type=grant_type(grant).value,
    )
    return permission


def grant_user(grantor_id: str, grantee_id: str) -> CalendarPermission:
    return grant(grantor_id, UserGrant(grantee_id))


def grant_domain(grantor_id: str, domain: str) -> CalendarPermission:
    return grant(grantor_id, DomainGrant(domain))


def once_grant(grantee_id: str, now: datetime | None = None) -> OnceGrant:
    """Single-round grant, valid for permissions.once_expiry_days from now."""
    days = get_config().permissions.once_expiry_days
    return OnceGrant(grantee_id, (now or utc_now()) + timedelta(days=days))


def grant_once(grantor_id: str, grantee_id: str, now: datetime | None = None) -> CalendarPermission:
    return grant(grantor_id, once_grant(grantee_id, now))


def revoke(permission_id: str, actor_id: str) -> CalendarPermission:
    """
    Revoke a grant. Only its grantor may do so.

    Raises:
        NotFound: Unknown permission id
        NotAuthorized: actor_id is not the grantor
    """
    permission = _get_permission(permission_id)
    if permission is None:
        raise NotFound(f"Permission not found: {permission_id}")
    if permission.grantor_id != actor_id:
        raise NotAuthorized("Only the grantor can revoke this permission")

    now = utc_now()
    conn = get_connection()
    try:
        conn.execute(
            "UPDATE calendar_permissions SET status = ?, updated_at = ? WHERE id = ?",
            (PermissionStatus.REVOKED.value, to_storage(now), permission_id),
        )
        conn.commit()
    finally:
        conn.close()

    permission.status = PermissionStatus.REVOKED
    permission.updated_at = now
    logger.info("permission_revoked", permission_id=permission_id, grantor_id=actor_id)
    return permission


# =============================================================================
# Lookups
# =============================================================================


def find_active_grant(
    grantor_id: str,
    grantee_id: str | None = None,
    domain: str | None = None,
    now: datetime | None = None,
) -> CalendarPermission | None:
    """
    An active grant from grantor_id to a user (user or once kind) or to a domain.

    Once-grants past their expiry do not count.
    """
    now = now or utc_now()
    for permission in list_granted_by(grantor_id):
        grant = permission.grant
        if grantee_id is not None and isinstance(grant, UserGrant):
            if grant.grantee_id == grantee_id:
                return permission
        elif grantee_id is not None and isinstance(grant, OnceGrant):
            if grant.grantee_id == grantee_id and grant.expires_at > now:
                return permission
        elif domain is not None and isinstance(grant, DomainGrant):
            if grant.domain == domain:
                return permission
    return None


def list_granted_by(grantor_id: str) -> list[CalendarPermission]:
    """Active grants made by grantor_id, newest first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM calendar_permissions WHERE grantor_id = ? AND status = 'active' "
            "ORDER BY created_at DESC",
            (grantor_id,),
        ).fetchall()
    finally:
        conn.close()
    return [CalendarPermission.from_row(r) for r in rows]


def describe_granted_by(grantor_id: str) -> list[dict[str, Any]]:
    """list_granted_by() with the grantee's name and email attached."""
    described = []
    for permission in list_granted_by(grantor_id):
        entry = permission.to_dict()
        grantee = get_user(permission.grantee_id) if permission.grantee_id else None
        entry["grantee_info"] = (
            {"id": grantee.id, "name": grantee.name, "email": grantee.email} if grantee else None
        )
        described.append(entry)
    return described


def list_granted_to(user_id: str) -> list[dict[str, Any]]:
    """
    Active grants that name user_id or user_id's email domain, with grantor
    details. The user's own grants are left out.
    """
    user = require_user(user_id)
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT cp.*, u.email AS grantor_email, u.name AS grantor_name
            FROM calendar_permissions cp
            JOIN users u ON cp.grantor_id = u.id
            WHERE (cp.grantee_id = ? OR cp.grantee_domain = ?)
            AND cp.status = 'active'
            AND cp.grantor_id != ?
            ORDER BY cp.created_at DESC
            """,
            (user_id, domain_of(user.email), user_id),
        ).fetchall()
    finally:
        conn.close()

    granted = []
    for row in rows:
        entry = CalendarPermission.from_row(row).to_dict()
        entry["grantor_email"] = row["grantor_email"]
        entry["grantor_name"] = row["grantor_name"]
        granted.append(entry)
    return granted


# =============================================================================
# Direct grants by email or domain
# =============================================================================


def grant_access(grantor_id: str, kind: str, value: str) -> CalendarPermission:
    """
    Grant access to a registered user by email, or to a whole domain.

    Args:
        grantor_id: Calendar owner
        kind: 'email' or 'domain'
        value: Email address or domain (a leading '@' is accepted)

    Raises:
        InvalidRequest: Unknown kind, malformed email, or already granted
        NotFound: No registered user with that email
        SelfGrantRejected: Email is the grantor's own
        InvalidDomain / PersonalDomainRejected: Domain validation failed
    """
    if not value or not value.strip():
        raise InvalidRequest("Value is required")

    if kind == "domain":
        domain = validate_grant_domain(value)
        if find_active_grant(grantor_id, domain=domain):
            raise InvalidRequest(f"You already granted access to @{domain}")
        return grant_domain(grantor_id, domain)

    if kind == "email":
        email = normalize_email(value)
        if not EMAIL_PATTERN.match(email):
            raise InvalidRequest(f"Invalid email format: {value!r}")

        grantee = find_by_email(email)
        if grantee is None:
            raise NotFound(
                "User not found. They must have an account before you can grant them access."
            )
        if grantee.id == grantor_id:
            raise SelfGrantRejected("You cannot grant access to yourself")
        if find_active_grant(grantor_id, grantee_id=grantee.id):
            raise InvalidRequest(f"You already granted access to {email}")

        permission = grant_user(grantor_id, grantee.id)

        grantor = require_user(grantor_id)
        notify(
            grantee.id,
            PERMISSION_GRANTED,
            f"{grantor.name} granted you calendar access",
            f"You can now view {grantor.name}'s calendar availability.",
            "/dashboard",
        )
        return permission

    raise InvalidRequest(f"Invalid type {kind!r}. Must be 'email' or 'domain'")
