"""
Tool: Users
Purpose: Account records and per-user scheduling preferences

Registration also bootstraps the default weekly rules and rebinds any
permission requests that were filed against the new user's email before
they had an account.
"""

import sqlite3
from datetime import datetime

from meetsync import get_connection
from meetsync.config_models import get_config
from meetsync.errors import InvalidRequest, NotFound
from meetsync.logging_config import get_logger
from meetsync.models import User, generate_id, load_zone, to_storage, utc_now

logger = get_logger(__name__)

FREQUENT_CONTACTS_LIMIT = 20


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(user_id: str) -> User | None:
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    finally:
        conn.close()
    return User.from_row(row) if row else None


def require_user(user_id: str) -> User:
    user = get_user(user_id)
    if user is None:
        raise NotFound(f"User not found: {user_id}")
    return user


def find_by_email(email: str) -> User | None:
    conn = get_connection()
    try:
        row = conn.execute(
            "SELECT * FROM users WHERE email = ?", (normalize_email(email),)
        ).fetchone()
    finally:
        conn.close()
    return User.from_row(row) if row else None


def find_by_emails(emails: list[str]) -> list[User]:
    wanted = [normalize_email(e) for e in emails]
    if not wanted:
        return []
    placeholders = ", ".join("?" for _ in wanted)
    conn = get_connection()
    try:
        rows = conn.execute(
            f"SELECT * FROM users WHERE email IN ({placeholders})", wanted
        ).fetchall()
    finally:
        conn.close()
    return [User.from_row(r) for r in rows]


def register_user(
    email: str,
    name: str,
    timezone: str | None = None,
    buffer_minutes: int | None = None,
    bootstrap_rules: bool = True,
) -> User:
    """
    Create a user on first authentication.

    Args:
        email: Login email (stored lowercase)
        name: Display name
        timezone: IANA timezone, defaults to users.default_timezone
        buffer_minutes: Padding around busy intervals, defaults to calendar.default_buffer_minutes
        bootstrap_rules: Create the default Mon-Fri 09:00-17:00 rules

    Returns:
        The new User
    """
    from meetsync.availability.rules import create_default_rules
    from meetsync.permissions.requests import resolve_pending_on_signup

    config = get_config()
    email = normalize_email(email)
    if "@" not in email:
        raise InvalidRequest(f"Invalid email: {email!r}")

    timezone = timezone or config.users.default_timezone
    load_zone(timezone)
    if buffer_minutes is None:
        buffer_minutes = config.calendar.default_buffer_minutes
    if buffer_minutes < 0:
        raise InvalidRequest("buffer_minutes cannot be negative")

    user = User(
        id=generate_id(),
        email=email,
        name=name or email,
        timezone=timezone,
        buffer_minutes=buffer_minutes,
        created_at=utc_now(),
    )

    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO users (id, email, name, timezone, buffer_minutes, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user.id,
                user.email,
                user.name,
                user.timezone,
                user.buffer_minutes,
                to_storage(user.created_at),
                to_storage(user.created_at),
            ),
        )
        conn.commit()
    except sqlite3.IntegrityError as e:
        raise InvalidRequest(f"User already exists: {email}") from e
    finally:
        conn.close()

    logger.info("user_registered", user_id=user.id, timezone=timezone)

    if bootstrap_rules:
        create_default_rules(user.id, timezone)

    resolve_pending_on_signup(user.id, user.email)
    return user


def _update(user_id: str, column: str, value) -> User:
    conn = get_connection()
    try:
        cursor = conn.execute(
            f"UPDATE users SET {column} = ?, updated_at = ? WHERE id = ?",
            (value, to_storage(utc_now()), user_id),
        )
        conn.commit()
    finally:
        conn.close()
    if cursor.rowcount == 0:
        raise NotFound(f"User not found: {user_id}")
    return require_user(user_id)


def update_timezone(user_id: str, timezone: str) -> User:
    load_zone(timezone)
    return _update(user_id, "timezone", timezone)


def update_buffer(user_id: str, buffer_minutes: int) -> User:
    if buffer_minutes < 0:
        raise InvalidRequest("buffer_minutes cannot be negative")
    return _update(user_id, "buffer_minutes", buffer_minutes)


def frequent_contacts(user_id: str, limit: int = FREQUENT_CONTACTS_LIMIT) -> list[dict[str, str]]:
    """
    People this user recently dealt with: grantees of their active
    user-level grants and recipients of requests they sent.
    """
    conn = get_connection()
    try:
        rows = conn.execute(
            """
            SELECT u.email, u.name, MAX(cp.created_at) AS last_interaction
            FROM calendar_permissions cp
            JOIN users u ON cp.grantee_id = u.id
            WHERE cp.grantor_id = ? AND cp.status = 'active'
            GROUP BY u.email, u.name
            UNION ALL
            SELECT u.email, u.name, MAX(pr.created_at) AS last_interaction
            FROM permission_requests pr
            JOIN users u ON pr.recipient_id = u.id
            WHERE pr.requester_id = ?
            GROUP BY u.email, u.name
            """,
            (user_id, user_id),
        ).fetchall()
    finally:
        conn.close()

    latest: dict[str, tuple[datetime, str]] = {}
    for row in rows:
        email = row["email"].lower()
        seen = datetime.fromisoformat(row["last_interaction"])
        if email not in latest or seen > latest[email][0]:
            latest[email] = (seen, row["name"] or row["email"])

    ordered = sorted(latest.items(), key=lambda item: item[1][0], reverse=True)
    return [{"email": email, "name": name} for email, (_, name) in ordered[:limit]]
