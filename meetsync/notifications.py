"""
Tool: Notification Sink
Purpose: Record in-app notifications for users

Features:
- Fire-and-forget `notify()` used by the permission flows
- Inbox listing (latest 50, or all unread)
- Mark one / all as read

Usage:
    from meetsync.notifications import notify
    notify(user_id, "permission_request", "Ana wants to see your calendar", "...", "/permissions/requests")

Delivery beyond the inbox (email, push) is handled elsewhere; failures to record
a notification are logged and never raised to the caller.
"""

import sqlite3

from meetsync import get_connection
from meetsync.logging_config import get_logger
from meetsync.models import Notification, generate_id, to_storage, utc_now

logger = get_logger(__name__)

# Notification types
PERMISSION_REQUEST = "permission_request"
PERMISSION_GRANTED = "permission_granted"
MEETING_SCHEDULED = "meeting_scheduled"

INBOX_LIMIT = 50


def notify(
    user_id: str,
    type: str,
    title: str,
    message: str,
    link: str | None = None,
) -> str | None:
    """
    Record a notification for a user.

    Returns:
        The notification id, or None if it could not be stored
    """
    notification_id = generate_id()
    try:
        conn = get_connection()
        try:
            conn.execute(
                """
                INSERT INTO notifications (id, user_id, type, title, message, link, read, created_at)
                VALUES (?, ?, ?, ?, ?, ?, FALSE, ?)
                """,
                (notification_id, user_id, type, title, message, link, to_storage(utc_now())),
            )
            conn.commit()
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.warning("notification_dropped", user_id=user_id, type=type, error=str(e))
        return None

    logger.debug("notification_recorded", user_id=user_id, type=type)
    return notification_id


def list_notifications(user_id: str, unread_only: bool = False) -> list[Notification]:
    conn = get_connection()
    try:
        if unread_only:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? AND read = FALSE "
                "ORDER BY created_at DESC",
                (user_id,),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                (user_id, INBOX_LIMIT),
            ).fetchall()
    finally:
        conn.close()
    return [Notification.from_row(r) for r in rows]


def mark_read(notification_id: str, user_id: str) -> bool:
    """Mark one notification read. Returns False if it is not this user's."""
    conn = get_connection()
    try:
        cursor = conn.execute(
            "UPDATE notifications SET read = TRUE WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def mark_all_read(user_id: str) -> int:
    conn = get_connection()
    try:
        cursor = conn.execute(
            "UPDATE notifications SET read = TRUE WHERE user_id = ? AND read = FALSE",
            (user_id,),
        )
        conn.commit()
        return cursor.rowcount
    finally:
        conn.close()
