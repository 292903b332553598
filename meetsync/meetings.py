"""
Tool: Meetings
Purpose: Record a meeting once a slot has been chosen

Meetings are immutable here: there is no reschedule or cancel. Creating an
event on the participants' external calendars happens elsewhere.

Usage:
    from meetsync.meetings import create_meeting, list_meetings

    meeting = create_meeting(coordinator_id, "Q3 planning", slot.start, slot.end, [ana_id])
"""

import sqlite3
from datetime import datetime

from meetsync import get_connection
from meetsync.errors import InvalidRequest, NotFound
from meetsync.logging_config import get_logger
from meetsync.models import Meeting, ensure_aware, from_storage, generate_id, to_storage
from meetsync.notifications import MEETING_SCHEDULED, notify
from meetsync.users import require_user

logger = get_logger(__name__)


def _participant_ids(conn: sqlite3.Connection, meeting_id: str) -> list[str]:
    rows = conn.execute(
        "SELECT user_id FROM meeting_participants WHERE meeting_id = ? ORDER BY rowid",
        (meeting_id,),
    ).fetchall()
    return [r["user_id"] for r in rows]


def _from_row(conn: sqlite3.Connection, row: sqlite3.Row) -> Meeting:
    return Meeting(
        id=row["id"],
        coordinator_id=row["coordinator_id"],
        title=row["title"],
        description=row["description"],
        start=from_storage(row["start_time"]),
        end=from_storage(row["end_time"]),
        status=row["status"],
        participant_ids=_participant_ids(conn, row["id"]),
        created_at=from_storage(row["created_at"]),
    )


def create_meeting(
    coordinator_id: str,
    title: str,
    start: datetime,
    end: datetime,
    participant_ids: list[str],
    description: str | None = None,
) -> Meeting:
    """
    Store a meeting and invite its participants.

    Raises:
        InvalidRequest: Empty title, start >= end, or no participants
        NotFound: Coordinator or a participant does not exist
    """
    if not title or not title.strip():
        raise InvalidRequest("title is required")
    start = ensure_aware(start)
    end = ensure_aware(end)
    if start >= end:
        raise InvalidRequest("Meeting must end after it starts")
    participant_ids = list(dict.fromkeys(participant_ids))
    if not participant_ids:
        raise InvalidRequest("At least one participant is required")

    coordinator = require_user(coordinator_id)
    for participant_id in participant_ids:
        require_user(participant_id)

    meeting = Meeting(
        id=generate_id(),
        coordinator_id=coordinator_id,
        title=title.strip(),
        description=description,
        start=start,
        end=end,
        participant_ids=participant_ids,
    )

    conn = get_connection()
    try:
        conn.execute(
            """
            INSERT INTO meetings (id, coordinator_id, title, description, start_time, end_time, status, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                meeting.id,
                coordinator_id,
                meeting.title,
                description,
                to_storage(start),
                to_storage(end),
                meeting.status,
                to_storage(meeting.created_at),
            ),
        )
        conn.executemany(
            "INSERT INTO meeting_participants (id, meeting_id, user_id) VALUES (?, ?, ?)",
            [(generate_id(), meeting.id, pid) for pid in participant_ids],
        )
        conn.commit()
    finally:
        conn.close()

    logger.info(
        "meeting_created",
        meeting_id=meeting.id,
        coordinator_id=coordinator_id,
        participants=len(participant_ids),
    )

    for participant_id in participant_ids:
        if participant_id == coordinator_id:
            continue
        notify(
            participant_id,
            MEETING_SCHEDULED,
            f"{coordinator.name} scheduled {meeting.title}",
            f"{meeting.title} on {start.isoformat()}",
            "/dashboard",
        )

    return meeting


def get_meeting(meeting_id: str) -> Meeting:
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
        if row is None:
            raise NotFound(f"Meeting not found: {meeting_id}")
        return _from_row(conn, row)
    finally:
        conn.close()


def list_meetings(coordinator_id: str) -> list[Meeting]:
    """Meetings coordinated by this user, latest start first."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM meetings WHERE coordinator_id = ? ORDER BY start_time DESC",
            (coordinator_id,),
        ).fetchall()
        return [_from_row(conn, r) for r in rows]
    finally:
        conn.close()
