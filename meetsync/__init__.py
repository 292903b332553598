"""meetsync: Mutual availability across calendars that don't trust each other

Philosophy:
    Nobody's calendar is readable by default. A requester only ever sees
    another person's busy time after that person has granted access, either
    to them directly, to their whole company domain, or once for a single
    scheduling round.

Components:
    models.py: Data models (User, AvailabilityRule, CalendarPermission, ...)
    users.py: Registration, preferences, default rule bootstrap
    notifications.py: Notification sink and inbox
    calendar/: External busy-time retrieval and credential refresh
    availability/: Weekly rules, slot search, suggestions, find-times flow
    permissions/: Grants, permission requests, domain validation
    meetings.py: Scheduled meeting records
    api/: FastAPI application
"""

import os
import sqlite3
from pathlib import Path


# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "args"
DATA_PATH = PROJECT_ROOT / "data"
DB_PATH = Path(os.environ.get("MEETSYNC_DB_PATH", str(DATA_PATH / "meetsync.db")))


def get_connection() -> sqlite3.Connection:
    """
    Get database connection, creating tables if needed.

    Returns:
        SQLite connection with row_factory set
    """
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            timezone TEXT NOT NULL DEFAULT 'UTC',
            buffer_minutes INTEGER NOT NULL DEFAULT 30,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # Linked external calendar credentials
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS oauth_tokens (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            access_token TEXT NOT NULL,
            refresh_token TEXT,
            token_expiry DATETIME,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            UNIQUE(user_id, provider),
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS availability_rules (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            day_of_week INTEGER NOT NULL CHECK(day_of_week BETWEEN 0 AND 6),
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            timezone TEXT NOT NULL,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS blocked_times (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            start_time DATETIME NOT NULL,
            end_time DATETIME NOT NULL,
            reason TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS meetings (
            id TEXT PRIMARY KEY,
            coordinator_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            start_time DATETIME NOT NULL,
            end_time DATETIME NOT NULL,
            status TEXT DEFAULT 'scheduled',
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (coordinator_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS meeting_participants (
            id TEXT PRIMARY KEY,
            meeting_id TEXT NOT NULL,
            user_id TEXT NOT NULL,
            status TEXT DEFAULT 'invited',
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (meeting_id) REFERENCES meetings(id),
            FOREIGN KEY (user_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS calendar_permissions (
            id TEXT PRIMARY KEY,
            grantor_id TEXT NOT NULL,
            grantee_id TEXT,
            grantee_domain TEXT,
            permission_type TEXT NOT NULL CHECK(permission_type IN ('once', 'user', 'domain')),
            status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'revoked')),
            expires_at DATETIME,
            created_at DATETIME NOT NULL,
            updated_at DATETIME,
            FOREIGN KEY (grantor_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS permission_requests (
            id TEXT PRIMARY KEY,
            requester_id TEXT NOT NULL,
            recipient_id TEXT,
            recipient_email TEXT,
            meeting_context TEXT,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK(status IN ('pending', 'approved', 'denied', 'expired')),
            responded_at DATETIME,
            expires_at DATETIME NOT NULL,
            created_at DATETIME NOT NULL,
            FOREIGN KEY (requester_id) REFERENCES users(id)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            title TEXT NOT NULL,
            message TEXT NOT NULL,
            link TEXT,
            read BOOLEAN DEFAULT FALSE,
            created_at DATETIME NOT NULL
        )
    """)

    # Indexes
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_rules_user_day "
        "ON availability_rules(user_id, day_of_week)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_blocked_user_start "
        "ON blocked_times(user_id, start_time)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_permissions_grantor "
        "ON calendar_permissions(grantor_id, status)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_requests_recipient "
        "ON permission_requests(recipient_id, status)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_requests_email "
        "ON permission_requests(recipient_email, status)"
    )
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_notifications_user "
        "ON notifications(user_id, created_at)"
    )

    conn.commit()
    return conn


__all__ = ["CONFIG_PATH", "DATA_PATH", "DB_PATH", "PROJECT_ROOT", "get_connection"]
