"""Tests for meetsync/notifications.py"""

import sqlite3
from unittest.mock import patch

from meetsync.notifications import (
    PERMISSION_REQUEST,
    list_notifications,
    mark_all_read,
    mark_read,
    notify,
)


class TestNotify:
    def test_recorded_unread(self, ana):
        notification_id = notify(ana.id, PERMISSION_REQUEST, "Title", "Body", "/link")

        inbox = list_notifications(ana.id)
        assert [n.id for n in inbox] == [notification_id]
        assert inbox[0].read is False
        assert inbox[0].to_dict()["link"] == "/link"

    def test_storage_failure_is_swallowed(self, ana):
        with patch(
            "meetsync.notifications.get_connection",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            assert notify(ana.id, PERMISSION_REQUEST, "Title", "Body") is None


class TestInbox:
    def test_unread_only(self, ana):
        first = notify(ana.id, PERMISSION_REQUEST, "One", "Body")
        notify(ana.id, PERMISSION_REQUEST, "Two", "Body")

        assert mark_read(first, ana.id) is True

        unread = list_notifications(ana.id, unread_only=True)
        assert [n.title for n in unread] == ["Two"]
        assert len(list_notifications(ana.id)) == 2

    def test_mark_read_other_users_notification(self, ana, ben):
        notification_id = notify(ana.id, PERMISSION_REQUEST, "Title", "Body")

        assert mark_read(notification_id, ben.id) is False
        assert list_notifications(ana.id)[0].read is False

    def test_mark_all_read(self, ana, ben):
        notify(ana.id, PERMISSION_REQUEST, "One", "Body")
        notify(ana.id, PERMISSION_REQUEST, "Two", "Body")
        notify(ben.id, PERMISSION_REQUEST, "Other", "Body")

        assert mark_all_read(ana.id) == 2
        assert mark_all_read(ana.id) == 0
        assert list_notifications(ana.id, unread_only=True) == []
        assert len(list_notifications(ben.id, unread_only=True)) == 1

    def test_inbox_limited_to_latest_fifty(self, ana):
        for i in range(55):
            notify(ana.id, PERMISSION_REQUEST, f"n{i}", "Body")

        assert len(list_notifications(ana.id)) == 50
        assert len(list_notifications(ana.id, unread_only=True)) == 55
