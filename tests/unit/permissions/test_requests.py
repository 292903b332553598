"""Tests for meetsync/permissions/requests.py

Request lifecycle: create -> approve | deny, lazy expiry, rebinding of
email-addressed requests on signup, and the attendee bulk entry point.
"""

import sqlite3
from datetime import timedelta

import pytest

from meetsync.errors import (
    InvalidRequest,
    NotAuthorized,
    NotFound,
    PersonalDomainRejected,
    RequestNotActionable,
    SelfGrantRejected,
)
from meetsync.models import PermissionType, RequestStatus, utc_now
from meetsync.notifications import PERMISSION_GRANTED, PERMISSION_REQUEST, list_notifications
from meetsync.permissions import requests
from meetsync.permissions.grants import grant_user, has_permission


def request_rows(db_connection) -> list:
    return db_connection.execute("SELECT * FROM permission_requests").fetchall()


# ─────────────────────────────────────────────────────────────────────────────
# Creation Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestCreateRequest:
    """Tests for create_request."""

    def test_request_to_user_notifies_recipient(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id, context="Q3 planning")

        assert request.status == RequestStatus.PENDING
        assert request.meeting_context == "Q3 planning"
        inbox = list_notifications(ben.id)
        assert [n.type for n in inbox] == [PERMISSION_REQUEST]
        assert inbox[0].title == "Ana wants to see your calendar"
        assert inbox[0].link == requests.REQUESTS_LINK

    def test_user_request_expires_in_seven_days(self, ana, ben):
        now = utc_now()
        request = requests.create_request(ana.id, recipient_id=ben.id, now=now)
        assert request.expires_at == now + timedelta(days=7)

    def test_email_request_expires_in_thirty_days(self, ana):
        now = utc_now()
        request = requests.create_request(ana.id, recipient_email="New@Startup.io", now=now)

        assert request.expires_at == now + timedelta(days=30)
        assert request.recipient_email == "new@startup.io"
        assert request.pending_signup is True

    def test_email_request_notifies_nobody(self, ana, db_connection):
        requests.create_request(ana.id, recipient_email="new@startup.io")

        assert db_connection.execute("SELECT COUNT(*) FROM notifications").fetchone()[0] == 0

    def test_exactly_one_recipient(self, ana, ben):
        with pytest.raises(InvalidRequest):
            requests.create_request(ana.id)
        with pytest.raises(InvalidRequest):
            requests.create_request(ana.id, recipient_id=ben.id, recipient_email="x@y.com")

    def test_self_request_rejected(self, ana):
        with pytest.raises(SelfGrantRejected):
            requests.create_request(ana.id, recipient_id=ana.id)
        with pytest.raises(SelfGrantRejected):
            requests.create_request(ana.id, recipient_email="ANA@acme.com")

    def test_unknown_recipient(self, ana):
        with pytest.raises(NotFound):
            requests.create_request(ana.id, recipient_id="missing")


# ─────────────────────────────────────────────────────────────────────────────
# Answering Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestApproveRequest:
    """Tests for approve_request."""

    def test_approve_once(self, ana, ben):
        now = utc_now()
        request = requests.create_request(ana.id, recipient_id=ben.id, now=now)

        permission = requests.approve_request(request.id, ben.id, "once", now=now)

        assert permission.permission_type == PermissionType.ONCE
        assert permission.expires_at == now + timedelta(days=7)
        assert has_permission(ben.id, ana.id, now) is True
        assert requests.get_request(request.id).status == RequestStatus.APPROVED

    def test_approve_user_notifies_requester(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        requests.approve_request(request.id, ben.id, PermissionType.USER)

        inbox = list_notifications(ana.id)
        assert [n.type for n in inbox] == [PERMISSION_GRANTED]
        assert inbox[0].link == "/find-meeting"
        assert has_permission(ben.id, ana.id) is True

    def test_approve_domain(self, ana, cal):
        request = requests.create_request(ana.id, recipient_id=cal.id)

        permission = requests.approve_request(request.id, cal.id, "domain", domain="acme.com")

        assert permission.grantee_domain == "acme.com"
        assert has_permission(cal.id, ana.id) is True

    def test_domain_approval_validates_before_closing(self, ana, cal):
        request = requests.create_request(ana.id, recipient_id=cal.id)

        with pytest.raises(PersonalDomainRejected):
            requests.approve_request(request.id, cal.id, "domain", domain="gmail.com")
        with pytest.raises(InvalidRequest):
            requests.approve_request(request.id, cal.id, "domain")

        assert requests.get_request(request.id).status == RequestStatus.PENDING

    def test_unknown_permission_type(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        with pytest.raises(InvalidRequest):
            requests.approve_request(request.id, ben.id, "forever")

    def test_only_recipient_may_answer(self, ana, ben, cal):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        with pytest.raises(NotAuthorized):
            requests.approve_request(request.id, cal.id, "user")
        with pytest.raises(NotAuthorized):
            requests.approve_request(request.id, ana.id, "user")

    def test_second_approval_fails(self, ana, ben, db_connection):
        request = requests.create_request(ana.id, recipient_id=ben.id)
        requests.approve_request(request.id, ben.id, "user")

        with pytest.raises(RequestNotActionable):
            requests.approve_request(request.id, ben.id, "user")

        grants = db_connection.execute("SELECT COUNT(*) FROM calendar_permissions").fetchone()[0]
        assert grants == 1

    def test_failed_grant_insert_leaves_request_pending(self, ana, ben, monkeypatch, db_connection):
        from meetsync.permissions import grants

        request = requests.create_request(ana.id, recipient_id=ben.id)

        def broken_insert(conn, permission):
            raise sqlite3.OperationalError("database is locked")

        with monkeypatch.context() as m:
            m.setattr(grants, "_insert_permission", broken_insert)
            with pytest.raises(sqlite3.OperationalError):
                requests.approve_request(request.id, ben.id, "user")

        row = db_connection.execute(
            "SELECT status, responded_at FROM permission_requests WHERE id = ?", (request.id,)
        ).fetchone()
        assert (row["status"], row["responded_at"]) == ("pending", None)
        assert not has_permission(ben.id, ana.id)

        requests.approve_request(request.id, ben.id, "user")
        assert has_permission(ben.id, ana.id)

    def test_expired_request_not_actionable(self, ana, ben):
        created = utc_now() - timedelta(days=8)
        request = requests.create_request(ana.id, recipient_id=ben.id, now=created)

        assert request.effective_status() == RequestStatus.EXPIRED
        with pytest.raises(RequestNotActionable):
            requests.approve_request(request.id, ben.id, "once")

    def test_unknown_request(self, ben):
        with pytest.raises(NotFound):
            requests.approve_request("missing", ben.id, "once")


class TestDenyRequest:
    def test_deny(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        denied = requests.deny_request(request.id, ben.id)

        assert denied.status == RequestStatus.DENIED
        assert denied.responded_at is not None
        assert has_permission(ben.id, ana.id) is False
        with pytest.raises(RequestNotActionable):
            requests.approve_request(request.id, ben.id, "user")

    def test_deny_by_non_recipient(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        with pytest.raises(NotAuthorized):
            requests.deny_request(request.id, ana.id)


# ─────────────────────────────────────────────────────────────────────────────
# Signup Rebinding Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestResolvePendingOnSignup:
    """Requests filed against an email are rebound when that email registers."""

    def test_rebound_and_notified_once(self, ana, make_user, db_connection):
        request = requests.create_request(ana.id, recipient_email="newhire@startup.io")

        newhire = make_user("newhire@startup.io", "New Hire")

        stored = requests.get_request(request.id)
        assert stored.recipient_id == newhire.id
        assert stored.recipient_email is None
        inbox = list_notifications(newhire.id)
        assert len(inbox) == 1
        assert inbox[0].type == PERMISSION_REQUEST
        assert inbox[0].title == "Permission Request Waiting"

    def test_rebound_request_can_be_approved(self, ana, make_user):
        request = requests.create_request(ana.id, recipient_email="newhire@startup.io")
        newhire = make_user("newhire@startup.io")

        requests.approve_request(request.id, newhire.id, "user")

        assert has_permission(newhire.id, ana.id) is True

    def test_expired_email_requests_not_rebound(self, ana, make_user):
        stale = requests.create_request(
            ana.id, recipient_email="late@startup.io", now=utc_now() - timedelta(days=31)
        )

        late = make_user("late@startup.io")

        assert requests.get_request(stale.id).recipient_id is None
        assert list_notifications(late.id) == []

    def test_rerunning_is_a_no_op(self, ana, make_user):
        requests.create_request(ana.id, recipient_email="newhire@startup.io")
        newhire = make_user("newhire@startup.io")

        assert requests.resolve_pending_on_signup(newhire.id, newhire.email) == []
        assert len(list_notifications(newhire.id)) == 1


# ─────────────────────────────────────────────────────────────────────────────
# Listing Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestListings:
    def test_pending_for_recipient(self, ana, ben):
        request = requests.create_request(ana.id, recipient_id=ben.id)

        pending = requests.list_pending_for(ben.id)

        assert [p["id"] for p in pending] == [request.id]
        assert pending[0]["requester"]["email"] == "ana@acme.com"
        assert pending[0]["status"] == "pending"

    def test_expired_requests_hidden(self, ana, ben):
        requests.create_request(ana.id, recipient_id=ben.id, now=utc_now() - timedelta(days=8))

        assert requests.list_pending_for(ben.id) == []
        assert requests.list_sent(ana.id) == []

    def test_sent_includes_unregistered_recipients(self, ana, ben):
        requests.create_request(ana.id, recipient_id=ben.id)
        requests.create_request(ana.id, recipient_email="ghost@startup.io")

        sent = requests.list_sent(ana.id)

        recipients = [s["recipient"] for s in sent]
        assert {"email": "ghost@startup.io"} in recipients
        assert any(r.get("id") == ben.id for r in recipients)


# ─────────────────────────────────────────────────────────────────────────────
# Request By Email Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRequestAccess:
    """Tests for request_access."""

    def test_self(self, ana):
        assert requests.request_access(ana.id, "Ana@acme.com") == (requests.STATUS_SELF, None)

    def test_already_has_permission(self, ana, ben):
        grant_user(ben.id, ana.id)
        assert requests.request_access(ana.id, "ben@acme.com") == (
            requests.STATUS_HAS_PERMISSION,
            None,
        )

    def test_request_sent_then_pending(self, ana, ben, db_connection):
        status, first = requests.request_access(ana.id, "ben@acme.com", "Sync")
        assert status == requests.STATUS_REQUEST_SENT

        status, second = requests.request_access(ana.id, "ben@acme.com", "Sync")
        assert status == requests.STATUS_REQUEST_PENDING
        assert second.id == first.id
        assert len(request_rows(db_connection)) == 1

    def test_unregistered_is_deduplicated(self, ana, db_connection):
        status, first = requests.request_access(ana.id, "ghost@startup.io")
        assert status == requests.STATUS_NOT_REGISTERED
        assert first.pending_signup

        status, second = requests.request_access(ana.id, "GHOST@startup.io")
        assert status == requests.STATUS_REQUEST_PENDING
        assert second.id == first.id
        assert len(request_rows(db_connection)) == 1

    def test_expired_request_is_refiled(self, ana, ben, db_connection):
        requests.create_request(ana.id, recipient_id=ben.id, now=utc_now() - timedelta(days=8))

        status, _ = requests.request_access(ana.id, "ben@acme.com")

        assert status == requests.STATUS_REQUEST_SENT
        assert len(request_rows(db_connection)) == 2


class TestRequestAccessForAttendees:
    """Tests for request_access_for_attendees."""

    def test_mixed_statuses_and_summary(self, ana, ben, cal):
        grant_user(cal.id, ana.id)

        outcome = requests.request_access_for_attendees(
            ana.id, ["ben@acme.com", "cal@other.org", "ghost@startup.io", "ana@acme.com"]
        )

        assert [r["status"] for r in outcome["results"]] == [
            requests.STATUS_REQUEST_SENT,
            requests.STATUS_HAS_PERMISSION,
            requests.STATUS_NOT_REGISTERED,
            requests.STATUS_SELF,
        ]
        assert outcome["summary"] == {
            "total": 4,
            "has_permission": 1,
            "request_sent": 1,
            "request_pending": 0,
            "not_registered": 1,
            "errors": 0,
        }
        assert requests.find_pending(ana.id, recipient_id=ben.id).meeting_context == (
            requests.DEFAULT_CONTEXT
        )

    def test_one_failure_does_not_stop_the_rest(self, ana, ben, monkeypatch):
        real = requests.request_access

        def flaky(requester_id, email, context=None, now=None):
            if email == "boom@acme.com":
                raise InvalidRequest("boom")
            return real(requester_id, email, context, now)

        monkeypatch.setattr(requests, "request_access", flaky)

        outcome = requests.request_access_for_attendees(ana.id, ["boom@acme.com", "ben@acme.com"])

        assert [r["status"] for r in outcome["results"]] == [
            requests.STATUS_ERROR,
            requests.STATUS_REQUEST_SENT,
        ]
        assert outcome["results"][0]["message"] == "Failed to process request"
        assert outcome["summary"]["errors"] == 1

    def test_empty_list_rejected(self, ana):
        with pytest.raises(InvalidRequest):
            requests.request_access_for_attendees(ana.id, [])
