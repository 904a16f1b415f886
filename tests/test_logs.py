"""Tests for notification log endpoints and the log store."""

from datetime import datetime, timedelta, timezone

import pytest

from app.models.notification_log import NotificationLog
from app.services import notification_log


@pytest.fixture
def seeded(db_session, make_client, make_reminder):
    """Two clients, three reminders and a mix of delivery outcomes."""
    jane = make_client()
    bob = make_client(full_name="Bob", email="bob@example.com", whatsapp_number=None)
    cert = make_reminder(jane)
    domain = make_reminder(jane, product_service_name="Domain")
    hosting = make_reminder(bob, product_service_name="Hosting")

    rows = [
        (cert, jane, "email", "sent"),
        (cert, jane, "whatsapp", "failed"),
        (domain, jane, "email", "pending"),
        (hosting, bob, "email", "sent"),
    ]
    for reminder, client, channel, status in rows:
        db_session.add(
            NotificationLog(
                reminder_id=reminder.id,
                client_id=client.id,
                channel=channel,
                recipient=client.email if channel == "email" else client.whatsapp_number,
                subject="Reminder" if channel == "email" else None,
                message_body="Dear client",
                status=status,
            )
        )
    db_session.commit()
    return {"jane": jane, "bob": bob, "cert": cert, "domain": domain, "hosting": hosting}


class TestLogEndpoints:
    def test_list_all(self, auth_client, seeded):
        data = auth_client.get("/logs").json()
        assert data["total_count"] == 4
        assert len(data["items"]) == 4

    def test_filters(self, auth_client, seeded):
        assert auth_client.get("/logs?status=sent").json()["total_count"] == 2
        assert auth_client.get("/logs?channel=whatsapp").json()["total_count"] == 1
        assert auth_client.get(f"/logs?client_id={seeded['bob'].id}").json()["total_count"] == 1
        assert auth_client.get("/logs?status=bogus").status_code == 422

    def test_includes_client_and_product(self, auth_client, seeded):
        items = auth_client.get(f"/logs/client/{seeded['bob'].id}").json()["items"]
        assert items[0]["client_name"] == "Bob"
        assert items[0]["product_service_name"] == "Hosting"

    def test_by_reminder(self, auth_client, seeded):
        data = auth_client.get(f"/logs/reminder/{seeded['cert'].id}").json()
        assert data["total_count"] == 2
        assert {item["channel"] for item in data["items"]} == {"email", "whatsapp"}

    def test_by_client(self, auth_client, seeded):
        data = auth_client.get(f"/logs/client/{seeded['jane'].id}?limit=1").json()
        assert data["total_count"] == 3
        assert len(data["items"]) == 1

    def test_stats(self, auth_client, seeded):
        data = auth_client.get("/logs/stats").json()
        assert data == {
            "total": 4,
            "sent": 2,
            "failed": 1,
            "pending": 1,
            "email_count": 3,
            "whatsapp_count": 1,
        }

    def test_stats_date_range(self, auth_client, seeded):
        response = auth_client.get("/logs/stats?start_date=2000-01-01T00:00:00&end_date=2000-12-31T00:00:00")
        assert response.status_code == 200
        assert response.json()["total"] == 0

    def test_stats_requires_both_bounds(self, auth_client):
        assert auth_client.get("/logs/stats?start_date=2025-01-01T00:00:00").status_code == 400

    def test_requires_auth(self, client):
        assert client.get("/logs").status_code == 401


class TestLogStore:
    def test_pending_then_sent(self, db_session, make_client, make_reminder):
        client = make_client()
        reminder = make_reminder(client)
        log = notification_log.create_pending(
            db_session,
            reminder_id=reminder.id,
            client_id=client.id,
            channel="email",
            recipient="jane@example.com",
            subject="Hi",
            message_body="Body",
        )
        assert log.status == "pending"

        assert notification_log.mark_sent(db_session, log.id, "email-1") is True
        # Terminal rows never change again
        assert notification_log.mark_failed(db_session, "late error", log_id=log.id) is None
        assert notification_log.mark_sent(db_session, log.id, "email-2") is False

        db_session.refresh(log)
        assert log.status == "sent"
        assert log.external_message_id == "email-1"
        assert log.error_message is None

    def test_mark_failed_by_attempt(self, db_session, make_client, make_reminder):
        """Without a row id the most recent pending row for the attempt is failed."""
        client = make_client()
        reminder = make_reminder(client)
        kwargs = dict(reminder_id=reminder.id, client_id=client.id, channel="email")
        older = notification_log.create_pending(
            db_session, **kwargs, recipient="jane@example.com", subject=None, message_body="1"
        )
        newer = notification_log.create_pending(
            db_session, **kwargs, recipient="jane@example.com", subject=None, message_body="2"
        )

        assert notification_log.mark_failed(db_session, "timeout", **kwargs) == newer.id

        db_session.refresh(older)
        db_session.refresh(newer)
        assert older.status == "pending"
        assert newer.status == "failed"
        assert newer.error_message == "timeout"

    def test_mark_failed_without_pending_row(self, db_session):
        assert notification_log.mark_failed(db_session, "x", reminder_id=1, client_id=1, channel="email") is None

    def test_stale_pending(self, db_session, seeded):
        now = datetime.now(timezone.utc)
        assert notification_log.stale_pending(db_session, 30, now=now) == []

        stale = notification_log.stale_pending(db_session, 30, now=now + timedelta(hours=1))
        assert [row.status for row in stale] == ["pending"]
