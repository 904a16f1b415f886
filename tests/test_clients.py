"""Tests for client endpoints."""

from datetime import timedelta

from app.models.notification_log import NotificationLog
from app.models.reminder import Reminder
from app.services.schedule import utc_today


def create_client(auth_client, **overrides):
    payload = {"full_name": "Jane Doe", "email": "jane@example.com", "company_name": "Acme"}
    payload.update(overrides)
    return auth_client.post("/clients", json=payload)


class TestCreateClient:
    def test_create_with_email(self, auth_client):
        response = create_client(auth_client)

        assert response.status_code == 201
        data = response.json()
        assert data["full_name"] == "Jane Doe"
        assert data["email"] == "jane@example.com"
        assert data["whatsapp_number"] is None
        assert data["is_active"] is True

    def test_create_with_whatsapp_only(self, auth_client):
        response = create_client(auth_client, email=None, whatsapp_number="whatsapp:+14155550100")

        assert response.status_code == 201
        assert response.json()["whatsapp_number"] == "+14155550100"

    def test_requires_a_contact_method(self, auth_client):
        response = create_client(auth_client, email=None)
        assert response.status_code == 422

    def test_rejects_invalid_phone(self, auth_client):
        response = create_client(auth_client, whatsapp_number="call me")
        assert response.status_code == 422

    def test_rejects_invalid_email(self, auth_client):
        response = create_client(auth_client, email="not-an-email")
        assert response.status_code == 422

    def test_duplicate_email(self, auth_client):
        create_client(auth_client)
        response = create_client(auth_client, full_name="Someone Else")

        assert response.status_code == 409

    def test_requires_auth(self, client):
        response = client.post("/clients", json={"full_name": "Jane", "email": "jane@example.com"})
        assert response.status_code == 401


class TestListClients:
    def test_list_and_search(self, auth_client):
        create_client(auth_client)
        create_client(auth_client, full_name="Bob Smith", email="bob@example.com", company_name="Globex")

        response = auth_client.get("/clients")
        assert response.status_code == 200
        assert response.json()["total_count"] == 2

        response = auth_client.get("/clients?search=globex")
        data = response.json()
        assert data["total_count"] == 1
        assert data["items"][0]["full_name"] == "Bob Smith"

    def test_filter_active(self, auth_client):
        create_client(auth_client)
        create_client(auth_client, full_name="Gone", email="gone@example.com", is_active=False)

        data = auth_client.get("/clients?is_active=false").json()

        assert data["total_count"] == 1
        assert data["items"][0]["full_name"] == "Gone"

    def test_pagination(self, auth_client):
        for i in range(3):
            create_client(auth_client, full_name=f"Client {i}", email=f"c{i}@example.com")

        data = auth_client.get("/clients?limit=2&offset=2").json()

        assert data["total_count"] == 3
        assert len(data["items"]) == 1
        assert data["limit"] == 2
        assert data["offset"] == 2


class TestUpdateClient:
    def test_update_fields(self, auth_client):
        client_id = create_client(auth_client).json()["id"]

        response = auth_client.put(f"/clients/{client_id}", json={"company_name": "Initech", "is_active": False})

        assert response.status_code == 200
        assert response.json()["company_name"] == "Initech"
        assert response.json()["is_active"] is False

    def test_empty_update(self, auth_client):
        client_id = create_client(auth_client).json()["id"]
        response = auth_client.put(f"/clients/{client_id}", json={})
        assert response.status_code == 400

    def test_cannot_remove_last_contact(self, auth_client):
        client_id = create_client(auth_client).json()["id"]

        response = auth_client.put(f"/clients/{client_id}", json={"email": None})

        assert response.status_code == 400
        assert auth_client.get(f"/clients/{client_id}").json()["email"] == "jane@example.com"

    def test_null_name_rejected(self, auth_client):
        client_id = create_client(auth_client).json()["id"]
        response = auth_client.put(f"/clients/{client_id}", json={"full_name": None})
        assert response.status_code == 422

    def test_not_found(self, auth_client):
        assert auth_client.get("/clients/999").status_code == 404
        assert auth_client.put("/clients/999", json={"notes": "x"}).status_code == 404


class TestDeleteClient:
    def test_delete_removes_reminders_and_logs(self, auth_client, db_session):
        client_id = create_client(auth_client).json()["id"]
        reminder = auth_client.post(
            "/reminders",
            json={
                "client_id": client_id,
                "product_service_name": "Hosting",
                "expiry_date": str(utc_today() + timedelta(days=40)),
                "notification_channel": "email",
                "reminder_schedule": [30],
            },
        ).json()
        db_session.add(
            NotificationLog(
                reminder_id=reminder["id"],
                client_id=client_id,
                channel="email",
                recipient="jane@example.com",
                message_body="Hello",
                status="sent",
            )
        )
        db_session.commit()

        response = auth_client.delete(f"/clients/{client_id}")

        assert response.status_code == 204
        assert auth_client.get(f"/clients/{client_id}").status_code == 404
        assert db_session.query(Reminder).count() == 0
        assert db_session.query(NotificationLog).count() == 0
