"""
Tests for in-app notifications and the internal scheduler endpoints.

Test Coverage:
1. Notifications are private to the recipient
2. Read / read-all and the unread counter
3. Role-filtered fan-out to org members
4. Internal endpoints require the shared key
5. Webhook processing through the scheduler endpoint
"""
from unittest.mock import MagicMock, patch

import pytest

from stormdesk.main import app
from stormdesk.models.db_models import WebhookDeliveryDB
from stormdesk.routers.internal import get_http_client
from stormdesk.services.notifications import NotificationService

INTERNAL = {"X-Internal-Key": "test-internal-key"}


def user_id_of(client, headers):
    return client.get("/auth/me", headers=headers).json()["user"]["id"]


class TestNotifications:

    def test_list_and_read(self, client, db_session, org):
        user_id = user_id_of(client, org["headers"])
        service = NotificationService(db_session, org["org_id"])
        first = service.create(user_id, "Claim approved", body="CLM-1 approved", link="/claims/1")
        service.create(user_id, "New lead")

        page = client.get("/notifications", headers=org["headers"]).json()
        assert page["total"] == 2
        assert page["unread_count"] == 2

        read = client.post(f"/notifications/{first.id}/read", headers=org["headers"]).json()
        assert read["is_read"] is True
        assert read["read_at"] is not None

        unread = client.get("/notifications", params={"unread_only": True}, headers=org["headers"]).json()
        assert [n["title"] for n in unread["items"]] == ["New lead"]
        assert unread["unread_count"] == 1

        assert client.post("/notifications/read-all", headers=org["headers"]).json() == {"updated": 1}
        assert client.get("/notifications", headers=org["headers"]).json()["unread_count"] == 0

    def test_cannot_read_someone_elses(self, client, db_session, org, add_member):
        teammate = add_member(org["org_id"], "member")
        note = NotificationService(db_session, org["org_id"]).create(teammate["user_id"], "For teammate only")

        assert client.post(f"/notifications/{note.id}/read", headers=org["headers"]).status_code == 404
        assert client.get("/notifications", headers=org["headers"]).json()["total"] == 0
        assert client.get("/notifications", headers=teammate["headers"]).json()["total"] == 1

    def test_notify_org_members_by_role(self, db_session, org, add_member):
        add_member(org["org_id"], "manager")
        add_member(org["org_id"], "viewer")
        service = NotificationService(db_session, org["org_id"])
        assert service.notify_org_members("Storm alert", roles=["admin", "manager"]) == 2
        assert service.notify_org_members("Everyone") == 3

    def test_email_mirror(self, client, db_session, org):
        user_id = user_id_of(client, org["headers"])
        with patch("stormdesk.services.notifications.safe_send_email") as send:
            NotificationService(db_session, org["org_id"]).create(user_id, "Job tomorrow", send_email=True)
        assert send.call_args[0][0] == org["email"]
        assert send.call_args[1]["subject"] == "Job tomorrow"


class TestInternalEndpoints:

    @pytest.mark.parametrize("path", ["/internal/webhooks/process", "/internal/lead-follow-ups"])
    def test_wrong_key_is_403(self, client, path):
        assert client.post(path, headers={"X-Internal-Key": "nope"}).status_code == 403

    def test_missing_key_is_422(self, client):
        assert client.post("/internal/lead-follow-ups").status_code == 422

    def test_process_webhooks(self, client, db_session, org):
        client.post("/webhooks", json={
            "url": "https://integrator.example.com/claims", "events": ["claim.created"],
        }, headers=org["headers"])
        client.post("/claims", json={"title": "Hail"}, headers=org["headers"])

        ok = MagicMock()
        ok.status_code = 200
        ok.text = "received"
        ok.is_success = True
        http = MagicMock()
        http.post.return_value = ok

        app.dependency_overrides[get_http_client] = lambda: http
        try:
            response = client.post("/internal/webhooks/process", headers=INTERNAL)
        finally:
            app.dependency_overrides.pop(get_http_client, None)

        assert response.status_code == 200
        assert response.json() == {"processed": 1, "sent": 1, "retrying": 0, "failed": 0, "skipped": 0}
        assert http.post.call_args[0][0] == "https://integrator.example.com/claims"
        headers = http.post.call_args.kwargs["headers"]
        assert headers["X-Webhook-Event"] == "claim.created"
        assert len(headers["X-Webhook-Signature"]) == 64

        delivery = db_session.query(WebhookDeliveryDB).one()
        db_session.refresh(delivery)
        assert delivery.status == "sent"
        assert delivery.response_body == "received"
