"""
Tests for the trades network and the dashboard summary.

Test Coverage:
1. Connection requests (validation, duplicates, self-connections)
2. Only the target org can respond; responses are one-shot
3. Incoming / outgoing / accepted lists from each side
4. Dashboard counts stay inside the org
"""
from datetime import datetime, timedelta

from stormdesk.models.db_models import NotificationDB
from stormdesk.services.dashboard import dashboard_summary, week_bounds


def connect(client, headers, target_org_id, trade="gutters"):
    return client.post("/network/connections", json={
        "target_org_id": target_org_id, "trade": trade, "message": "Need a gutter partner in Tulsa",
    }, headers=headers)


class TestTradesNetwork:

    def test_request_notifies_target(self, client, db_session, org, other_org):
        response = connect(client, org["headers"], other_org["org_id"])
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["direction"] == "outgoing"
        assert body["partner_name"] == "Rival Exteriors"

        notes = db_session.query(NotificationDB).filter(NotificationDB.org_id == other_org["org_id"]).all()
        assert [n.title for n in notes] == ["Acme Roofing wants to connect"]
        assert notes[0].kind == "network_request"

    def test_duplicate_is_409_either_direction(self, client, org, other_org):
        connect(client, org["headers"], other_org["org_id"])
        assert connect(client, org["headers"], other_org["org_id"]).status_code == 409
        assert connect(client, other_org["headers"], org["org_id"]).status_code == 409
        # Different trade is a separate connection
        assert connect(client, org["headers"], other_org["org_id"], trade="siding").status_code == 201

    def test_invalid_requests(self, client, org, other_org):
        assert connect(client, org["headers"], org["org_id"]).status_code == 422
        assert connect(client, org["headers"], other_org["org_id"], trade="baking").status_code == 422
        assert connect(client, org["headers"], "no-such-org").status_code == 404

    def test_member_cannot_manage(self, client, org, other_org, add_member):
        member = add_member(org["org_id"], "member")
        assert connect(client, member["headers"], other_org["org_id"]).status_code == 403

    def test_only_target_responds_once(self, client, org, other_org):
        connection_id = connect(client, org["headers"], other_org["org_id"]).json()["id"]

        own = client.post(f"/network/connections/{connection_id}/accept", headers=org["headers"])
        assert own.status_code == 403

        accepted = client.post(f"/network/connections/{connection_id}/accept", headers=other_org["headers"])
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"
        assert accepted.json()["direction"] == "incoming"

        again = client.post(f"/network/connections/{connection_id}/decline", headers=other_org["headers"])
        assert again.status_code == 409

    def test_third_party_cannot_see_connection(self, client, register, org, other_org):
        outsider = register(org_name="Nosy Gutters")
        connection_id = connect(client, org["headers"], other_org["org_id"]).json()["id"]
        response = client.post(f"/network/connections/{connection_id}/accept", headers=outsider["headers"])
        assert response.status_code == 404

    def test_lists(self, client, org, other_org):
        connection_id = connect(client, org["headers"], other_org["org_id"]).json()["id"]

        def ids(headers, kind):
            body = client.get("/network/connections", params={"kind": kind}, headers=headers).json()
            return [c["id"] for c in body["connections"]]

        assert ids(org["headers"], "outgoing") == [connection_id]
        assert ids(other_org["headers"], "incoming") == [connection_id]
        assert ids(org["headers"], "incoming") == []

        client.post(f"/network/connections/{connection_id}/accept", headers=other_org["headers"])
        assert ids(org["headers"], "accepted") == [connection_id]
        assert ids(other_org["headers"], "accepted") == [connection_id]
        assert ids(other_org["headers"], "incoming") == []

        bad = client.get("/network/connections", params={"kind": "everything"}, headers=org["headers"])
        assert bad.status_code == 422

    def test_trade_catalog(self, client, org):
        trades = client.get("/network/trades", headers=org["headers"]).json()["trades"]
        assert "roofing" in trades and "gutters" in trades


class TestDashboard:

    def test_week_bounds_start_monday(self):
        start, end = week_bounds(datetime(2026, 6, 4, 15, 30))  # Thursday
        assert start == datetime(2026, 6, 1)
        assert end == datetime(2026, 6, 8)

    def test_empty_org(self, client, org):
        summary = client.get("/dashboard/summary", headers=org["headers"]).json()
        assert summary["open_claims"] == 0
        assert summary["pipeline_value"] == 0
        assert set(summary["leads_by_stage"]) >= {"new", "won", "lost"}
        assert all(v == 0 for v in summary["leads_by_stage"].values())

    def test_counts(self, client, db_session, org, other_org):
        headers = org["headers"]
        client.post("/claims", json={"title": "Open"}, headers=headers)
        client.post("/claims", json={"title": "Done", "status": "closed"}, headers=headers)
        client.post("/claims", json={"title": "Theirs"}, headers=other_org["headers"])

        contact = {"first_name": "A", "last_name": "B"}
        client.post("/leads", json={"title": "Open lead", "value": 12000, "contact": contact}, headers=headers)
        client.post("/leads", json={"title": "Lost", "value": 9000, "stage": "lost", "contact": contact},
                    headers=headers)

        now = datetime.utcnow()
        monday, _ = week_bounds(now)
        slot = (monday + timedelta(days=1, hours=9)).isoformat()
        slot_end = (monday + timedelta(days=1, hours=12)).isoformat()
        client.post("/jobs", json={
            "title": "This week", "crew_name": "Crew A", "scheduled_start": slot, "scheduled_end": slot_end,
        }, headers=headers)

        user_id = client.get("/auth/me", headers=headers).json()["user"]["id"]
        summary = dashboard_summary(db_session, org["org_id"], user_id, now=now)
        assert summary["open_claims"] == 1
        assert summary["leads_by_stage"]["new"] == 1
        assert summary["leads_by_stage"]["lost"] == 1
        assert summary["pipeline_value"] == 12000
        assert summary["jobs_this_week"] == 1
        assert summary["week_start"] == monday.isoformat()

    def test_viewer_can_see_dashboard(self, client, org, add_member):
        viewer = add_member(org["org_id"], "viewer")
        assert client.get("/dashboard/summary", headers=viewer["headers"]).status_code == 200
