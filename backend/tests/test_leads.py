"""
Tests for the leads pipeline.

Test Coverage:
1. Warmth scoring (urgency, budget tiers, high-value work, cap at 100)
2. Lead creation with an inline contact and property
3. Warmth recomputed on relevant edits
4. Conversion to a job or a claim
5. Follow-up reminders
"""
from datetime import datetime, timedelta

import pytest

from stormdesk.models.db_models import ClaimDB, JobDB, LeadDB, NotificationDB, PropertyDB
from stormdesk.services.leads import calculate_warmth_score, leads_due_for_follow_up


class TestWarmthScore:

    def test_base(self):
        assert calculate_warmth_score() == 50

    def test_urgency(self):
        assert calculate_warmth_score(urgency="urgent") == 80
        assert calculate_warmth_score(urgency="HIGH") == 70
        assert calculate_warmth_score(urgency="medium") == 60
        assert calculate_warmth_score(urgency="low") == 50

    def test_budget_tiers_in_cents(self):
        assert calculate_warmth_score(budget=6_000_000) == 70
        assert calculate_warmth_score(budget=3_000_000) == 65
        assert calculate_warmth_score(budget=1_500_000) == 60
        # Thresholds are exclusive
        assert calculate_warmth_score(budget=1_000_000) == 50

    def test_high_value_work(self):
        assert calculate_warmth_score(work_type="Full Roof Replacement") == 60
        assert calculate_warmth_score(work_type="gutter repair") == 50

    def test_capped_at_100(self):
        assert calculate_warmth_score("urgent", 9_000_000, "solar install") == 100


class TestLeadApi:

    def _create(self, client, headers, **fields):
        body = {"title": "Roof replacement - Ortiz", "contact": {
            "first_name": "Ana", "last_name": "Ortiz", "email": "ana@example.com",
            "street": "12 Oak St", "city": "Tulsa", "state": "OK",
        }}
        body.update(fields)
        response = client.post("/leads", json=body, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()

    def test_create_scores_and_builds_contact(self, client, db_session, org):
        lead = self._create(client, org["headers"], urgency="high", budget=3_000_000, work_type="roof replacement")
        assert lead["warmth_score"] == 95
        assert lead["contact"]["last_name"] == "Ortiz"
        assert lead["source"] == "direct"
        assert lead["stage"] == "new"
        # Address on the contact also creates a property
        assert db_session.query(PropertyDB).filter(PropertyDB.org_id == org["org_id"]).count() == 1

    def test_warmth_is_not_client_settable(self, client, org):
        response = client.post("/leads", json={
            "title": "x", "warmth_score": 100, "contact": {"first_name": "A", "last_name": "B"},
        }, headers=org["headers"])
        assert response.status_code == 422

    def test_requires_contact(self, client, org):
        response = client.post("/leads", json={"title": "No contact"}, headers=org["headers"])
        assert response.status_code == 422
        assert response.json()["detail"] == "contact_id or contact is required"

    def test_update_recomputes_warmth(self, client, org):
        lead = self._create(client, org["headers"])
        assert lead["warmth_score"] == 50
        updated = client.patch(f"/leads/{lead['id']}", json={"urgency": "urgent"}, headers=org["headers"]).json()
        assert updated["warmth_score"] == 80

    def test_invalid_stage(self, client, org):
        lead = self._create(client, org["headers"])
        response = client.patch(f"/leads/{lead['id']}", json={"stage": "maybe"}, headers=org["headers"])
        assert response.status_code == 422

    def test_null_title_is_422(self, client, org):
        lead = self._create(client, org["headers"])
        response = client.patch(f"/leads/{lead['id']}", json={"title": None}, headers=org["headers"])
        assert response.status_code == 422
        assert client.get(f"/leads/{lead['id']}", headers=org["headers"]).json()["title"] == lead["title"]

    def test_assignee_must_be_member(self, client, org, other_org, db_session):
        from stormdesk.models.db_models import MembershipDB
        outsider = db_session.query(MembershipDB).filter(MembershipDB.org_id == other_org["org_id"]).first()
        lead = self._create(client, org["headers"])
        response = client.patch(f"/leads/{lead['id']}", json={"assigned_to": outsider.user_id},
                                headers=org["headers"])
        assert response.status_code == 422

    def test_convert_to_job(self, client, db_session, org):
        lead = self._create(client, org["headers"], job_type="Insurance")
        result = client.post(f"/leads/{lead['id']}/convert", json={"target": "job"}, headers=org["headers"])
        assert result.status_code == 200
        body = result.json()
        assert body["target"] == "job"

        job = db_session.query(JobDB).filter(JobDB.id == body["id"]).first()
        assert job.lead_id == lead["id"]
        assert job.job_type == "insurance"
        assert job.address == "12 Oak St, Tulsa, OK"

        stored = db_session.query(LeadDB).filter(LeadDB.id == lead["id"]).first()
        assert stored.stage == "won"
        assert stored.converted_job_id == job.id

        again = client.post(f"/leads/{lead['id']}/convert", json={"target": "job"}, headers=org["headers"])
        assert again.status_code == 409

    def test_convert_to_claim(self, client, db_session, org):
        lead = self._create(client, org["headers"], value=18500)
        body = client.post(f"/leads/{lead['id']}/convert", json={"target": "claim"}, headers=org["headers"]).json()
        assert body["claim_number"].startswith("CLM-")

        claim = db_session.query(ClaimDB).filter(ClaimDB.id == body["id"]).first()
        assert claim.insured_name == "Ana Ortiz"
        assert claim.homeowner_email == "ana@example.com"
        assert claim.estimated_value == 18500

    def test_convert_bad_target(self, client, org):
        lead = self._create(client, org["headers"])
        response = client.post(f"/leads/{lead['id']}/convert", json={"target": "invoice"}, headers=org["headers"])
        assert response.status_code == 422

    def test_viewer_cannot_create(self, client, org, add_member):
        viewer = add_member(org["org_id"], "viewer")
        response = client.post("/leads", json={
            "title": "x", "contact": {"first_name": "A", "last_name": "B"},
        }, headers=viewer["headers"])
        assert response.status_code == 403


class TestFollowUps:

    def test_due_leads_get_one_reminder(self, client, db_session, org):
        past = (datetime.utcnow() - timedelta(days=1)).isoformat()
        future = (datetime.utcnow() + timedelta(days=3)).isoformat()
        client.post("/leads", json={
            "title": "Due", "follow_up_date": past, "contact": {"first_name": "A", "last_name": "B"},
        }, headers=org["headers"])
        client.post("/leads", json={
            "title": "Later", "follow_up_date": future, "contact": {"first_name": "C", "last_name": "D"},
        }, headers=org["headers"])

        due = leads_due_for_follow_up(db_session)
        assert [lead.title for lead in due] == ["Due"]

        headers = {"X-Internal-Key": "test-internal-key"}
        first = client.post("/internal/lead-follow-ups", headers=headers)
        assert first.status_code == 200
        assert first.json()["reminders_sent"] == 1

        second = client.post("/internal/lead-follow-ups", headers=headers)
        assert second.json()["reminders_sent"] == 0

        notes = db_session.query(NotificationDB).filter(NotificationDB.kind == "lead_follow_up").all()
        assert len(notes) == 1
        assert notes[0].title == "Follow up: Due"

    def test_closed_leads_are_skipped(self, client, db_session, org):
        past = (datetime.utcnow() - timedelta(days=1)).isoformat()
        client.post("/leads", json={
            "title": "Lost cause", "stage": "lost", "follow_up_date": past,
            "contact": {"first_name": "A", "last_name": "B"},
        }, headers=org["headers"])
        assert leads_due_for_follow_up(db_session) == []
