"""
Tests for recoverable depreciation.

Test Coverage:
1. Value decay formula and recoverable amount
2. Material age from an install date
3. Lifecycle transitions (calculated -> invoiced -> submitted -> recovered / denied)
4. Claim depreciation API
"""
from datetime import date

import pytest

from stormdesk.errors import ValidationFailedError
from stormdesk.services.depreciation import (
    ALLOWED_TRANSITIONS,
    DepreciationTracker,
    age_in_years,
    calculate_depreciated_value,
    calculate_recoverable,
    can_transition,
)


class TestFormula:

    def test_decay(self):
        assert calculate_depreciated_value(10000, 0.05, 0) == 10000
        assert calculate_depreciated_value(10000, 0.05, 1) == 9500
        assert calculate_depreciated_value(10000, 0.05, 2) == 9025
        assert calculate_depreciated_value(10000, 0.1, 10) == pytest.approx(3486.78, abs=0.01)

    def test_zero_rate_keeps_value(self):
        assert calculate_depreciated_value(12500.5, 0, 30) == 12500.5

    @pytest.mark.parametrize("value,rate,years", [
        (-1, 0.05, 1),
        (100, 1.0, 1),
        (100, -0.1, 1),
        (100, 0.05, -2),
    ])
    def test_invalid_inputs(self, value, rate, years):
        with pytest.raises(ValidationFailedError):
            calculate_depreciated_value(value, rate, years)

    def test_recoverable_never_negative(self):
        assert calculate_recoverable(10000, 9025) == 975
        assert calculate_recoverable(100, 150) == 0

    def test_age_in_years(self):
        assert age_in_years(date(2016, 4, 1), as_of=date(2026, 10, 1)) == 10.5
        assert age_in_years(date(2026, 1, 15), as_of=date(2026, 1, 20)) == 0
        with pytest.raises(ValidationFailedError):
            age_in_years(date(2030, 1, 1), as_of=date(2026, 1, 1))


class TestTransitions:

    def test_happy_path(self):
        assert can_transition(None, "calculated")
        assert can_transition("calculated", "invoiced")
        assert can_transition("invoiced", "submitted")
        assert can_transition("submitted", "recovered")

    def test_denied_can_be_resubmitted(self):
        assert can_transition("submitted", "denied")
        assert can_transition("denied", "submitted")

    def test_recovered_is_terminal(self):
        assert ALLOWED_TRANSITIONS["recovered"] == []
        assert not can_transition("recovered", "submitted")

    def test_cannot_skip_steps(self):
        assert not can_transition(None, "invoiced")
        assert not can_transition("calculated", "recovered")
        assert not can_transition("invoiced", "recovered")


class TestTracker:

    @pytest.fixture
    def claim_id(self, client, org):
        return client.post("/claims", json={"title": "Hail"}, headers=org["headers"]).json()["id"]

    def test_full_lifecycle(self, db_session, org, claim_id):
        tracker = DepreciationTracker(db_session, org["org_id"])
        result = tracker.calculate(claim_id, rcv=20000, rate=0.05, years=2)
        assert result["acv"] == 18050
        assert result["recoverable_depreciation"] == 1950
        assert tracker.current_status(claim_id) == "calculated"

        for status in ("invoiced", "submitted", "denied", "submitted", "recovered"):
            tracker.advance(claim_id, status)
        assert tracker.current_status(claim_id) == "recovered"
        assert [e.status for e in tracker.history(claim_id)] == [
            "calculated", "invoiced", "submitted", "denied", "submitted", "recovered",
        ]

    def test_invalid_transition_rejected(self, db_session, org, claim_id):
        tracker = DepreciationTracker(db_session, org["org_id"])
        with pytest.raises(ValidationFailedError) as exc:
            tracker.advance(claim_id, "submitted")
        assert exc.value.extra["current_status"] is None

    def test_advance_cannot_record_calculation(self, db_session, org, claim_id):
        with pytest.raises(ValidationFailedError):
            DepreciationTracker(db_session, org["org_id"]).advance(claim_id, "calculated")


class TestDepreciationApi:

    def test_stateless_calculator(self, client, org):
        response = client.post("/depreciation/calculate", json={"rcv": 10000, "rate": 0.05, "years": 2},
                               headers=org["headers"])
        assert response.status_code == 200
        assert response.json()["acv"] == 9025
        assert response.json()["recoverable_depreciation"] == 975

    def test_calculator_requires_age(self, client, org):
        response = client.post("/depreciation/calculate", json={"rcv": 10000, "rate": 0.05}, headers=org["headers"])
        assert response.status_code == 422

    def test_calculator_rejects_future_install(self, client, org):
        response = client.post("/depreciation/calculate", json={
            "rcv": 10000, "rate": 0.05, "installed_on": "2999-01-01",
        }, headers=org["headers"])
        assert response.status_code == 422

    def test_claim_lifecycle(self, client, org):
        claim_id = client.post("/claims", json={"title": "Wind"}, headers=org["headers"]).json()["id"]

        calc = client.post(f"/claims/{claim_id}/depreciation", json={"rcv": 15000, "rate": 0.04, "years": 5},
                           headers=org["headers"])
        assert calc.status_code == 201

        bad = client.post(f"/claims/{claim_id}/depreciation/events", json={"status": "recovered"},
                          headers=org["headers"])
        assert bad.status_code == 422
        assert bad.json()["allowed"] == ["calculated", "invoiced"]

        ok = client.post(f"/claims/{claim_id}/depreciation/events", json={"status": "invoiced", "amount": 2500},
                         headers=org["headers"])
        assert ok.status_code == 201

        history = client.get(f"/claims/{claim_id}/depreciation", headers=org["headers"]).json()
        assert history["current_status"] == "invoiced"
        assert history["next_statuses"] == ["submitted"]
        assert len(history["events"]) == 2

    def test_other_org_claim_is_404(self, client, org, other_org):
        claim_id = client.post("/claims", json={"title": "Wind"}, headers=org["headers"]).json()["id"]
        response = client.get(f"/claims/{claim_id}/depreciation", headers=other_org["headers"])
        assert response.status_code == 404
