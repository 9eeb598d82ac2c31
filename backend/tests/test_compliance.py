"""
Tests for the building code compliance checker.

Test Coverage:
1. State table covers all 50 states + DC
2. Hazard-driven recommendations (hurricane, ice barrier, wildfire, seismic)
3. Unknown states fall back to IRC 2021
4. Result caching and invalidation
5. /compliance API
"""
import pytest

from stormdesk.services.compliance import (
    STATE_CODES,
    check_building_codes,
    get_local_codes,
    get_state_list,
    invalidate_cache,
)


@pytest.fixture(autouse=True)
def fresh_cache():
    invalidate_cache()
    yield
    invalidate_cache()


def has(recommendations, fragment):
    return any(fragment in r for r in recommendations)


class TestStateTable:

    def test_all_states_and_dc(self):
        assert len(STATE_CODES) == 51
        assert "DC" in STATE_CODES
        assert get_state_list() == sorted(STATE_CODES)

    def test_unknown_state_uses_default_edition(self):
        result = check_building_codes("ZZ")
        assert result.code_edition == "IRC 2021"
        assert result.compliant is True
        assert result.permit_required is True


class TestRecommendations:

    def test_florida_hurricane_and_noa(self):
        result = check_building_codes("FL", trade="roofing")
        assert result.code_edition.startswith("FBC")
        assert has(result.recommendations, "HURRICANE ZONE")
        assert has(result.recommendations, "NOA")
        assert has(result.recommendations, "Miami-Dade NOA required")

    def test_texas_high_wind_and_twia(self):
        result = check_building_codes("TX")
        assert has(result.recommendations, "HIGH WIND ZONE")
        assert has(result.recommendations, "TWIA certification")
        assert not has(result.recommendations, "HURRICANE ZONE")

    def test_ice_barrier_states(self):
        assert has(check_building_codes("MN").recommendations, "ICE BARRIER REQUIRED")
        assert not has(check_building_codes("AZ").recommendations, "ICE BARRIER REQUIRED")

    def test_california_wildfire_and_seismic(self):
        result = check_building_codes("CA")
        assert has(result.recommendations, "WILDFIRE ZONE")
        assert has(result.recommendations, "CAL FIRE")
        assert has(result.recommendations, "SEISMIC ZONE D")

    def test_state_is_case_insensitive(self):
        assert check_building_codes(" fl ").code_edition == check_building_codes("FL").code_edition

    def test_trade_filter(self):
        siding = check_building_codes("OH", trade="siding").recommendations
        assert has(siding, "SIDING - Weather Barrier")
        assert not has(siding, "GUTTERS - Drainage")

    def test_damage_type_pulls_in_trade(self):
        result = check_building_codes("OH", damage_type="Gutter dents", trade="siding")
        assert has(result.recommendations, "GUTTERS - Drainage")

    def test_unknown_trade_rejected(self):
        with pytest.raises(ValueError):
            check_building_codes("FL", trade="plumbing")
        with pytest.raises(ValueError):
            get_local_codes("FL", trade="plumbing")

    def test_local_codes_include_impact_for_florida(self):
        codes = get_local_codes("FL", trade="windows")
        assert codes["state"] == "FL"
        assert codes["state_info"]["wind_zone"] == "hurricane"
        assert any("impact" in c["requirement"].lower() for c in codes["codes"])


class TestCaching:

    def test_repeat_lookup_is_cached(self):
        first = check_building_codes("GA", trade="roofing")
        second = check_building_codes("GA", trade="roofing")
        assert first.cached is False
        assert second.cached is True
        assert first.recommendations == second.recommendations

    def test_callers_get_independent_copies(self):
        first = check_building_codes("GA")
        first.recommendations.append("mutated")
        assert "mutated" not in check_building_codes("GA").recommendations

    def test_invalidate_clears(self):
        check_building_codes("GA")
        invalidate_cache()
        assert check_building_codes("GA").cached is False

    def test_invalidate_one_state(self):
        check_building_codes("GA")
        check_building_codes("FL", trade="roofing")
        get_local_codes("fl")

        assert invalidate_cache("fl") == 2
        assert check_building_codes("FL", trade="roofing").cached is False
        assert check_building_codes("GA").cached is True

    def test_local_codes_report_cache_hits(self):
        first = get_local_codes("MN", trade="roofing")
        second = get_local_codes("mn", trade="roofing")
        assert first["cached"] is False
        assert second["cached"] is True
        assert first["codes"] == second["codes"]


class TestComplianceApi:

    def test_check(self, client, org):
        response = client.post("/compliance/check", json={"state": "fl", "trade": "roofing"}, headers=org["headers"])
        assert response.status_code == 200
        body = response.json()
        assert body["code_edition"].startswith("FBC")
        assert body["violations"] == []

    def test_bad_trade_is_400(self, client, org):
        response = client.post("/compliance/check", json={"state": "FL", "trade": "plumbing"}, headers=org["headers"])
        assert response.status_code == 400

    def test_bad_state_is_422(self, client, org):
        response = client.post("/compliance/check", json={"state": "Florida"}, headers=org["headers"])
        assert response.status_code == 422

    def test_states(self, client, org):
        body = client.get("/compliance/states", headers=org["headers"]).json()
        assert body["total"] == 51
        tx = client.get("/compliance/states/tx", headers=org["headers"]).json()
        assert tx["wind_zone"] == "high"
        assert client.get("/compliance/states/zz", headers=org["headers"]).status_code == 404

    def test_cache_invalidate_admin_only(self, client, org, add_member):
        manager = add_member(org["org_id"], "manager")
        assert client.post("/compliance/cache/invalidate", headers=manager["headers"]).status_code == 403
        body = client.post("/compliance/cache/invalidate", headers=org["headers"]).json()
        assert body == {"invalidated": True, "state": None, "entries": 0}

    def test_cache_invalidate_one_state(self, client, org):
        client.post("/compliance/check", json={"state": "TX"}, headers=org["headers"])
        client.post("/compliance/check", json={"state": "OK"}, headers=org["headers"])
        response = client.post("/compliance/cache/invalidate", params={"state": "tx"}, headers=org["headers"])
        assert response.json() == {"invalidated": True, "state": "TX", "entries": 1}
        assert client.post("/compliance/check", json={"state": "OK"}, headers=org["headers"]).json()["cached"] is True
