"""
Tests for estimate totals.

Test Coverage:
1. Subtotal, overhead, profit and tax (percent units, cents rounding)
2. Negative inputs rejected
3. Totals recomputed on update and never client-settable
4. Links to claims/leads stay inside the org
"""
import pytest

from stormdesk.errors import ValidationFailedError
from stormdesk.services.estimates import calculate_totals, line_total, normalize_line_items

ROOF_ITEMS = [
    {"description": "Tear off & replace architectural shingles", "quantity": 32.5, "unit": "SQ", "unit_price": 245.0},
    {"description": "Drip edge", "quantity": 180, "unit": "LF", "unit_price": 3.15},
    {"description": "Ridge vent", "quantity": 42, "unit": "LF", "unit_price": 9.8},
]


class TestTotals:

    def test_subtotal_only(self):
        totals = calculate_totals(ROOF_ITEMS)
        # 7962.50 + 567.00 + 411.60
        assert totals["subtotal"] == 8941.10
        assert totals["total"] == 8941.10
        assert totals["tax_amount"] == 0

    def test_overhead_profit_and_tax(self):
        totals = calculate_totals([{"quantity": 10, "unit_price": 100}], overhead_pct=10, profit_pct=10, tax_rate=8.25)
        assert totals["subtotal"] == 1000.00
        assert totals["overhead_amount"] == 100.00
        assert totals["profit_amount"] == 100.00
        # Tax applies to subtotal + overhead + profit
        assert totals["tax_amount"] == 99.00
        assert totals["total"] == 1299.00

    def test_rounds_half_up_to_cents(self):
        assert line_total({"quantity": 1, "unit_price": 0.125}) == 0.13
        totals = calculate_totals([{"quantity": 3, "unit_price": 33.335}])
        assert totals["subtotal"] == 100.01

    def test_empty_estimate(self):
        assert calculate_totals([]) == {
            "subtotal": 0, "overhead_amount": 0, "profit_amount": 0, "tax_amount": 0, "total": 0,
        }

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationFailedError):
            calculate_totals([{"quantity": 1, "unit_price": 10}], overhead_pct=-5)
        with pytest.raises(ValidationFailedError):
            normalize_line_items([{"quantity": -1, "unit_price": 10}])

    def test_line_totals_added(self):
        items = normalize_line_items(ROOF_ITEMS)
        assert [i["line_total"] for i in items] == [7962.50, 567.00, 411.60]


class TestEstimatesApi:

    def test_create_computes_totals(self, client, org):
        response = client.post("/estimates", json={
            "title": "Roof replacement",
            "line_items": ROOF_ITEMS,
            "overhead_pct": 10,
            "profit_pct": 10,
        }, headers=org["headers"])
        assert response.status_code == 201
        body = response.json()
        assert body["subtotal"] == 8941.10
        assert body["overhead_amount"] == 894.11
        assert body["profit_amount"] == 894.11
        assert body["total"] == 10729.32
        assert body["status"] == "draft"

    def test_totals_not_client_settable(self, client, org):
        response = client.post("/estimates", json={"title": "x", "total": 1}, headers=org["headers"])
        assert response.status_code == 422

    def test_update_recomputes(self, client, org):
        estimate = client.post("/estimates", json={
            "title": "Gutters", "line_items": [{"description": "Seamless gutter", "quantity": 100, "unit_price": 8}],
        }, headers=org["headers"]).json()
        assert estimate["total"] == 800

        updated = client.patch(f"/estimates/{estimate['id']}", json={"tax_rate": 5}, headers=org["headers"]).json()
        assert updated["tax_amount"] == 40
        assert updated["total"] == 840

    def test_negative_quantity_is_422(self, client, org):
        response = client.post("/estimates", json={
            "title": "x", "line_items": [{"description": "bad", "quantity": -2, "unit_price": 8}],
        }, headers=org["headers"])
        assert response.status_code == 422

    def test_link_to_other_org_claim_is_404(self, client, org, other_org):
        claim_id = client.post("/claims", json={"title": "Hail"}, headers=other_org["headers"]).json()["id"]
        response = client.post("/estimates", json={"title": "x", "claim_id": claim_id}, headers=org["headers"])
        assert response.status_code == 404

    def test_filter_by_claim(self, client, org):
        claim_id = client.post("/claims", json={"title": "Hail"}, headers=org["headers"]).json()["id"]
        client.post("/estimates", json={"title": "For claim", "claim_id": claim_id}, headers=org["headers"])
        client.post("/estimates", json={"title": "Retail"}, headers=org["headers"])

        page = client.get("/estimates", params={"claim_id": claim_id}, headers=org["headers"]).json()
        assert [e["title"] for e in page["items"]] == ["For claim"]
