"""
Tests for role-based access control.

Test Coverage:
1. Permission matrix per role
2. Unknown roles and permissions
3. Role hierarchy checks
4. Endpoint enforcement (403 with the required permission)
5. Membership in the database wins over the token's role claim
"""
import pytest

from stormdesk.auth import create_access_token
from stormdesk.models.db_models import MembershipDB
from stormdesk.rbac import (
    ALL_PERMISSIONS,
    ROLE_PERMISSIONS,
    has_permission,
    has_role_at_least,
    require_permission,
)


class TestPermissionMatrix:

    def test_admin_has_everything(self):
        assert ROLE_PERMISSIONS["admin"] == ALL_PERMISSIONS

    def test_viewer_is_read_only(self):
        assert all(p.endswith(":view") for p in ROLE_PERMISSIONS["viewer"])
        assert has_permission("viewer", "claims:view")
        assert not has_permission("viewer", "claims:create")

    @pytest.mark.parametrize("permission", [
        "claims:delete", "team:invite", "team:edit", "team:remove",
        "billing:manage", "integrations:manage", "org:manage",
    ])
    def test_manager_lacks_admin_permissions(self, permission):
        assert not has_permission("manager", permission)
        assert has_permission("admin", permission)

    @pytest.mark.parametrize("permission", [
        "contacts:delete", "leads:delete", "jobs:delete", "billing:view",
        "integrations:view", "network:manage",
    ])
    def test_member_lacks_manager_permissions(self, permission):
        assert not has_permission("member", permission)
        assert has_permission("manager", permission)

    def test_roles_are_nested(self):
        assert ROLE_PERMISSIONS["viewer"] < ROLE_PERMISSIONS["member"]
        assert ROLE_PERMISSIONS["member"] < ROLE_PERMISSIONS["manager"]
        assert ROLE_PERMISSIONS["manager"] < ROLE_PERMISSIONS["admin"]

    def test_unknown_role_gets_nothing(self):
        assert not has_permission("owner", "claims:view")

    def test_unknown_permission_fails_fast(self):
        with pytest.raises(ValueError):
            require_permission("claims:teleport")

    def test_hierarchy(self):
        assert has_role_at_least("admin", "manager")
        assert has_role_at_least("manager", "manager")
        assert not has_role_at_least("member", "manager")
        assert not has_role_at_least("viewer", "bogus")


class TestEndpointEnforcement:

    def test_unauthenticated_rejected(self, client):
        assert client.get("/claims").status_code in (401, 403)

    def test_garbage_token_is_401(self, client):
        response = client.get("/claims", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_viewer_can_read_but_not_write(self, client, org, add_member):
        viewer = add_member(org["org_id"], "viewer")
        assert client.get("/claims", headers=viewer["headers"]).status_code == 200

        response = client.post("/claims", json={"title": "x"}, headers=viewer["headers"])
        assert response.status_code == 403
        detail = response.json()["detail"]
        assert detail["required_permission"] == "claims:create"
        assert detail["current_role"] == "viewer"

    def test_only_admin_deletes_claims(self, client, org, add_member):
        manager = add_member(org["org_id"], "manager")
        claim_id = client.post("/claims", json={"title": "x"}, headers=org["headers"]).json()["id"]

        assert client.delete(f"/claims/{claim_id}", headers=manager["headers"]).status_code == 403
        deleted = client.delete(f"/claims/{claim_id}", headers=org["headers"])
        assert deleted.status_code == 200
        assert deleted.json() == {"deleted": True, "id": claim_id}

    def test_member_cannot_view_billing(self, client, org, add_member):
        member = add_member(org["org_id"], "member")
        assert client.get("/billing", headers=member["headers"]).status_code == 403
        billing = client.get("/billing", headers=org["headers"]).json()
        assert billing["seats_used"] == 2
        assert billing["subscription_status"] == "trialing"

    def test_database_role_wins_over_token_claim(self, client, db_session, org, add_member):
        member = add_member(org["org_id"], "viewer")
        forged = create_access_token(member["user_id"], member["email"], org["org_id"], "admin")
        response = client.post("/claims", json={"title": "x"}, headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 403

    def test_removed_member_loses_access(self, client, db_session, org, add_member):
        member = add_member(org["org_id"], "member")
        db_session.query(MembershipDB).filter(MembershipDB.user_id == member["user_id"]).delete()
        db_session.commit()

        response = client.get("/claims", headers=member["headers"])
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "NO_ORG"
