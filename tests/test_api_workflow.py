"""
Print-shop Workflow Engine
Tests — Workflow API.

Covers:
    - GET available actions (role required, advisory shape)
    - POST action: success, invalid transition 409, unknown item 404,
      business-rule 422, concurrent modification 409
    - Admin override and production sequence endpoints
"""

from sqlalchemy import text

from printshop.models import db
from printshop.services import transition_executor


def _headers(role, user_id=None):
    return {"X-User-Role": role, "X-User-Id": user_id or f"u-{role}", "X-User-Name": role.title()}


# ═════════════════════════════════════════════════════════════════════════════
# ACTION LISTING
# ═════════════════════════════════════════════════════════════════════════════


class TestListActions:
    def test_actions_for_role(self, client, make_item):
        item = make_item()
        res = client.get(f"/api/v1/items/{item.id}/actions?role=sales")
        assert res.status_code == 200
        data = res.get_json()
        assert data["effective_department"] == "sales"
        assert [a["id"] for a in data["actions"]] == ["assign_design"]
        assert data["state"] == {"stage": "sales", "status": "new_order", "substage": None}

    def test_other_department_sees_nothing(self, client, make_item):
        item = make_item()
        res = client.get(f"/api/v1/items/{item.id}/actions", headers=_headers("production"))
        assert res.get_json()["actions"] == []

    def test_role_required(self, client, make_item):
        item = make_item()
        res = client.get(f"/api/v1/items/{item.id}/actions")
        assert res.status_code == 400

    def test_unknown_item(self, client):
        res = client.get("/api/v1/items/9999/actions?role=sales")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# APPLYING ACTIONS
# ═════════════════════════════════════════════════════════════════════════════


class TestPostAction:
    def test_apply_with_body_actor(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/actions/assign_design", json={
            "actor": {"id": "u-sales", "role": "sales", "name": "Sam"},
            "note": "Rush, wedding on Friday",
            "payload": {"assigned_to": "u-design"},
        })
        assert res.status_code == 200
        data = res.get_json()
        assert data["item"]["current_stage"] == "design"
        assert data["item"]["assigned_to"] == "u-design"
        assert data["timeline_entry"]["performed_by_name"] == "Sam"
        assert data["timeline_entry"]["notes"].endswith("Rush, wedding on Friday")
        assert data["side_effects"][0]["kind"] == "notify"
        assert data["warnings"] == []
        assert data["attempts"] == 1

    def test_apply_with_header_actor(self, client, make_item):
        item = make_item(current_stage="design", status="design_in_progress")
        res = client.post(f"/api/v1/items/{item.id}/actions/send_for_approval",
                          json={}, headers=_headers("design"))
        assert res.status_code == 200
        assert res.get_json()["item"]["status"] == "pending_for_customer_approval"

    def test_invalid_transition_is_409_with_triple(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/actions/send_to_production",
                          json={}, headers=_headers("sales"))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "WF_INVALID_TRANSITION"
        assert body["details"]["state"] == {"stage": "sales", "status": "new_order"}
        assert body["details"]["action"] == "send_to_production"
        assert body["details"]["role"] == "sales"

    def test_role_required(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/actions/assign_design", json={})
        assert res.status_code == 400

    def test_payload_must_be_object(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/actions/assign_design",
                          json={"payload": ["x"]}, headers=_headers("sales"))
        assert res.status_code == 400

    def test_unknown_item_404(self, client):
        res = client.post("/api/v1/items/9999/actions/assign_design", json={}, headers=_headers("sales"))
        assert res.status_code == 404

    def test_business_rule_422(self, client, make_item):
        item = make_item(current_stage="prepress", status="prepress_in_progress")
        res = client.post(f"/api/v1/items/{item.id}/actions/assign_outsource",
                          json={"payload": {"vendor": {}}}, headers=_headers("prepress"))
        assert res.status_code == 422
        assert res.get_json()["code"] == "ERR_VALIDATION_CONSTRAINT"

    def test_concurrent_modification_409(self, client, make_item, monkeypatch):
        item = make_item()
        real_load = transition_executor._load_item

        def always_stale(item_id):
            loaded = real_load(item_id)
            db.session.execute(
                text("UPDATE order_items SET version_id = version_id + 1 WHERE id = :id"),
                {"id": item_id},
            )
            return loaded

        monkeypatch.setattr(transition_executor, "_load_item", always_stale)
        res = client.post(f"/api/v1/items/{item.id}/actions/assign_design",
                          json={}, headers=_headers("sales"))
        assert res.status_code == 409
        body = res.get_json()
        assert body["code"] == "WF_CONCURRENT_MODIFICATION"
        assert body["error"] == "State changed, please retry"


# ═════════════════════════════════════════════════════════════════════════════
# ADMIN
# ═════════════════════════════════════════════════════════════════════════════


class TestAdminEndpoints:
    def test_override(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/override", json={
            "changes": {"current_stage": "prepress", "status": "prepress_in_progress"},
            "note": "Artwork supplied",
        }, headers=_headers("admin"))
        assert res.status_code == 200
        assert res.get_json()["current_stage"] == "prepress"

    def test_override_non_admin_409(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/override",
                          json={"changes": {"current_stage": "design"}}, headers=_headers("sales"))
        assert res.status_code == 409

    def test_override_non_admin_with_unknown_stage_409(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/override",
                          json={"changes": {"current_stage": "shipping"}}, headers=_headers("sales"))
        assert res.status_code == 409
        assert res.get_json()["code"] == "WF_INVALID_TRANSITION"

    def test_override_requires_changes(self, client, make_item):
        item = make_item()
        res = client.post(f"/api/v1/items/{item.id}/override", json={}, headers=_headers("admin"))
        assert res.status_code == 400

    def test_sequence(self, client, make_item):
        item = make_item(current_stage="production", status="production_in_progress",
                         production_stage_sequence=["printing"], current_substage="printing",
                         substage_status="not_started")
        res = client.put(f"/api/v1/items/{item.id}/sequence",
                         json={"production_stage_sequence": ["cutting", "packing"]},
                         headers=_headers("admin"))
        assert res.status_code == 200
        data = res.get_json()
        assert data["production_stage_sequence"] == ["cutting", "packing"]
        assert data["current_substage"] == "cutting"

    def test_sequence_unknown_key_422(self, client, make_item):
        item = make_item(current_stage="production")
        res = client.put(f"/api/v1/items/{item.id}/sequence",
                         json={"production_stage_sequence": ["laminating"]}, headers=_headers("admin"))
        assert res.status_code == 422
