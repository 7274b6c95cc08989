"""
Tests for the HTTP layer in `api/`.

The Supabase-backed dependency is replaced with in-memory stores so the
routes, envelopes and status-code mapping can be exercised end to end.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_admin_operations
from api.main import app
from services.admin_operations import AdminOperations
from tests.fakes import FixedClock, InMemoryLeadStore, InMemoryVendorStore, make_lead, make_vendor


@pytest.fixture
def stores():
    lead_store = InMemoryLeadStore([make_lead("l-1"), make_lead("l-2"), make_lead("l-3", "Electrical")])
    vendor_store = InMemoryVendorStore(
        [
            make_vendor("v-1", quota=50, business_name="Sharma Plumbing"),
            make_vendor("v-2", quota=5, services=("Electrical",), business_name="Pune Electricals"),
        ]
    )
    return lead_store, vendor_store


@pytest.fixture
def client(stores):
    lead_store, vendor_store = stores
    ops = AdminOperations.build(lead_store, vendor_store, clock=FixedClock())
    app.dependency_overrides[get_admin_operations] = lambda: ops
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_cors_defaults_to_any_origin_without_credentials(client) -> None:
    response = client.get("/health", headers={"Origin": "https://admin.example.com"})
    assert response.headers["access-control-allow-origin"] == "*"
    assert "access-control-allow-credentials" not in response.headers


def test_assign_by_service(client, stores) -> None:
    response = client.post(
        "/api/v1/assignments",
        json={
            "lead_ids": ["l-1", "l-2", "l-3"],
            "strategy": {"type": "by_service"},
            "performed_by": "admin@example.com",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["per_vendor_counts"] == {"v-1": 2, "v-2": 1}
    assert body["data"]["summary"] == "Sharma Plumbing: 2 leads, Pune Electricals: 1 lead"
    assert stores[1].get("v-1").used == 2


def test_malformed_request_uses_error_envelope(client) -> None:
    response = client.post(
        "/api/v1/assignments",
        json={"lead_ids": [], "strategy": {"type": "all_available"}, "performed_by": "admin"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["field"] == "lead_ids"


def test_quota_adjustment_status_codes(client, stores) -> None:
    """Verify add -> 200, removing too much -> 400 unchanged, unknown vendor -> 404."""

    added = client.post(
        "/api/v1/vendors/v-1/quota",
        json={"delta": 20, "reason": "Plan upgrade", "performed_by": "admin"},
    )
    assert added.status_code == 200
    assert added.json()["data"]["vendor"]["quota"] == 70

    too_much = client.post(
        "/api/v1/vendors/v-1/quota",
        json={"delta": -100, "reason": "Refund", "performed_by": "admin"},
    )
    assert too_much.status_code == 400
    assert too_much.json()["error"]["message"] == "cannot remove more than current quota"
    assert stores[1].get("v-1").quota == 70

    missing = client.post(
        "/api/v1/vendors/ghost/quota",
        json={"delta": 5, "reason": "x", "performed_by": "admin"},
    )
    assert missing.status_code == 404


def test_history_and_audit(client) -> None:
    client.post("/api/v1/vendors/v-2/quota", json={"delta": -2, "reason": "Downgrade", "performed_by": "admin"})

    history = client.get("/api/v1/vendors/v-2/history").json()
    assert [e["type"] for e in history["data"]["history"]] == ["remove"]

    audit = client.get("/api/v1/vendors/v-2/audit").json()
    assert audit["data"]["ok"] is True

    assert client.get("/api/v1/vendors/ghost/history").status_code == 404


def test_take_lead_conflict(client) -> None:
    client.post(
        "/api/v1/assignments",
        json={
            "lead_ids": ["l-1"],
            "strategy": {"type": "specific", "vendor_ids": ["v-1", "v-2"]},
            "performed_by": "admin",
        },
    )

    first = client.post("/api/v1/leads/l-1/take", json={"vendor_id": "v-1"})
    second = client.post("/api/v1/leads/l-1/take", json={"vendor_id": "v-2"})

    assert first.status_code == 200
    assert first.json()["data"]["status"] == "taken"
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "conflict"


def test_list_and_bulk(client) -> None:
    listed = client.get("/api/v1/leads", params={"service": "Plumbing", "limit": 1})
    assert listed.status_code == 200
    assert listed.json()["data"]["pagination"]["total"] == 2

    bulk = client.post(
        "/api/v1/leads/bulk",
        json={"lead_ids": ["l-1"], "action": "add_note", "payload": {"note": "Call back"}, "performed_by": "admin"},
    )
    assert bulk.status_code == 200
    assert bulk.json()["data"]["succeeded"] == ["l-1"]

    rejected = client.post(
        "/api/v1/leads/bulk",
        json={"lead_ids": ["l-1"], "action": "update_status", "payload": {}, "performed_by": "admin"},
    )
    assert rejected.status_code == 400
    assert rejected.json()["error"]["field"] == "status"


def test_export_download(client) -> None:
    response = client.post(
        "/api/v1/leads/export",
        json={"lead_ids": ["l-1", "l-3"], "format": "csv", "performed_by": "admin"},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"leads-" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert len(lines) == 3
    assert lines[0].startswith("Lead ID,Customer Name")
