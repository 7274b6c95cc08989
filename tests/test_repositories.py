"""
Tests for `repositories/lead_repository.py` and `repositories/vendor_repository.py`.

A small stand-in for the supabase-py query builder keeps rows in memory and
supports the calls the stores make (select/eq/in_/order/range/limit,
update/insert/delete, execute).

Covers:
- Row <-> domain conversion round-trips history, notes and timestamps.
- Quota and lead writes are conditional on version: a stale writer gets CONFLICT,
  a missing row NOT_FOUND.
- Supabase errors surface as RuntimeError.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from domain.lead import LeadStatus
from repositories.base import LeadFilter, LeadSort, WriteStatus, VendorFilter
from repositories.lead_repository import SupabaseLeadStore, lead_to_row, row_to_lead
from repositories.vendor_repository import SupabaseVendorStore, row_to_vendor, vendor_to_row
from tests.fakes import T0, make_lead, make_vendor


class FakeQuery:
    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: List[Any] = []
        self._order: Optional[tuple] = None
        self._range: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._count = False

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._count = count == "exact"
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "update", payload
        return self

    def insert(self, payload: Dict[str, Any]) -> "FakeQuery":
        self._op, self._payload = "insert", payload
        return self

    def delete(self) -> "FakeQuery":
        self._op = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, n: int) -> "FakeQuery":
        self._limit = n
        return self

    def execute(self) -> SimpleNamespace:
        self._client.calls.append((self._table, self._op, self._payload))
        if self._client.error:
            return SimpleNamespace(data=None, count=None, error=self._client.error)

        rows = self._client.tables.setdefault(self._table, [])
        if self._op == "insert":
            rows.append(copy.deepcopy(self._payload))
            return SimpleNamespace(data=[self._payload], count=None, error=None)

        matched = [row for row in rows if all(f(row) for f in self._filters)]
        if self._op == "update":
            for row in matched:
                row.update(copy.deepcopy(self._payload))
            return SimpleNamespace(data=copy.deepcopy(matched), count=None, error=None)
        if self._op == "delete":
            self._client.tables[self._table] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=matched, count=None, error=None)

        if self._order:
            column, desc = self._order
            matched.sort(key=lambda row: row.get(column) or "", reverse=desc)
        total = len(matched)
        if self._range:
            matched = matched[self._range[0] : self._range[1] + 1]
        if self._limit is not None:
            matched = matched[: self._limit]
        return SimpleNamespace(
            data=copy.deepcopy(matched), count=total if self._count else None, error=None
        )


class FakeSupabase:
    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.error: Optional[str] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


def test_vendor_row_round_trip() -> None:
    vendor = make_vendor("v-1", quota=5, services=("Plumbing", "Electrical"), push_token="tok")
    vendor, _ = vendor.assign_one(reason="distribution", performed_by="admin", at=T0, lead_id="l-1")

    restored = row_to_vendor(vendor_to_row(vendor))

    assert restored == vendor
    assert vendor_to_row(vendor)["history"][0]["timestamp"] == "2025-01-01T12:00:00+00:00"


def test_lead_row_round_trip() -> None:
    lead = make_lead("l-1").assigned_to("v-1", performed_by="admin", at=T0)
    lead = lead.with_note("gate code 1234", added_by="admin", at=T0)

    row = lead_to_row(lead)

    assert row["is_assigned"] is True
    assert row_to_lead(row) == lead


def test_atomic_adjust_quota_is_conditional_on_version(supabase) -> None:
    """Verify the update matches on version and a stale writer loses."""

    store = SupabaseVendorStore(supabase, "vendors")
    supabase.tables["vendors"] = [vendor_to_row(make_vendor("v-1", quota=5))]

    current = store.get("v-1")
    updated, entry = current.assign_one(reason="distribution", performed_by="admin", at=T0)

    assert store.atomic_adjust_quota(current, 1, 0, entry) == WriteStatus.OK
    stored = store.get("v-1")
    assert (stored.used, stored.version) == (1, 1)
    assert stored.history == (entry,)

    # Same stale snapshot again: version 0 no longer matches
    assert store.atomic_adjust_quota(current, 1, 0, entry) == WriteStatus.CONFLICT
    assert store.get("v-1").used == 1

    ghost = replace(current, vendor_id="ghost")
    assert store.atomic_adjust_quota(ghost, 1, 0, entry) == WriteStatus.NOT_FOUND


def test_find_eligible_filters_and_orders(supabase) -> None:
    store = SupabaseVendorStore(supabase, "vendors")
    supabase.tables["vendors"] = [
        vendor_to_row(make_vendor("v-3", services=("Plumbing",))),
        vendor_to_row(make_vendor("v-1", services=("Electrical",))),
        vendor_to_row(make_vendor("v-2", quota=2, used=2)),
    ]

    assert [v.vendor_id for v in store.find_eligible(VendorFilter())] == ["v-1", "v-3"]
    assert [v.vendor_id for v in store.find_eligible(VendorFilter(service="plumbing"))] == ["v-3"]
    assert [
        v.vendor_id
        for v in store.find_eligible(VendorFilter(with_capacity=False, vendor_ids=("v-2", "v-3")))
    ] == ["v-2", "v-3"]


def test_clear_push_token(supabase) -> None:
    store = SupabaseVendorStore(supabase, "vendors")
    supabase.tables["vendors"] = [vendor_to_row(make_vendor("v-1", push_token="tok"))]
    store.clear_push_token("v-1")
    assert store.get("v-1").push_token is None


def test_lead_store_crud_and_paging(supabase) -> None:
    store = SupabaseLeadStore(supabase, "leads")
    for i in range(3):
        store.insert(make_lead(f"l-{i}"))

    lead = store.get("l-1")
    assert lead.city == "Pune"
    assert store.update(lead.with_status(LeadStatus.CONTACTED, performed_by="admin", at=T0)) == WriteStatus.OK
    assert store.get("l-1").status == LeadStatus.CONTACTED

    items, total = store.find(LeadFilter(), LeadSort(field="lead_id", descending=False), 1, 2)
    assert total == 3
    assert len(items) == 2

    assert store.delete(store.get("l-0")) == WriteStatus.OK
    assert store.delete(make_lead("l-0")) == WriteStatus.NOT_FOUND
    assert store.update(make_lead("l-0")) == WriteStatus.NOT_FOUND


def test_lead_writes_are_conditional_on_version(supabase) -> None:
    """Verify a writer holding a stale lead loses on update and delete."""

    store = SupabaseLeadStore(supabase, "leads")
    store.insert(make_lead("l-1"))
    stale = store.get("l-1")

    assert store.update(stale.assigned_to("v-1", performed_by="admin", at=T0)) == WriteStatus.OK
    fresh = store.get("l-1")
    assert fresh.version == 1
    assert fresh.assigned_vendors == ("v-1",)

    assert store.update(stale.assigned_to("v-2", performed_by="admin", at=T0)) == WriteStatus.CONFLICT
    assert store.delete(stale) == WriteStatus.CONFLICT
    assert store.get("l-1").assigned_vendors == ("v-1",)

    assert store.update(fresh.assigned_to("v-1", performed_by="admin", at=T0)) == WriteStatus.OK
    assert store.get("l-1").assigned_vendors == ("v-1", "v-1")


def test_supabase_errors_raise_runtime_error(supabase) -> None:
    supabase.error = "permission denied"
    with pytest.raises(RuntimeError, match="Failed to fetch vendor: permission denied"):
        SupabaseVendorStore(supabase).get("v-1")
    with pytest.raises(RuntimeError, match="Failed to update lead"):
        SupabaseLeadStore(supabase).update(make_lead("l-1"))


def test_postgrest_api_errors_raise_runtime_error(supabase, monkeypatch) -> None:
    def raise_api_error(self):
        raise APIError({"message": "JWT expired", "code": "PGRST301"})

    monkeypatch.setattr(FakeQuery, "execute", raise_api_error)
    vendor = make_vendor("v-1")
    _, entry = vendor.assign_one(reason="distribution", performed_by="admin", at=T0)

    with pytest.raises(RuntimeError, match="Failed to adjust vendor quota: JWT expired"):
        SupabaseVendorStore(supabase).atomic_adjust_quota(vendor, 1, 0, entry)
    with pytest.raises(RuntimeError, match="Failed to list leads"):
        SupabaseLeadStore(supabase).find(LeadFilter(), LeadSort(), 1, 10)
