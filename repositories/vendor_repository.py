"""
Vendor repository (persistence).

This module provides *only* persistence operations for the Vendor domain entity.
Quota rules live in domain/vendor.py; this module enforces just one persistence
constraint: quota writes are conditional on the row's `version` column, so a
writer that read a stale vendor loses instead of overwriting a concurrent change.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from postgrest.exceptions import APIError

from domain.time import parse_utc_datetime, to_iso_utc
from domain.vendor import (
    HistoryType,
    Vendor,
    VendorHistoryEntry,
    VendorStatus,
)
from repositories.base import WriteStatus, VendorFilter


def history_entry_to_json(entry: VendorHistoryEntry) -> dict[str, Any]:
    return {
        "type": entry.type.value,
        "count": entry.count,
        "before_used": entry.before_used,
        "after_used": entry.after_used,
        "before_quota": entry.before_quota,
        "after_quota": entry.after_quota,
        "reason": entry.reason,
        "timestamp": to_iso_utc(entry.timestamp, name="timestamp"),
        "performed_by": entry.performed_by,
        "lead_id": entry.lead_id,
    }


def _history_entry_from_json(data: Mapping[str, Any]) -> VendorHistoryEntry:
    lead_id = data.get("lead_id")
    return VendorHistoryEntry(
        type=HistoryType(str(data["type"])),
        count=int(data["count"]),
        before_used=int(data["before_used"]),
        after_used=int(data["after_used"]),
        before_quota=int(data["before_quota"]),
        after_quota=int(data["after_quota"]),
        reason=str(data.get("reason") or ""),
        timestamp=parse_utc_datetime(data["timestamp"]),
        performed_by=str(data.get("performed_by") or ""),
        lead_id=str(lead_id) if lead_id else None,
    )


def row_to_vendor(row: Mapping[str, Any]) -> Vendor:
    """Convert a Supabase row into a domain Vendor."""

    return Vendor(
        vendor_id=str(row["vendor_id"]),
        business_name=str(row.get("business_name") or ""),
        services=frozenset(str(s) for s in (row.get("services") or [])),
        quota=int(row.get("quota") or 0),
        used=int(row.get("used") or 0),
        user_id=str(row["user_id"]) if row.get("user_id") else None,
        city=str(row["city"]) if row.get("city") else None,
        rating=float(row.get("rating") or 0.0),
        status=VendorStatus(str(row.get("status") or VendorStatus.PENDING.value)),
        version=int(row.get("version") or 0),
        history=tuple(_history_entry_from_json(e) for e in (row.get("history") or [])),
        push_token=str(row["push_token"]) if row.get("push_token") else None,
    )


def vendor_to_row(vendor: Vendor) -> dict[str, Any]:
    return {
        "vendor_id": vendor.vendor_id,
        "user_id": vendor.user_id,
        "business_name": vendor.business_name,
        "services": sorted(vendor.services),
        "city": vendor.city,
        "rating": vendor.rating,
        "status": vendor.status.value,
        "quota": vendor.quota,
        "used": vendor.used,
        "version": vendor.version,
        "history": [history_entry_to_json(e) for e in vendor.history],
        "push_token": vendor.push_token,
    }


def matches_filter(vendor: Vendor, filters: VendorFilter) -> bool:
    """
    Apply the VendorFilter predicates that are evaluated in Python.

    Remaining capacity compares two columns and services/city are matched
    case-insensitively, neither of which PostgREST filters express directly.
    """

    if filters.active_only and not vendor.is_active:
        return False
    if filters.with_capacity and vendor.remaining <= 0:
        return False
    if filters.service and not vendor.offers(filters.service):
        return False
    if filters.city and not vendor.in_city(filters.city):
        return False
    return True


def _execute(query: Any, action: str) -> Any:
    """Run a PostgREST query; any Supabase error becomes RuntimeError."""
    try:
        response = query.execute()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e.message or e}") from e
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


class SupabaseVendorStore:
    """VendorStore backed by a Supabase (PostgREST) table."""

    def __init__(self, client: Any, table: str = "vendors") -> None:
        self._client = client
        self._table = table

    def get(self, vendor_id: str) -> Optional[Vendor]:
        query = self._client.table(self._table).select("*").eq("vendor_id", vendor_id).limit(1)
        rows = _execute(query, "fetch vendor")
        if not rows:
            return None
        return row_to_vendor(rows[0])

    def find_eligible(self, filters: VendorFilter) -> List[Vendor]:
        """
        Fetch vendors matching filters, ordered by vendor_id.

        Status and ID constraints run server-side; the rest are applied to the
        fetched rows (see matches_filter).
        """

        query = self._client.table(self._table).select("*")
        if filters.active_only:
            query = query.eq("status", VendorStatus.ACTIVE.value)
        if filters.vendor_ids is not None:
            query = query.in_("vendor_id", list(filters.vendor_ids))

        rows = _execute(query.order("vendor_id"), "list vendors")
        vendors = [row_to_vendor(row) for row in rows]
        return [v for v in vendors if matches_filter(v, filters)]

    def list_all(self) -> List[Vendor]:
        query = self._client.table(self._table).select("*").order("vendor_id")
        return [row_to_vendor(row) for row in _execute(query, "list vendors")]

    def atomic_adjust_quota(
        self, current: Vendor, delta_used: int, delta_quota: int, entry: VendorHistoryEntry
    ) -> WriteStatus:
        """
        Conditionally write used/quota/history for one vendor.

        The UPDATE matches on (vendor_id, version); zero updated rows means the
        row changed since `current` was read (or was removed).
        """

        update_payload: dict[str, Any] = {
            "used": current.used + delta_used,
            "quota": current.quota + delta_quota,
            "history": [history_entry_to_json(e) for e in current.history + (entry,)],
            "version": current.version + 1,
        }
        query = (
            self._client.table(self._table)
            .update(update_payload)
            .eq("vendor_id", current.vendor_id)
            .eq("version", current.version)
        )
        if _execute(query, "adjust vendor quota"):
            return WriteStatus.OK

        if self.get(current.vendor_id) is None:
            return WriteStatus.NOT_FOUND
        return WriteStatus.CONFLICT

    def clear_push_token(self, vendor_id: str) -> None:
        query = self._client.table(self._table).update({"push_token": None}).eq("vendor_id", vendor_id)
        _execute(query, "clear push token")


__all__ = [
    "SupabaseVendorStore",
    "history_entry_to_json",
    "matches_filter",
    "row_to_vendor",
    "vendor_to_row",
]
