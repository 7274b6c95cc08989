"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead domain entity.
No business rules (assignment, quota, status validation) belong here.

Row layout (table `leads`):
- scalar columns for identity, customer facts, status, priority, timestamps
- `assigned_vendors`, `progress_history`, `notes`: JSON arrays
- `is_assigned`: denormalized boolean kept in sync on every write so that
  assigned/unassigned filters and counts run server-side
- `version`: updates and deletes match on (lead_id, version), so a writer
  holding a stale lead loses instead of overwriting a concurrent change
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

from postgrest.exceptions import APIError

from domain.lead import Lead, LeadNote, LeadPriority, LeadStatus, ProgressEntry
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.base import LeadFilter, LeadSort, LeadSummary, WriteStatus

_SORTABLE_COLUMNS = {"created_at", "updated_at", "customer_name", "status", "service", "city", "priority"}


def _progress_to_json(entry: ProgressEntry) -> dict[str, Any]:
    return {
        "from_status": entry.from_status.value,
        "to_status": entry.to_status.value,
        "timestamp": to_iso_utc(entry.timestamp, name="timestamp"),
        "performed_by": entry.performed_by,
        "reason": entry.reason,
    }


def _progress_from_json(data: Mapping[str, Any]) -> ProgressEntry:
    return ProgressEntry(
        from_status=LeadStatus(str(data["from_status"])),
        to_status=LeadStatus(str(data["to_status"])),
        timestamp=parse_utc_datetime(data["timestamp"]),
        performed_by=str(data.get("performed_by") or ""),
        reason=str(data.get("reason") or ""),
    )


def _note_to_json(note: LeadNote) -> dict[str, Any]:
    return {
        "note": note.note,
        "added_by": note.added_by,
        "added_at": to_iso_utc(note.added_at, name="added_at"),
    }


def _note_from_json(data: Mapping[str, Any]) -> LeadNote:
    return LeadNote(
        note=str(data["note"]),
        added_by=str(data.get("added_by") or ""),
        added_at=parse_utc_datetime(data["added_at"]),
    )


def _mutable_fields(lead: Lead) -> dict[str, Any]:
    """Columns written by update(): everything the engine may change."""

    return {
        "status": lead.status.value,
        "priority": lead.priority.value,
        "assigned_vendors": list(lead.assigned_vendors),
        "is_assigned": lead.is_assigned,
        "progress_history": [_progress_to_json(e) for e in lead.progress_history],
        "notes": [_note_to_json(n) for n in lead.notes],
        "taken_by": lead.taken_by,
        "taken_at": to_iso_utc(lead.taken_at, name="taken_at") if lead.taken_at else None,
        "updated_at": to_iso_utc(lead.updated_at, name="updated_at") if lead.updated_at else None,
    }


def lead_to_row(lead: Lead) -> dict[str, Any]:
    """Convert a domain Lead to a Supabase row payload."""

    row: dict[str, Any] = {
        "lead_id": lead.lead_id,
        "customer_name": lead.customer_name,
        "customer_phone": lead.customer_phone,
        "customer_email": lead.customer_email,
        "address": lead.address,
        "city": lead.city,
        "service": lead.service,
        "sub_service": lead.sub_service,
        "description": lead.description,
        "created_at": to_iso_utc(lead.created_at, name="created_at"),
        "version": lead.version,
    }
    row.update(_mutable_fields(lead))
    return row


def row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    def get_optional(key: str) -> str | None:
        value = row.get(key)
        return str(value) if value else None

    return Lead(
        lead_id=str(row["lead_id"]),
        customer_name=str(row.get("customer_name") or ""),
        customer_phone=str(row.get("customer_phone") or ""),
        service=str(row.get("service") or ""),
        created_at=parse_utc_datetime(row["created_at"]),
        customer_email=get_optional("customer_email"),
        address=get_optional("address"),
        city=get_optional("city"),
        sub_service=get_optional("sub_service"),
        description=get_optional("description"),
        status=LeadStatus(str(row.get("status") or LeadStatus.PENDING.value)),
        priority=LeadPriority(str(row.get("priority") or LeadPriority.MEDIUM.value)),
        assigned_vendors=tuple(str(v) for v in (row.get("assigned_vendors") or [])),
        progress_history=tuple(_progress_from_json(e) for e in (row.get("progress_history") or [])),
        notes=tuple(_note_from_json(n) for n in (row.get("notes") or [])),
        taken_by=get_optional("taken_by"),
        taken_at=parse_utc_datetime(row["taken_at"]) if row.get("taken_at") else None,
        updated_at=parse_utc_datetime(row["updated_at"]) if row.get("updated_at") else None,
        version=int(row.get("version") or 0),
    )


def _execute(query: Any, action: str) -> Any:
    """Run a PostgREST query; any Supabase error becomes RuntimeError."""
    try:
        response = query.execute()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e.message or e}") from e
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return response


def _rows(response: Any) -> list[dict[str, Any]]:
    return getattr(response, "data", None) or []


class SupabaseLeadStore:
    """LeadStore backed by a Supabase (PostgREST) table."""

    def __init__(self, client: Any, table: str = "leads") -> None:
        self._client = client
        self._table = table

    def _apply_filters(self, query: Any, filters: LeadFilter) -> Any:
        if filters.lead_ids is not None:
            query = query.in_("lead_id", list(filters.lead_ids))
        if filters.status is not None:
            query = query.eq("status", filters.status.value)
        if filters.service:
            query = query.eq("service", filters.service)
        if filters.city:
            query = query.ilike("city", filters.city)
        if filters.assigned is not None:
            query = query.eq("is_assigned", filters.assigned)
        if filters.search:
            term = filters.search.replace(",", " ").strip()
            query = query.or_(
                f"customer_name.ilike.%{term}%,"
                f"customer_phone.ilike.%{term}%,"
                f"customer_email.ilike.%{term}%,"
                f"service.ilike.%{term}%,"
                f"sub_service.ilike.%{term}%"
            )
        return query

    def get(self, lead_id: str) -> Optional[Lead]:
        query = self._client.table(self._table).select("*").eq("lead_id", lead_id).limit(1)
        rows = _rows(_execute(query, "fetch lead"))
        if not rows:
            return None
        return row_to_lead(rows[0])

    def find(
        self, filters: LeadFilter, sort: LeadSort, page: int, limit: int
    ) -> Tuple[List[Lead], int]:
        """
        Page through leads.

        Args:
            filters: LeadFilter criteria
            sort: column and direction (unknown columns fall back to created_at)
            page: 1-based page number
            limit: page size

        Returns:
            (items on this page, total matching rows)
        """
        column = sort.field if sort.field in _SORTABLE_COLUMNS else "created_at"
        start = (page - 1) * limit

        query = self._client.table(self._table).select("*", count="exact")
        query = self._apply_filters(query, filters)
        query = query.order(column, desc=sort.descending).range(start, start + limit - 1)
        response = _execute(query, "list leads")

        rows = _rows(response)
        total = getattr(response, "count", None)
        return [row_to_lead(row) for row in rows], int(total if total is not None else len(rows))

    def insert(self, lead: Lead) -> None:
        _execute(self._client.table(self._table).insert(lead_to_row(lead)), "insert lead")

    def _missing_or_stale(self, lead_id: str) -> WriteStatus:
        if self.get(lead_id) is None:
            return WriteStatus.NOT_FOUND
        return WriteStatus.CONFLICT

    def update(self, lead: Lead) -> WriteStatus:
        payload = _mutable_fields(lead)
        payload["version"] = lead.version + 1
        query = (
            self._client.table(self._table)
            .update(payload)
            .eq("lead_id", lead.lead_id)
            .eq("version", lead.version)
        )
        if _rows(_execute(query, "update lead")):
            return WriteStatus.OK
        return self._missing_or_stale(lead.lead_id)

    def delete(self, lead: Lead) -> WriteStatus:
        query = (
            self._client.table(self._table)
            .delete()
            .eq("lead_id", lead.lead_id)
            .eq("version", lead.version)
        )
        if _rows(_execute(query, "delete lead")):
            return WriteStatus.OK
        return self._missing_or_stale(lead.lead_id)

    def _count(self, filters: LeadFilter, **eq: Any) -> int:
        query = self._client.table(self._table).select("lead_id", count="exact")
        query = self._apply_filters(query, filters)
        for column, value in eq.items():
            query = query.eq(column, value)
        response = _execute(query.limit(1), "count leads")
        return int(getattr(response, "count", 0) or 0)

    def aggregate_summary(self, filters: LeadFilter) -> LeadSummary:
        total = self._count(filters)
        assigned = self._count(filters, is_assigned=True)
        breakdown = {}
        for status in LeadStatus:
            count = self._count(filters, status=status.value)
            if count:
                breakdown[status.value] = count
        return LeadSummary(
            total=total,
            assigned=assigned,
            unassigned=total - assigned,
            status_breakdown=breakdown,
        )


__all__ = [
    "SupabaseLeadStore",
    "lead_to_row",
    "row_to_lead",
]
