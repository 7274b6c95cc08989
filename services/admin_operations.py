"""
Admin-facing operations.

Every operation returns an OperationResult instead of raising:
- success: {"success": true, "data": {...}}
- failure: {"success": false, "error": {"code": ..., "message": ...}}

Domain errors map to their stable code (validation_error, not_found,
conflict, capacity_exceeded, ...). Anything else is logged with its traceback
and reported as internal_error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from domain.errors import DistributionError, NotFound, ValidationError
from domain.lead import LeadStatus
from domain.strategy import Strategy, strategy_from_dict
from domain.time import to_iso_utc, utc_now
from repositories.base import LeadFilter, LeadSort, LeadStore, VendorStore
from repositories.vendor_repository import history_entry_to_json
from services import vendor_catalog
from services.assignment_service import AssignmentService
from services.audit import verify_vendor_history
from services.bulk_actions import BulkLeadActions
from services.notification_service import NotificationDispatcher, NotificationEvent
from services.quota_ledger import DEFAULT_MAX_RETRIES, QuotaLedger

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50


@dataclass(frozen=True, slots=True)
class OperationResult:
    success: bool
    data: Any = None
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, **details: Any) -> "OperationResult":
        error = {"code": code, "message": message}
        error.update({k: v for k, v in details.items() if v is not None})
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        return {"success": False, "error": self.error}


def _vendor_dict(vendor: Any) -> Dict[str, Any]:
    return {
        "vendor_id": vendor.vendor_id,
        "business_name": vendor.business_name,
        "status": vendor.status.value,
        "quota": vendor.quota,
        "used": vendor.used,
        "remaining": vendor.remaining,
    }


def _lead_dict(lead: Any) -> Dict[str, Any]:
    return {
        "lead_id": lead.lead_id,
        "customer_name": lead.customer_name,
        "customer_phone": lead.customer_phone,
        "customer_email": lead.customer_email,
        "address": lead.address,
        "city": lead.city,
        "service": lead.service,
        "sub_service": lead.sub_service,
        "description": lead.description,
        "status": lead.status.value,
        "priority": lead.priority.value,
        "assigned_vendors": list(lead.assigned_vendors),
        "is_assigned": lead.is_assigned,
        "taken_by": lead.taken_by,
        "progress_history": [
            {
                "from_status": e.from_status.value,
                "to_status": e.to_status.value,
                "timestamp": to_iso_utc(e.timestamp),
                "performed_by": e.performed_by,
                "reason": e.reason,
            }
            for e in lead.progress_history
        ],
        "notes": [
            {"note": n.note, "added_by": n.added_by, "added_at": to_iso_utc(n.added_at)}
            for n in lead.notes
        ],
        "created_at": to_iso_utc(lead.created_at),
        "updated_at": to_iso_utc(lead.updated_at) if lead.updated_at else None,
    }


class AdminOperations:
    def __init__(
        self,
        lead_store: LeadStore,
        vendor_store: VendorStore,
        *,
        ledger: QuotaLedger,
        assignments: AssignmentService,
        bulk: BulkLeadActions,
        dispatcher: Optional[NotificationDispatcher] = None,
    ) -> None:
        self._leads = lead_store
        self._vendors = vendor_store
        self._ledger = ledger
        self._assignments = assignments
        self._bulk = bulk
        self._dispatcher = dispatcher

    @classmethod
    def build(
        cls,
        lead_store: LeadStore,
        vendor_store: VendorStore,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AdminOperations":
        """Wire the services around a pair of stores."""

        ledger = QuotaLedger(vendor_store, max_retries=max_retries, clock=clock)
        return cls(
            lead_store,
            vendor_store,
            ledger=ledger,
            assignments=AssignmentService(
                lead_store, vendor_store, ledger, dispatcher=dispatcher, clock=clock
            ),
            bulk=BulkLeadActions(lead_store, ledger, clock=clock),
            dispatcher=dispatcher,
        )

    def _run(self, operation: str, fn: Callable[[], Any]) -> OperationResult:
        try:
            return OperationResult.ok(fn())
        except ValidationError as e:
            return OperationResult.fail(e.code, e.message, field=e.field)
        except DistributionError as e:
            return OperationResult.fail(e.code, e.message)
        except Exception:  # noqa: BLE001
            logger.exception(f"{operation} failed", extra={"operation": operation})
            return OperationResult.fail("internal_error", f"{operation} failed")

    def assign_leads(
        self,
        lead_ids: Sequence[str],
        strategy: Union[Strategy, Mapping[str, Any]],
        *,
        performed_by: str,
        reason: Optional[str] = None,
    ) -> OperationResult:
        def run() -> Dict[str, Any]:
            parsed = strategy_from_dict(strategy) if isinstance(strategy, Mapping) else strategy
            result = self._assignments.assign_leads(
                lead_ids, parsed, performed_by=performed_by, reason=reason
            )
            names = {}
            for vendor_id in result.per_vendor_counts:
                vendor = self._vendors.get(vendor_id)
                if vendor is not None:
                    names[vendor_id] = vendor.business_name
            data = result.to_dict()
            data["summary"] = result.summary(names)
            return data

        return self._run("assign_leads", run)

    def adjust_vendor_quota(
        self, vendor_id: str, delta: int, reason: str, *, performed_by: str
    ) -> OperationResult:
        """Positive delta adds quota, negative delta removes it."""

        def run() -> Dict[str, Any]:
            if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
                raise ValidationError("amount must be a non-zero integer", field="delta")
            if not reason or not reason.strip():
                raise ValidationError("reason is required", field="reason")

            if delta > 0:
                vendor, entry = self._ledger.add_quota(
                    vendor_id, delta, reason=reason, performed_by=performed_by
                )
            else:
                vendor, entry = self._ledger.remove_quota(
                    vendor_id, -delta, reason=reason, performed_by=performed_by
                )

            if self._dispatcher is not None:
                self._dispatcher.notify_vendor(
                    vendor_id,
                    NotificationEvent.QUOTA_ADJUSTED,
                    {"type": entry.type.value, "count": entry.count, "reason": reason},
                )
            return {"vendor": _vendor_dict(vendor), "entry": history_entry_to_json(entry)}

        return self._run("adjust_vendor_quota", run)

    def bulk_lead_action(
        self,
        lead_ids: Sequence[str],
        action: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        performed_by: str,
    ) -> OperationResult:
        return self._run(
            "bulk_lead_action",
            lambda: self._bulk.apply(lead_ids, action, payload, performed_by=performed_by).to_dict(),
        )

    def list_leads(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        service: Optional[str] = None,
        city: Optional[str] = None,
        assigned: Optional[bool] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> OperationResult:
        """
        Paginated lead listing with summary counts.

        page is clamped to >= 1 and limit to 1..50.
        """

        def run() -> Dict[str, Any]:
            try:
                parsed_status = LeadStatus(status) if status else None
            except ValueError:
                raise ValidationError(f"Invalid status: {status!r}", field="status") from None

            page_num = max(1, int(page))
            page_size = min(MAX_PAGE_SIZE, max(1, int(limit)))
            filters = LeadFilter(
                search=search or None,
                status=parsed_status,
                service=service or None,
                city=city or None,
                assigned=assigned,
            )
            sort = LeadSort(field=sort_by, descending=sort_order != "asc")

            items, total = self._leads.find(filters, sort, page_num, page_size)
            summary = self._leads.aggregate_summary(filters)
            total_pages = (total + page_size - 1) // page_size
            return {
                "leads": [_lead_dict(lead) for lead in items],
                "pagination": {
                    "page": page_num,
                    "limit": page_size,
                    "total": total,
                    "total_pages": total_pages,
                    "has_next": page_num < total_pages,
                    "has_prev": page_num > 1,
                },
                "summary": {
                    "total": summary.total,
                    "assigned": summary.assigned,
                    "unassigned": summary.unassigned,
                    "status_breakdown": dict(summary.status_breakdown),
                },
            }

        return self._run("list_leads", run)

    def vendor_history(self, vendor_id: str) -> OperationResult:
        def run() -> Dict[str, Any]:
            vendor = self._vendors.get(vendor_id)
            if vendor is None:
                raise NotFound("vendor", vendor_id)
            return {
                "vendor": _vendor_dict(vendor),
                "history": [history_entry_to_json(e) for e in vendor.history],
            }

        return self._run("vendor_history", run)

    def audit_vendor(self, vendor_id: str) -> OperationResult:
        def run() -> Dict[str, Any]:
            vendor = self._vendors.get(vendor_id)
            if vendor is None:
                raise NotFound("vendor", vendor_id)
            return verify_vendor_history(vendor).to_dict()

        return self._run("audit_vendor", run)

    def suggest_vendors(
        self,
        lead_ids: Sequence[str],
        *,
        city: Optional[str] = None,
        limit: int = vendor_catalog.SUGGESTION_LIMIT,
    ) -> OperationResult:
        def run() -> Dict[str, Any]:
            ids = [lead_id for lead_id in dict.fromkeys(lead_ids or []) if lead_id]
            if not ids:
                raise ValidationError("leadIds array is required", field="lead_ids")
            leads = [lead for lead in (self._leads.get(i) for i in ids) if lead is not None]
            if not leads:
                raise NotFound("lead", ", ".join(ids))
            return vendor_catalog.suggest_vendors(self._vendors, leads, city=city, limit=limit).to_dict()

        return self._run("suggest_vendors", run)

    def take_lead(self, vendor_id: str, lead_id: str) -> OperationResult:
        return self._run(
            "take_lead", lambda: _lead_dict(self._assignments.take_lead(vendor_id, lead_id))
        )


__all__ = ["AdminOperations", "OperationResult", "MAX_PAGE_SIZE"]
