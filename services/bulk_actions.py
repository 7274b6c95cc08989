"""
Bulk lifecycle actions on batches of leads.

apply(lead_ids, action, payload) validates the action's required payload
field before touching any lead; a missing or invalid field raises
ValidationError and nothing is written. After validation, each lead is
processed independently and reported as succeeded or failed.

Actions:
- update_status  payload.status in LeadStatus; one progress entry per lead
- add_note       payload.note non-empty
- set_priority   payload.priority in {low, medium, high}
- export         payload.format in {csv, json}; no mutation
- delete         removes the lead and releases one quota unit per vendor entry
- unassign       clears vendors, status back to pending, releases quota

A delete or unassign whose quota release fails is reported as failed for that
lead, and the lead keeps listing the vendors that are still charged.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from domain.errors import ConflictError, DistributionError, NotFound, ValidationError
from domain.lead import Lead, LeadPriority, LeadStatus
from domain.time import utc_now
from repositories.base import LeadStore, WriteStatus
from services.export_service import EXPORT_FORMATS, ExportFile, export_leads
from services.quota_ledger import QuotaLedger

logger = logging.getLogger(__name__)

RELEASE_ROLLBACK_REASON = "rollback: quota release failed"


class BulkAction(str, Enum):
    UPDATE_STATUS = "update_status"
    ADD_NOTE = "add_note"
    SET_PRIORITY = "set_priority"
    EXPORT = "export"
    DELETE = "delete"
    UNASSIGN = "unassign"


@dataclass(frozen=True, slots=True)
class BulkFailure:
    lead_id: str
    reason: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return {"lead_id": self.lead_id, "reason": self.reason, "code": self.code}


@dataclass(frozen=True, slots=True)
class BulkResult:
    action: BulkAction
    succeeded: List[str] = field(default_factory=list)
    failed: List[BulkFailure] = field(default_factory=list)
    export: Optional[ExportFile] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "action": self.action.value,
            "succeeded": list(self.succeeded),
            "failed": [f.to_dict() for f in self.failed],
        }
        if self.export is not None:
            data["export"] = {
                "filename": self.export.filename,
                "media_type": self.export.media_type,
                "content": self.export.content,
            }
        return data


def _parse_action(action: Any) -> BulkAction:
    try:
        return BulkAction(action)
    except ValueError:
        allowed = ", ".join(a.value for a in BulkAction)
        raise ValidationError(f"Invalid action: {action!r}. Must be one of: {allowed}", field="action") from None


def _validate_payload(action: BulkAction, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Check the action's required field; return the parsed value(s)."""

    if action == BulkAction.UPDATE_STATUS:
        try:
            return {"status": LeadStatus(payload.get("status"))}
        except ValueError:
            raise ValidationError("Valid status is required", field="status") from None
    if action == BulkAction.ADD_NOTE:
        note = payload.get("note")
        if not isinstance(note, str) or not note.strip():
            raise ValidationError("Note is required", field="note")
        return {"note": note.strip()}
    if action == BulkAction.SET_PRIORITY:
        try:
            return {"priority": LeadPriority(payload.get("priority"))}
        except ValueError:
            raise ValidationError("Valid priority is required (low, medium, high)", field="priority") from None
    if action == BulkAction.EXPORT:
        fmt = payload.get("format")
        if fmt not in EXPORT_FORMATS:
            raise ValidationError(
                f"Export format is required ({', '.join(EXPORT_FORMATS)})", field="format"
            )
        return {"format": fmt}
    return {}


class BulkLeadActions:
    def __init__(
        self,
        lead_store: LeadStore,
        ledger: QuotaLedger,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._leads = lead_store
        self._ledger = ledger
        self._clock = clock

    def apply(
        self,
        lead_ids: Sequence[str],
        action: Any,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        performed_by: str,
    ) -> BulkResult:
        """
        Run one bulk action.

        Raises:
            ValidationError: empty lead_ids, unknown action, or missing/invalid
                payload field (before any lead is touched)
        """

        ids = [lead_id for lead_id in dict.fromkeys(lead_ids or []) if lead_id]
        if not ids:
            raise ValidationError("leadIds array is required", field="lead_ids")
        parsed_action = _parse_action(action)
        params = _validate_payload(parsed_action, payload or {})

        if parsed_action == BulkAction.EXPORT:
            return self._export(ids, params["format"])

        handler = {
            BulkAction.UPDATE_STATUS: self._update_status,
            BulkAction.ADD_NOTE: self._add_note,
            BulkAction.SET_PRIORITY: self._set_priority,
            BulkAction.DELETE: self._delete,
            BulkAction.UNASSIGN: self._unassign,
        }[parsed_action]
        reason = str((payload or {}).get("reason") or "")

        succeeded: List[str] = []
        failed: List[BulkFailure] = []
        for lead_id in ids:
            try:
                handler(lead_id, params, performed_by=performed_by, reason=reason)
            except DistributionError as e:
                failed.append(BulkFailure(lead_id=lead_id, reason=e.message, code=e.code))
                continue
            except RuntimeError as e:
                logger.error(
                    f"Bulk {parsed_action.value} failed for lead {lead_id}: {e}",
                    extra={"lead_id": lead_id, "action": parsed_action.value},
                )
                failed.append(BulkFailure(lead_id=lead_id, reason=str(e), code="internal_error"))
                continue
            succeeded.append(lead_id)

        logger.info(
            f"Bulk {parsed_action.value}: {len(succeeded)} succeeded, {len(failed)} failed",
            extra={"action": parsed_action.value, "performed_by": performed_by},
        )
        return BulkResult(action=parsed_action, succeeded=succeeded, failed=failed)

    def _load(self, lead_id: str) -> Lead:
        lead = self._leads.get(lead_id)
        if lead is None:
            raise NotFound("lead", lead_id)
        return lead

    def _mutate(self, lead_id: str, change: Callable[[Lead], Lead]) -> Tuple[Lead, Lead]:
        """
        Apply change to the stored lead under its version.

        A lost version race re-reads the lead and applies change again.

        Returns:
            (lead as read, lead as written)
        """

        for _ in range(self._ledger.max_retries + 1):
            lead = self._load(lead_id)
            updated = change(lead)
            status = self._leads.update(updated)
            if status == WriteStatus.OK:
                return lead, updated
            if status == WriteStatus.NOT_FOUND:
                raise NotFound("lead", lead_id)
        raise ConflictError(f"lead {lead_id} is being modified concurrently; retry later")

    def _update_status(self, lead_id: str, params: Dict[str, Any], *, performed_by: str, reason: str) -> None:
        self._mutate(
            lead_id,
            lambda lead: lead.with_status(
                params["status"],
                performed_by=performed_by,
                at=self._clock(),
                reason=reason or "Bulk status update",
            ),
        )

    def _add_note(self, lead_id: str, params: Dict[str, Any], *, performed_by: str, reason: str) -> None:
        self._mutate(lead_id, lambda lead: lead.with_note(params["note"], added_by=performed_by, at=self._clock()))

    def _set_priority(self, lead_id: str, params: Dict[str, Any], *, performed_by: str, reason: str) -> None:
        self._mutate(lead_id, lambda lead: lead.with_priority(params["priority"], at=self._clock()))

    def _release_vendors(
        self, lead: Lead, *, reason: str, performed_by: str
    ) -> Tuple[Tuple[str, ...], Optional[DistributionError]]:
        """
        Give back every quota unit the lead holds, one ledger call per vendor.

        Returns:
            (vendor entries whose units are still charged, first error seen)
        """

        unreleased: List[str] = []
        first_error: Optional[DistributionError] = None
        for vendor_id, count in Counter(lead.assigned_vendors).items():
            try:
                self._ledger.release(
                    vendor_id, count, reason=reason, performed_by=performed_by, lead_id=lead.lead_id
                )
            except RuntimeError as e:
                error: DistributionError = ConflictError(f"vendor update failed: {e}")
            except DistributionError as e:
                error = e
            else:
                continue
            logger.error(
                f"Could not release {count} quota unit(s) of vendor {vendor_id} for lead {lead.lead_id}: {error.message}",
                extra={"lead_id": lead.lead_id, "vendor_id": vendor_id, "error_code": error.code},
            )
            unreleased.extend([vendor_id] * count)
            first_error = first_error or error
        return tuple(unreleased), first_error

    def _delete(self, lead_id: str, params: Dict[str, Any], *, performed_by: str, reason: str) -> None:
        for _ in range(self._ledger.max_retries + 1):
            lead = self._load(lead_id)
            status = self._leads.delete(lead)
            if status == WriteStatus.OK:
                break
            if status == WriteStatus.NOT_FOUND:
                # Deleted concurrently; its vendors were released by that call
                raise NotFound("lead", lead_id)
        else:
            raise ConflictError(f"lead {lead_id} is being modified concurrently; retry later")

        unreleased, error = self._release_vendors(lead, reason=reason or "Lead deleted", performed_by=performed_by)
        if error is not None:
            # The lead comes back listing only the vendors that are still charged
            self._leads.insert(replace(lead, assigned_vendors=unreleased))
            logger.error(
                f"Restored lead {lead_id} after a failed quota release (vendors {list(unreleased)})",
                extra={"lead_id": lead_id, "performed_by": performed_by},
            )
            raise error

        logger.info(
            f"Deleted lead {lead_id} (status {lead.status.value}, vendors {list(lead.assigned_vendors)})",
            extra={"lead_id": lead_id, "performed_by": performed_by, "reason": reason},
        )

    def _unassign(self, lead_id: str, params: Dict[str, Any], *, performed_by: str, reason: str) -> None:
        reason = reason or "Lead unassigned"

        def clear(lead: Lead) -> Lead:
            if not lead.is_assigned:
                raise ValidationError("lead is not assigned", field="lead_ids")
            return lead.unassigned(performed_by=performed_by, at=self._clock(), reason=reason)

        before, _ = self._mutate(lead_id, clear)
        unreleased, error = self._release_vendors(before, reason=reason, performed_by=performed_by)
        if error is not None:
            self._mutate(
                lead_id,
                lambda lead: lead.reattached(
                    unreleased, performed_by=performed_by, at=self._clock(), reason=RELEASE_ROLLBACK_REASON
                ),
            )
            raise error

    def _export(self, ids: List[str], fmt: str) -> BulkResult:
        leads: List[Lead] = []
        failed: List[BulkFailure] = []
        for lead_id in ids:
            lead = self._leads.get(lead_id)
            if lead is None:
                error = NotFound("lead", lead_id)
                failed.append(BulkFailure(lead_id=lead_id, reason=error.message, code=error.code))
            else:
                leads.append(lead)

        stamp = self._clock().strftime("%Y%m%dT%H%M%SZ")
        return BulkResult(
            action=BulkAction.EXPORT,
            succeeded=[lead.lead_id for lead in leads],
            failed=failed,
            export=export_leads(leads, fmt, stamp=stamp),
        )


__all__ = ["BulkAction", "BulkFailure", "BulkLeadActions", "BulkResult", "RELEASE_ROLLBACK_REASON"]
