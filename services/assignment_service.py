"""
Assignment service: commits distribution plans through the quota ledger.

Per lead/vendor pair, in submission order:
1. Reload the lead (pairs for the same lead see each other's writes).
2. Reserve one unit of the vendor's quota (version-checked; the ledger
   reloads the vendor and rejects with CapacityExceeded when remaining <= 0).
3. Write the lead (vendor attached, status set, progress entry appended),
   conditional on the lead version; a lost race re-reads the lead and retries.
4. If step 3 fails, release the reserved unit again, so no pair ever leaves
   the vendor incremented with the lead unassigned.

Every failure is per pair; the batch always runs to the end. Notifications
go out after the batch has committed and never affect the result.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from domain.assignment import AssignmentFailure, AssignmentResult
from domain.errors import (
    CapacityExceeded,
    ConflictError,
    DistributionError,
    NoEligibleVendor,
    NotFound,
    ValidationError,
)
from domain.lead import Lead, LeadStatus
from domain.strategy import Assignment, Strategy
from domain.time import utc_now
from repositories.base import LeadStore, VendorStore, WriteStatus
from services import distribution, vendor_catalog
from services.notification_service import NotificationDispatcher
from services.quota_ledger import QuotaLedger

logger = logging.getLogger(__name__)

ROLLBACK_REASON = "rollback: lead update failed"


def _failure(lead_id: str, error: DistributionError, vendor_id: Optional[str] = None) -> AssignmentFailure:
    return AssignmentFailure(lead_id=lead_id, reason=error.message, code=error.code, vendor_id=vendor_id)


class AssignmentService:
    def __init__(
        self,
        lead_store: LeadStore,
        vendor_store: VendorStore,
        ledger: QuotaLedger,
        *,
        dispatcher: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._leads = lead_store
        self._vendors = vendor_store
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._clock = clock

    def _attach(
        self,
        pair: Assignment,
        *,
        reason: str,
        performed_by: str,
        to_status: LeadStatus,
    ) -> Optional[DistributionError]:
        """Write the vendor onto the lead, re-reading the lead after every lost version race."""

        for attempt in range(self._ledger.max_retries + 1):
            lead = self._leads.get(pair.lead_id)
            if lead is None:
                return NotFound("lead", pair.lead_id)
            if not lead.is_assignable:
                return ValidationError(f"lead not assignable (status {lead.status.value})", field="status")

            updated = lead.assigned_to(
                pair.vendor_id,
                performed_by=performed_by,
                at=self._clock(),
                to_status=to_status,
                reason=reason,
            )
            try:
                status = self._leads.update(updated)
            except RuntimeError as e:
                logger.error(f"Lead write failed for {pair.lead_id}: {e}", extra={"lead_id": pair.lead_id})
                return ConflictError(f"lead update failed: {e}")

            if status == WriteStatus.OK:
                return None
            if status == WriteStatus.NOT_FOUND:
                return NotFound("lead", pair.lead_id)
            logger.debug(
                f"Lead write conflict for {pair.lead_id} (attempt {attempt + 1})",
                extra={"lead_id": pair.lead_id, "attempt": attempt + 1},
            )

        return ConflictError(f"lead {pair.lead_id} is being modified concurrently; retry later")

    def _commit_pair(
        self,
        pair: Assignment,
        *,
        reason: str,
        performed_by: str,
        to_status: LeadStatus,
    ) -> Optional[AssignmentFailure]:
        lead = self._leads.get(pair.lead_id)
        if lead is None:
            return _failure(pair.lead_id, NotFound("lead", pair.lead_id), pair.vendor_id)
        if not lead.is_assignable:
            return _failure(
                pair.lead_id,
                ValidationError(f"lead not assignable (status {lead.status.value})", field="status"),
                pair.vendor_id,
            )

        try:
            self._ledger.reserve(
                pair.vendor_id, reason=reason, performed_by=performed_by, lead_id=pair.lead_id
            )
        except (CapacityExceeded, NotFound) as e:
            logger.warning(
                f"Could not assign lead {pair.lead_id} to vendor {pair.vendor_id}: {e.message}",
                extra={"lead_id": pair.lead_id, "vendor_id": pair.vendor_id, "error_code": e.code},
            )
            return _failure(pair.lead_id, e, pair.vendor_id)
        except RuntimeError as e:
            logger.error(
                f"Quota write failed for vendor {pair.vendor_id}: {e}",
                extra={"lead_id": pair.lead_id, "vendor_id": pair.vendor_id},
            )
            return _failure(pair.lead_id, ConflictError(f"vendor update failed: {e}"), pair.vendor_id)

        error = self._attach(pair, reason=reason, performed_by=performed_by, to_status=to_status)
        if error is not None:
            try:
                self._ledger.release(
                    pair.vendor_id,
                    reason=ROLLBACK_REASON,
                    performed_by=performed_by,
                    lead_id=pair.lead_id,
                )
            except DistributionError as e:
                logger.error(
                    f"Rollback of vendor {pair.vendor_id} for lead {pair.lead_id} failed: {e.message}",
                    extra={"lead_id": pair.lead_id, "vendor_id": pair.vendor_id},
                )
            return _failure(pair.lead_id, error, pair.vendor_id)

        logger.info(
            f"Assigned lead {pair.lead_id} to vendor {pair.vendor_id}",
            extra={"lead_id": pair.lead_id, "vendor_id": pair.vendor_id, "reason": reason},
        )
        return None

    def commit(
        self,
        mapping: Sequence[Assignment],
        *,
        reason: str,
        performed_by: str,
        to_status: LeadStatus = LeadStatus.ASSIGNED,
        unassignable: Sequence[str] = (),
    ) -> AssignmentResult:
        """
        Apply a lead -> vendor mapping.

        Args:
            mapping: planned pairs, committed in order
            reason: recorded on vendor history and lead progress entries
            performed_by: admin identity recorded on every entry
            to_status: ASSIGNED for distribution, AVAILABLE for "keep unassigned" adds
            unassignable: leads the planner could not place (reported as failures)

        Returns:
            AssignmentResult with lead counts, per-vendor counts and failures
        """

        per_vendor: Dict[str, int] = OrderedDict()
        failures: List[AssignmentFailure] = []
        committed: set[str] = set()
        seen: Dict[str, None] = OrderedDict()

        for pair in mapping:
            seen[pair.lead_id] = None
            failure = self._commit_pair(
                pair, reason=reason, performed_by=performed_by, to_status=to_status
            )
            if failure is not None:
                failures.append(failure)
                continue
            committed.add(pair.lead_id)
            per_vendor[pair.vendor_id] = per_vendor.get(pair.vendor_id, 0) + 1

        for lead_id in unassignable:
            seen[lead_id] = None
            failures.append(_failure(lead_id, NoEligibleVendor(lead_id)))

        result = AssignmentResult(
            assigned_count=len(committed),
            unassigned_count=len(seen) - len(committed),
            per_vendor_counts=per_vendor,
            failures=failures,
        )
        if self._dispatcher is not None:
            self._dispatcher.dispatch_assignments(result)
        return result

    def assign_leads(
        self,
        lead_ids: Sequence[str],
        strategy: Strategy,
        *,
        performed_by: str,
        reason: Optional[str] = None,
    ) -> AssignmentResult:
        """
        Plan and commit one distribution call.

        Raises:
            ValidationError: no lead IDs given (nothing is written)
        """

        ids = [lead_id for lead_id in dict.fromkeys(lead_ids) if lead_id]
        if not ids:
            raise ValidationError("leadIds array is required", field="lead_ids")

        leads: List[Lead] = []
        missing: List[AssignmentFailure] = []
        for lead_id in ids:
            lead = self._leads.get(lead_id)
            if lead is None:
                missing.append(_failure(lead_id, NotFound("lead", lead_id)))
            else:
                leads.append(lead)

        # One snapshot per call; round-robin slots index into it
        vendors = vendor_catalog.snapshot_for(strategy, self._vendors, leads)
        plan = distribution.plan(strategy, leads, vendors)

        result = self.commit(
            plan.mapping,
            reason=reason or f"Lead distribution ({strategy.kind})",
            performed_by=performed_by,
            unassignable=plan.unassignable,
        )
        if missing:
            result = replace(
                result,
                unassigned_count=result.unassigned_count + len(missing),
                failures=missing + list(result.failures),
            )
        return result

    def take_lead(self, vendor_id: str, lead_id: str) -> Lead:
        """
        A vendor claims a lead it was offered.

        No quota change: capacity was consumed when the lead was assigned.
        The write is conditional on the lead's version, so of two vendors
        racing for the same lead exactly one wins.

        Raises:
            NotFound: lead does not exist
            ValidationError: the lead was never offered to this vendor
            ConflictError: the lead was already taken or closed
        """

        for _ in range(self._ledger.max_retries + 1):
            lead = self._leads.get(lead_id)
            if lead is None:
                raise NotFound("lead", lead_id)
            if vendor_id not in lead.assigned_vendors:
                raise ValidationError("lead is not available to this vendor", field="vendor_id")
            try:
                taken = lead.taken(vendor_id, at=self._clock())
            except ValueError as e:
                raise ConflictError(str(e)) from None

            status = self._leads.update(taken)
            if status == WriteStatus.NOT_FOUND:
                raise NotFound("lead", lead_id)
            if status == WriteStatus.OK:
                logger.info(
                    f"Lead {lead_id} taken by vendor {vendor_id}",
                    extra={"lead_id": lead_id, "vendor_id": vendor_id},
                )
                return replace(taken, version=taken.version + 1)

        raise ConflictError(f"lead {lead_id} is being modified concurrently; retry later")


__all__ = ["AssignmentService", "ROLLBACK_REASON"]
