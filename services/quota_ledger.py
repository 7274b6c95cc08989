"""
Quota ledger service.

Owns every mutation of a vendor's `used` / `quota` counters. Each mutation is
a read-modify-write against the vendor store guarded by the row version:

1. reload the vendor (latest committed state)
2. compute the transition with the pure domain rules (domain/vendor.py)
3. write it conditionally on the version that was read
4. on a version conflict, go back to 1 (bounded)

A reservation whose retries are exhausted is reported as CapacityExceeded for
that lead. Admin quota adjustments whose retries are exhausted raise
ConflictError.

No lock is held across vendors or across a batch; each call touches exactly
one vendor.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Tuple

from domain.errors import CapacityExceeded, ConflictError, DistributionError, NotFound
from domain.time import utc_now
from domain.vendor import Vendor, VendorHistoryEntry
from repositories.base import WriteStatus, VendorStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3

Transition = Callable[[Vendor, datetime], Tuple[Vendor, VendorHistoryEntry]]


class QuotaLedger:
    def __init__(
        self,
        vendor_store: VendorStore,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._store = vendor_store
        self._max_retries = max_retries
        self._clock = clock

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def _mutate(
        self,
        vendor_id: str,
        transition: Transition,
        on_exhausted: Callable[[], DistributionError],
    ) -> Tuple[Vendor, VendorHistoryEntry]:
        for attempt in range(self._max_retries + 1):
            current = self._store.get(vendor_id)
            if current is None:
                raise NotFound("vendor", vendor_id)

            # Domain rules raise here (CapacityExceeded / ValidationError) before any write
            updated, entry = transition(current, self._clock())

            status = self._store.atomic_adjust_quota(
                current,
                updated.used - current.used,
                updated.quota - current.quota,
                entry,
            )
            if status == WriteStatus.OK:
                return replace(updated, version=current.version + 1), entry
            if status == WriteStatus.NOT_FOUND:
                raise NotFound("vendor", vendor_id)

            logger.debug(
                f"Quota write conflict for vendor {vendor_id} (attempt {attempt + 1})",
                extra={"vendor_id": vendor_id, "attempt": attempt + 1},
            )

        error = on_exhausted()
        logger.warning(
            f"Quota update for vendor {vendor_id} gave up after {self._max_retries + 1} attempts",
            extra={"vendor_id": vendor_id, "error_code": error.code},
        )
        raise error

    def reserve(
        self,
        vendor_id: str,
        *,
        reason: str,
        performed_by: str,
        lead_id: Optional[str] = None,
    ) -> Vendor:
        """
        Consume one unit of a vendor's capacity.

        Raises:
            CapacityExceeded: remaining <= 0, or retries exhausted
            NotFound: vendor does not exist
        """

        vendor, _ = self._mutate(
            vendor_id,
            lambda v, at: v.assign_one(
                reason=reason, performed_by=performed_by, at=at, lead_id=lead_id
            ),
            lambda: CapacityExceeded(vendor_id, "vendor at capacity (concurrent updates)"),
        )
        return vendor

    def release(
        self,
        vendor_id: str,
        count: int = 1,
        *,
        reason: str,
        performed_by: str,
        lead_id: Optional[str] = None,
    ) -> Vendor:
        """Return capacity to a vendor (lead deleted, unassigned, or a rolled-back reservation)."""

        vendor, _ = self._mutate(
            vendor_id,
            lambda v, at: v.release(
                count, reason=reason, performed_by=performed_by, at=at, lead_id=lead_id
            ),
            lambda: ConflictError(f"vendor {vendor_id} is being modified concurrently; retry later"),
        )
        return vendor

    def add_quota(
        self, vendor_id: str, count: int, *, reason: str, performed_by: str
    ) -> Tuple[Vendor, VendorHistoryEntry]:
        vendor, entry = self._mutate(
            vendor_id,
            lambda v, at: v.add_quota(count, reason=reason, performed_by=performed_by, at=at),
            lambda: ConflictError(f"vendor {vendor_id} is being modified concurrently; retry later"),
        )
        logger.info(
            f"Added {count} to quota of vendor {vendor_id}: {entry.before_quota} -> {entry.after_quota}",
            extra={"vendor_id": vendor_id, "reason": reason, "performed_by": performed_by},
        )
        return vendor, entry

    def remove_quota(
        self, vendor_id: str, count: int, *, reason: str, performed_by: str
    ) -> Tuple[Vendor, VendorHistoryEntry]:
        vendor, entry = self._mutate(
            vendor_id,
            lambda v, at: v.remove_quota(count, reason=reason, performed_by=performed_by, at=at),
            lambda: ConflictError(f"vendor {vendor_id} is being modified concurrently; retry later"),
        )
        logger.info(
            f"Removed {count} from quota of vendor {vendor_id}: {entry.before_quota} -> {entry.after_quota}",
            extra={"vendor_id": vendor_id, "reason": reason, "performed_by": performed_by},
        )
        return vendor, entry


__all__ = ["DEFAULT_MAX_RETRIES", "QuotaLedger"]
