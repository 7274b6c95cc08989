"""
Domain: Vendor entity and quota ledger transitions.

Rules implemented here:
- 0 <= used <= quota at all times; construction rejects any other state.
- Every change of used or quota produces exactly one VendorHistoryEntry whose
  before/after snapshot matches the change.
- remaining = quota - used. A vendor accepts an assignment iff remaining > 0.
- Removing quota is rejected (never clamped) when the count exceeds the
  current quota or would push quota below used.

This module contains only pure domain entities: no I/O, no database.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from .errors import CapacityExceeded, ValidationError
from .time import require_utc_timestamp


class VendorStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class HistoryType(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    ASSIGN = "assign"
    RELEASE = "release"


def normalize_service(name: Optional[str]) -> str:
    return (name or "").strip().casefold()


@dataclass(frozen=True, slots=True)
class VendorHistoryEntry:
    """
    Immutable audit record of one quota/used mutation.

    The delta implied by before/after must agree with type and count:
    - add:     quota += count
    - remove:  quota -= count
    - assign:  used  += count
    - release: used  -= count
    """

    type: HistoryType
    count: int
    before_used: int
    after_used: int
    before_quota: int
    after_quota: int
    reason: str
    timestamp: datetime
    performed_by: str
    lead_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)
        if self.count <= 0:
            raise ValueError("count must be > 0")

    def is_consistent(self) -> bool:
        """Check the before/after snapshot against type and count."""

        used_delta = self.after_used - self.before_used
        quota_delta = self.after_quota - self.before_quota
        expected = {
            HistoryType.ADD: (0, self.count),
            HistoryType.REMOVE: (0, -self.count),
            HistoryType.ASSIGN: (self.count, 0),
            HistoryType.RELEASE: (-self.count, 0),
        }[self.type]
        return (used_delta, quota_delta) == expected


@dataclass(frozen=True, slots=True)
class Vendor:
    """
    Service provider with a lead capacity for the current allocation period.

    version is an optimistic concurrency counter maintained by the store; it is
    carried unchanged by the transitions below.
    """

    vendor_id: str
    business_name: str
    services: FrozenSet[str]
    quota: int
    used: int
    user_id: Optional[str] = None
    city: Optional[str] = None
    rating: float = 0.0
    status: VendorStatus = VendorStatus.ACTIVE
    version: int = 0
    history: Tuple[VendorHistoryEntry, ...] = ()
    push_token: Optional[str] = None

    def __post_init__(self) -> None:
        if self.quota < 0:
            raise ValueError("quota must be >= 0")
        if self.used < 0:
            raise ValueError("used must be >= 0")
        if self.used > self.quota:
            raise ValueError("used must be <= quota")

    @property
    def remaining(self) -> int:
        return self.quota - self.used

    @property
    def is_active(self) -> bool:
        return self.status == VendorStatus.ACTIVE

    def offers(self, service: Optional[str]) -> bool:
        wanted = normalize_service(service)
        return bool(wanted) and any(normalize_service(s) == wanted for s in self.services)

    def in_city(self, city: Optional[str]) -> bool:
        return bool(city) and (self.city or "").strip().casefold() == city.strip().casefold()

    def _apply(
        self,
        kind: HistoryType,
        count: int,
        *,
        quota: int,
        used: int,
        reason: str,
        performed_by: str,
        at: datetime,
        lead_id: Optional[str] = None,
    ) -> tuple["Vendor", VendorHistoryEntry]:
        entry = VendorHistoryEntry(
            type=kind,
            count=count,
            before_used=self.used,
            after_used=used,
            before_quota=self.quota,
            after_quota=quota,
            reason=reason,
            timestamp=at,
            performed_by=performed_by,
            lead_id=lead_id,
        )
        updated = replace(self, quota=quota, used=used, history=self.history + (entry,))
        return updated, entry

    def assign_one(
        self, *, reason: str, performed_by: str, at: datetime, lead_id: Optional[str] = None
    ) -> tuple["Vendor", VendorHistoryEntry]:
        """Consume one unit of capacity. Raises CapacityExceeded when remaining <= 0."""

        if self.remaining <= 0:
            raise CapacityExceeded(self.vendor_id)
        return self._apply(
            HistoryType.ASSIGN,
            1,
            quota=self.quota,
            used=self.used + 1,
            reason=reason,
            performed_by=performed_by,
            at=at,
            lead_id=lead_id,
        )

    def release(
        self,
        count: int = 1,
        *,
        reason: str,
        performed_by: str,
        at: datetime,
        lead_id: Optional[str] = None,
    ) -> tuple["Vendor", VendorHistoryEntry]:
        """Give back capacity consumed by an assignment (lead deleted or unassigned)."""

        if count <= 0:
            raise ValidationError("release count must be a positive number", field="count")
        if count > self.used:
            raise ValidationError(
                f"cannot release {count} lead(s); vendor has only {self.used} in use",
                field="count",
            )
        return self._apply(
            HistoryType.RELEASE,
            count,
            quota=self.quota,
            used=self.used - count,
            reason=reason,
            performed_by=performed_by,
            at=at,
            lead_id=lead_id,
        )

    def add_quota(
        self, count: int, *, reason: str, performed_by: str, at: datetime
    ) -> tuple["Vendor", VendorHistoryEntry]:
        if count <= 0:
            raise ValidationError("amount must be a positive number", field="count")
        return self._apply(
            HistoryType.ADD,
            count,
            quota=self.quota + count,
            used=self.used,
            reason=reason,
            performed_by=performed_by,
            at=at,
        )

    def remove_quota(
        self, count: int, *, reason: str, performed_by: str, at: datetime
    ) -> tuple["Vendor", VendorHistoryEntry]:
        if count <= 0:
            raise ValidationError("amount must be a positive number", field="count")
        if count > self.quota:
            raise ValidationError("cannot remove more than current quota", field="count")
        if self.quota - count < self.used:
            raise ValidationError(
                f"cannot remove {count}; {self.used} lead(s) already delivered against quota {self.quota}",
                field="count",
            )
        return self._apply(
            HistoryType.REMOVE,
            count,
            quota=self.quota - count,
            used=self.used,
            reason=reason,
            performed_by=performed_by,
            at=at,
        )
