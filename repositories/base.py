"""
Store contracts used by the services.

Services depend on these protocols only; the Supabase-backed implementations
live in lead_repository.py and vendor_repository.py. Keeping the contract here
lets services run against any store that supports atomic single-record updates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from domain.lead import Lead, LeadStatus
from domain.vendor import Vendor, VendorHistoryEntry


@dataclass(frozen=True, slots=True)
class LeadFilter:
    """Filter criteria for lead queries. None means "no constraint"."""
    search: Optional[str] = None
    status: Optional[LeadStatus] = None
    service: Optional[str] = None
    city: Optional[str] = None
    assigned: Optional[bool] = None
    lead_ids: Optional[Sequence[str]] = None


@dataclass(frozen=True, slots=True)
class LeadSort:
    field: str = "created_at"
    descending: bool = True


@dataclass(frozen=True, slots=True)
class LeadSummary:
    total: int
    assigned: int
    unassigned: int
    status_breakdown: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VendorFilter:
    """Filter criteria for vendor queries."""
    service: Optional[str] = None
    city: Optional[str] = None
    active_only: bool = True
    with_capacity: bool = True  # remaining = quota - used > 0
    vendor_ids: Optional[Sequence[str]] = None


class WriteStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


class LeadStore(Protocol):
    def get(self, lead_id: str) -> Optional[Lead]: ...

    def find(
        self, filters: LeadFilter, sort: LeadSort, page: int, limit: int
    ) -> Tuple[List[Lead], int]: ...

    def insert(self, lead: Lead) -> None: ...

    def update(self, lead: Lead) -> WriteStatus:
        """
        Write the lead's mutable fields iff the stored version still equals
        lead.version. The stored version is incremented on success.
        """
        ...

    def delete(self, lead: Lead) -> WriteStatus:
        """Remove the lead iff the stored version still equals lead.version."""
        ...

    def aggregate_summary(self, filters: LeadFilter) -> LeadSummary: ...


class VendorStore(Protocol):
    def get(self, vendor_id: str) -> Optional[Vendor]: ...

    def find_eligible(self, filters: VendorFilter) -> List[Vendor]: ...

    def atomic_adjust_quota(
        self, current: Vendor, delta_used: int, delta_quota: int, entry: VendorHistoryEntry
    ) -> WriteStatus:
        """
        Apply the deltas and append entry iff the stored version still equals
        current.version. The stored version is incremented on success.
        """
        ...

    def clear_push_token(self, vendor_id: str) -> None: ...
