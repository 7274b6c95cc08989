"""
Domain: Lead entity.

A Lead is a customer's service request awaiting vendor fulfillment.

Rules implemented here:
- status is one of LeadStatus; every status change appends exactly one
  ProgressEntry to progress_history.
- assigned_vendors holds one vendor ID per quota unit the lead holds, so a
  vendor assigned twice is listed twice; is_assigned is derived (True iff
  assigned_vendors is non-empty).
- version counts committed writes; stores only accept a write carrying the
  version they hold.
- The city is derived from the free-text address when not given explicitly.
- All timestamps are UTC.

This module contains only pure domain entities: no I/O, no database.
Transitions return new instances.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .time import require_utc_timestamp


class LeadStatus(str, Enum):
    PENDING = "pending"
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    TAKEN = "taken"
    CONTACTED = "contacted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LeadPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Leads in these states can no longer be handed to vendors.
CLOSED_STATUSES = frozenset({LeadStatus.TAKEN, LeadStatus.COMPLETED, LeadStatus.CANCELLED})

_PIN_CODE = re.compile(r"\b\d{6}\b")
_COUNTRIES = {"india", "bharat"}


def parse_city(address: Optional[str]) -> Optional[str]:
    """
    Derive a city from a free-text address.

    Addresses are expected as "<street>, ..., <city>[, <PIN>][, <country>]".
    PIN codes and country names are discarded; the last remaining
    comma-separated segment is the city.

    Example:
        parse_city("221B MG Road, Indiranagar, Bengaluru 560038, India")
        # "Bengaluru"
    """
    if not address:
        return None

    segments = []
    for raw in address.split(","):
        segment = _PIN_CODE.sub("", raw).strip(" .-")
        if not segment or segment.casefold() in _COUNTRIES:
            continue
        segments.append(segment)

    if not segments:
        return None
    city = segments[-1]
    # A single segment with a house number is a street, not a city
    if len(segments) == 1 and any(ch.isdigit() for ch in city):
        return None
    return city


@dataclass(frozen=True, slots=True)
class ProgressEntry:
    """One status transition in a lead's progress history."""

    from_status: LeadStatus
    to_status: LeadStatus
    timestamp: datetime
    performed_by: str
    reason: str = ""

    def __post_init__(self) -> None:
        require_utc_timestamp("timestamp", self.timestamp)


@dataclass(frozen=True, slots=True)
class LeadNote:
    note: str
    added_by: str
    added_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("added_at", self.added_at)


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain entity for a Lead.

    Notes:
    - The engine does not dedupe reassignment: assigning a lead to a vendor it
      already lists is allowed and appends a second entry, matching the second
      unit of quota the vendor was charged.
    """

    lead_id: str
    customer_name: str
    customer_phone: str
    service: str
    created_at: datetime
    customer_email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    sub_service: Optional[str] = None
    description: Optional[str] = None
    status: LeadStatus = LeadStatus.PENDING
    priority: LeadPriority = LeadPriority.MEDIUM
    assigned_vendors: Tuple[str, ...] = ()
    progress_history: Tuple[ProgressEntry, ...] = ()
    notes: Tuple[LeadNote, ...] = ()
    taken_by: Optional[str] = None
    taken_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        if self.taken_at is not None:
            require_utc_timestamp("taken_at", self.taken_at)
        if self.version < 0:
            raise ValueError("version must be >= 0")
        if self.city is None and self.address:
            object.__setattr__(self, "city", parse_city(self.address))

    @property
    def is_assigned(self) -> bool:
        return len(self.assigned_vendors) > 0

    @property
    def is_assignable(self) -> bool:
        return self.status not in CLOSED_STATUSES

    def _transition(
        self,
        to_status: LeadStatus,
        *,
        performed_by: str,
        at: datetime,
        reason: str = "",
        **changes,
    ) -> "Lead":
        entry = ProgressEntry(
            from_status=self.status,
            to_status=to_status,
            timestamp=at,
            performed_by=performed_by,
            reason=reason,
        )
        return replace(
            self,
            status=to_status,
            progress_history=self.progress_history + (entry,),
            updated_at=at,
            **changes,
        )

    def assigned_to(
        self,
        vendor_id: str,
        *,
        performed_by: str,
        at: datetime,
        to_status: LeadStatus = LeadStatus.ASSIGNED,
        reason: str = "",
    ) -> "Lead":
        """Return a new Lead with vendor_id attached and one progress entry appended."""

        return self._transition(
            to_status,
            performed_by=performed_by,
            at=at,
            reason=reason,
            assigned_vendors=self.assigned_vendors + (vendor_id,),
        )

    def unassigned(self, *, performed_by: str, at: datetime, reason: str = "") -> "Lead":
        return self._transition(
            LeadStatus.PENDING,
            performed_by=performed_by,
            at=at,
            reason=reason,
            assigned_vendors=(),
        )

    def reattached(
        self, vendor_ids: Tuple[str, ...], *, performed_by: str, at: datetime, reason: str = ""
    ) -> "Lead":
        """Return a new Lead listing vendor_ids again, whose quota units were never given back."""

        return self._transition(
            LeadStatus.ASSIGNED,
            performed_by=performed_by,
            at=at,
            reason=reason,
            assigned_vendors=self.assigned_vendors + tuple(vendor_ids),
        )

    def with_status(
        self, status: LeadStatus, *, performed_by: str, at: datetime, reason: str = ""
    ) -> "Lead":
        return self._transition(status, performed_by=performed_by, at=at, reason=reason)

    def taken(self, vendor_id: str, *, at: datetime) -> "Lead":
        """
        Return a new Lead claimed by vendor_id.

        Raises ValueError when the vendor was never offered the lead or the
        lead is no longer open for claiming.
        """

        if vendor_id not in self.assigned_vendors:
            raise ValueError("lead is not available to this vendor")
        if self.taken_by is not None or self.status not in (LeadStatus.AVAILABLE, LeadStatus.ASSIGNED):
            raise ValueError("lead already taken")
        return self._transition(
            LeadStatus.TAKEN,
            performed_by=vendor_id,
            at=at,
            reason="Lead taken by vendor",
            taken_by=vendor_id,
            taken_at=at,
        )

    def with_note(self, note: str, *, added_by: str, at: datetime) -> "Lead":
        entry = LeadNote(note=note, added_by=added_by, added_at=at)
        return replace(self, notes=self.notes + (entry,), updated_at=at)

    def with_priority(self, priority: LeadPriority, *, at: datetime) -> "Lead":
        return replace(self, priority=priority, updated_at=at)
