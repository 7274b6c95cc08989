"""
Domain: assignment results.

An AssignmentResult is transient (never persisted). It reports:
- assigned_count:    leads with at least one committed vendor pair
- unassigned_count:  leads with no committed pair (unassignable or all pairs failed)
- per_vendor_counts: committed pairs per vendor, in first-commit order
- failures:          one entry per failed pair or unassignable lead
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


@dataclass(frozen=True, slots=True)
class AssignmentFailure:
    lead_id: str
    reason: str
    code: str
    vendor_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lead_id": self.lead_id,
            "vendor_id": self.vendor_id,
            "reason": self.reason,
            "code": self.code,
        }


@dataclass(frozen=True, slots=True)
class AssignmentResult:
    assigned_count: int
    unassigned_count: int
    per_vendor_counts: Mapping[str, int]
    failures: List[AssignmentFailure] = field(default_factory=list)

    @property
    def affected_vendors(self) -> List[str]:
        return [vendor_id for vendor_id, count in self.per_vendor_counts.items() if count > 0]

    def summary(self, vendor_names: Optional[Mapping[str, str]] = None) -> str:
        """
        Human-readable distribution summary.

        Example:
            "Vendor A: 7 leads, Vendor B: 3 leads; 2 leads unassigned (no matching vendor capacity)"
        """
        names = vendor_names or {}
        parts = [
            f"{names.get(vendor_id, vendor_id)}: {count} lead{'s' if count != 1 else ''}"
            for vendor_id, count in self.per_vendor_counts.items()
        ]
        text = ", ".join(parts) if parts else "No leads assigned"
        if self.unassigned_count:
            plural = "s" if self.unassigned_count != 1 else ""
            text += f"; {self.unassigned_count} lead{plural} unassigned (no matching vendor capacity)"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assigned_count": self.assigned_count,
            "unassigned_count": self.unassigned_count,
            "per_vendor_counts": dict(self.per_vendor_counts),
            "failures": [f.to_dict() for f in self.failures],
        }
