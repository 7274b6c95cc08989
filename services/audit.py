"""
Vendor history consistency checks.

Replays a vendor's history and reports every place where the ledger and the
counters disagree:
- an entry whose before/after delta does not match its type and count
- an entry whose before-snapshot differs from the previous entry's after-snapshot
- a snapshot with used > quota or negative counters
- a final after-snapshot that differs from the vendor's current quota/used

Vendors with no history are only checked for 0 <= used <= quota.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List

from domain.vendor import Vendor


@dataclass(frozen=True, slots=True)
class AuditIssue:
    vendor_id: str
    index: int  # history position, -1 for vendor-level issues
    message: str


@dataclass(frozen=True, slots=True)
class AuditReport:
    vendor_id: str
    entries_checked: int
    issues: List[AuditIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "entries_checked": self.entries_checked,
            "ok": self.ok,
            "issues": [{"index": i.index, "message": i.message} for i in self.issues],
        }


def verify_vendor_history(vendor: Vendor) -> AuditReport:
    issues: List[AuditIssue] = []

    def issue(index: int, message: str) -> None:
        issues.append(AuditIssue(vendor_id=vendor.vendor_id, index=index, message=message))

    if not 0 <= vendor.used <= vendor.quota:
        issue(-1, f"counters out of range: used={vendor.used}, quota={vendor.quota}")

    previous = None
    for i, entry in enumerate(vendor.history):
        if not entry.is_consistent():
            issue(
                i,
                f"{entry.type.value} x{entry.count} does not match snapshot "
                f"used {entry.before_used}->{entry.after_used}, "
                f"quota {entry.before_quota}->{entry.after_quota}",
            )
        if entry.after_used < 0 or entry.after_used > entry.after_quota:
            issue(i, f"snapshot violates 0 <= used <= quota (used={entry.after_used}, quota={entry.after_quota})")
        if previous is not None and (
            entry.before_used != previous.after_used or entry.before_quota != previous.after_quota
        ):
            issue(
                i,
                f"gap in history: expected before used={previous.after_used}, quota={previous.after_quota}; "
                f"got used={entry.before_used}, quota={entry.before_quota}",
            )
        previous = entry

    if previous is not None and (
        previous.after_used != vendor.used or previous.after_quota != vendor.quota
    ):
        issue(
            -1,
            f"current counters used={vendor.used}, quota={vendor.quota} differ from last history "
            f"snapshot used={previous.after_used}, quota={previous.after_quota}",
        )

    return AuditReport(vendor_id=vendor.vendor_id, entries_checked=len(vendor.history), issues=issues)


def verify_vendors(vendors: Iterable[Vendor]) -> List[AuditReport]:
    return [verify_vendor_history(v) for v in vendors]


__all__ = ["AuditIssue", "AuditReport", "verify_vendor_history", "verify_vendors"]
