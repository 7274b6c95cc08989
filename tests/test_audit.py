"""
Tests for `services/audit.py`.
"""

from __future__ import annotations

from dataclasses import replace

from domain.vendor import HistoryType, VendorHistoryEntry
from services.audit import verify_vendor_history, verify_vendors
from tests.fakes import T0, make_vendor


def _entry(kind: HistoryType, count: int, used: tuple, quota: tuple) -> VendorHistoryEntry:
    return VendorHistoryEntry(
        type=kind,
        count=count,
        before_used=used[0],
        after_used=used[1],
        before_quota=quota[0],
        after_quota=quota[1],
        reason="test",
        timestamp=T0,
        performed_by="admin",
    )


def test_clean_history_passes() -> None:
    vendor = make_vendor("v-1", quota=8, used=1)
    vendor, _ = vendor.add_quota(3, reason="top up", performed_by="admin", at=T0)
    vendor, _ = vendor.assign_one(reason="distribution", performed_by="admin", at=T0, lead_id="l-1")

    report = verify_vendor_history(vendor)

    assert report.ok
    assert report.entries_checked == 2
    assert report.to_dict()["issues"] == []


def test_inconsistent_entry_is_reported() -> None:
    """Verify an entry whose snapshot disagrees with its type and count is flagged."""

    vendor = make_vendor("v-1", quota=10, used=2)
    vendor = replace(vendor, history=(_entry(HistoryType.ASSIGN, 1, (0, 2), (10, 10)),))

    report = verify_vendor_history(vendor)

    assert not report.ok
    assert report.issues[0].index == 0
    assert "does not match snapshot" in report.issues[0].message


def test_gap_between_entries_and_stale_counters_are_reported() -> None:
    vendor = make_vendor("v-1", quota=10, used=3)
    vendor = replace(
        vendor,
        history=(
            _entry(HistoryType.ASSIGN, 1, (0, 1), (10, 10)),
            _entry(HistoryType.ASSIGN, 1, (4, 5), (10, 10)),
        ),
    )

    messages = [issue.message for issue in verify_vendor_history(vendor).issues]

    assert any(m.startswith("gap in history") for m in messages)
    assert any(m.startswith("current counters") for m in messages)


def test_verify_vendors_reports_each_vendor() -> None:
    reports = verify_vendors([make_vendor("a"), make_vendor("b")])
    assert [r.vendor_id for r in reports] == ["a", "b"]
    assert all(r.ok for r in reports)
