"""
Tests for `domain/lead.py`.

Covers contract rules:
- created_at is required and must be a UTC timestamp.
- is_assigned is TRUE iff assigned_vendors is non-empty; one vendor entry per assignment.
- Every status change appends exactly one progress entry (from/to/by/at).
- The city is derived from the free-text address (PIN codes and country dropped).
- Transitions return new instances; the original lead is unchanged.
- Only a vendor the lead was offered to can take it, and only once.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from domain.lead import Lead, LeadPriority, LeadStatus, parse_city

T0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(minutes=5)


def _lead(**overrides) -> Lead:
    fields = dict(
        lead_id="lead-1",
        customer_name="Asha Rao",
        customer_phone="+91 98450 12345",
        service="Plumbing",
        created_at=T0,
        address="12 MG Road, Kothrud, Pune 411038, India",
    )
    fields.update(overrides)
    return Lead(**fields)


def test_lead_created_at_must_be_utc() -> None:
    """Verify created_at must be timezone-aware UTC (offset 0)."""

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        _lead(created_at=datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=5, minutes=30))))


def test_lead_is_immutable() -> None:
    """Verify Lead cannot be mutated after creation (frozen entity)."""

    lead = _lead()
    with pytest.raises(FrozenInstanceError):
        lead.status = LeadStatus.ASSIGNED  # type: ignore[misc]


def test_lead_rejects_negative_version() -> None:
    with pytest.raises(ValueError):
        _lead(version=-1)


@pytest.mark.parametrize(
    "address, expected",
    [
        ("221B MG Road, Indiranagar, Bengaluru 560038, India", "Bengaluru"),
        ("Flat 4, Baner Road, Pune, 411045", "Pune"),
        ("Andheri West, Mumbai", "Mumbai"),
        ("Nagpur", "Nagpur"),
        ("12 Main Street", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_city(address, expected) -> None:
    """Verify the last non-PIN, non-country address segment is the city."""

    assert parse_city(address) == expected


def test_city_is_derived_from_address_unless_given() -> None:
    """Verify an explicit city wins over the parsed one."""

    assert _lead().city == "Pune"
    assert _lead(city="Pimpri").city == "Pimpri"
    assert _lead(address=None).city is None


def test_assigned_to_sets_vendor_status_and_progress_entry() -> None:
    """Verify assignment attaches the vendor and records one progress entry."""

    lead = _lead()
    assert lead.is_assigned is False

    assigned = lead.assigned_to("v-1", performed_by="admin", at=T1, reason="morning batch")

    assert assigned.assigned_vendors == ("v-1",)
    assert assigned.is_assigned is True
    assert assigned.status == LeadStatus.ASSIGNED
    assert assigned.updated_at == T1
    assert len(assigned.progress_history) == 1
    entry = assigned.progress_history[0]
    assert (entry.from_status, entry.to_status) == (LeadStatus.PENDING, LeadStatus.ASSIGNED)
    assert entry.performed_by == "admin"
    assert entry.timestamp == T1
    assert entry.reason == "morning batch"

    # No side effects on the original
    assert lead.assigned_vendors == ()
    assert lead.progress_history == ()


def test_assigned_to_same_vendor_appends_second_entry() -> None:
    """Verify reassigning a listed vendor lists it again (one entry per quota unit)."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T0)
    again = lead.assigned_to("v-1", performed_by="admin", at=T1)

    assert again.assigned_vendors == ("v-1", "v-1")
    assert len(again.progress_history) == 2


def test_reattached_lists_vendors_again() -> None:
    """Verify vendors whose quota was not given back return to an unassigned lead."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T0)
    cleared = lead.unassigned(performed_by="admin", at=T1)

    restored = cleared.reattached(("v-1",), performed_by="admin", at=T1, reason="rollback")

    assert restored.assigned_vendors == ("v-1",)
    assert restored.status == LeadStatus.ASSIGNED
    assert restored.progress_history[-1].from_status == LeadStatus.PENDING
    assert restored.progress_history[-1].reason == "rollback"


def test_assigned_to_multiple_vendors_preserves_order() -> None:
    """Verify a lead may be offered to more than one vendor."""

    lead = _lead().assigned_to("v-2", performed_by="a", at=T0).assigned_to("v-1", performed_by="a", at=T1)
    assert lead.assigned_vendors == ("v-2", "v-1")


def test_assigned_to_available_status_for_keep_unassigned_adds() -> None:
    """Verify the target status can be `available` instead of `assigned`."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T1, to_status=LeadStatus.AVAILABLE)
    assert lead.status == LeadStatus.AVAILABLE
    assert lead.progress_history[-1].to_status == LeadStatus.AVAILABLE


def test_unassigned_clears_vendors_and_returns_to_pending() -> None:
    """Verify unassign empties assigned_vendors and records the transition."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T0)
    cleared = lead.unassigned(performed_by="admin", at=T1, reason="wrong area")

    assert cleared.assigned_vendors == ()
    assert cleared.is_assigned is False
    assert cleared.status == LeadStatus.PENDING
    assert cleared.progress_history[-1].from_status == LeadStatus.ASSIGNED


def test_with_status_appends_progress_entry() -> None:
    """Verify manual status edits append exactly one entry."""

    lead = _lead().with_status(LeadStatus.CONTACTED, performed_by="admin", at=T1)
    assert lead.status == LeadStatus.CONTACTED
    assert len(lead.progress_history) == 1


def test_note_and_priority_do_not_change_status() -> None:
    """Verify notes and priority leave status and progress history alone."""

    lead = _lead().with_note("call after 6pm", added_by="admin", at=T1).with_priority(LeadPriority.HIGH, at=T1)

    assert lead.status == LeadStatus.PENDING
    assert lead.progress_history == ()
    assert lead.notes[0].note == "call after 6pm"
    assert lead.priority == LeadPriority.HIGH


def test_closed_leads_are_not_assignable() -> None:
    """Verify taken, completed and cancelled leads cannot be distributed."""

    assert _lead().is_assignable is True
    for status in (LeadStatus.TAKEN, LeadStatus.COMPLETED, LeadStatus.CANCELLED):
        assert _lead(status=status).is_assignable is False


def test_taken_by_offered_vendor() -> None:
    """Verify a vendor the lead was offered to can take it once."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T0).assigned_to("v-2", performed_by="admin", at=T0)
    taken = lead.taken("v-2", at=T1)

    assert taken.status == LeadStatus.TAKEN
    assert taken.taken_by == "v-2"
    assert taken.taken_at == T1
    assert taken.progress_history[-1].performed_by == "v-2"

    with pytest.raises(ValueError, match="already taken"):
        taken.taken("v-1", at=T1)


def test_taken_by_vendor_not_offered_the_lead() -> None:
    """Verify a vendor outside assigned_vendors cannot take the lead."""

    lead = _lead().assigned_to("v-1", performed_by="admin", at=T0)
    with pytest.raises(ValueError, match="not available"):
        lead.taken("v-9", at=T1)
