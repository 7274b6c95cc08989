"""
Distribution planning (pure).

plan(strategy, leads, vendors) maps leads to vendors without touching any
store. The vendor list is the snapshot taken once for this call; its order is
the catalog order used for round-robin slots and tie-breaks.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from domain.lead import Lead
from domain.strategy import (
    AllAvailable,
    Assignment,
    ByService,
    DistributionPlan,
    SingleTarget,
    SpecificList,
    Strategy,
)
from domain.vendor import Vendor


def _plan_single(strategy: SingleTarget, leads: Sequence[Lead]) -> DistributionPlan:
    # No capacity pre-check; each lead is reserved independently at commit.
    return DistributionPlan(
        mapping=[Assignment(lead.lead_id, strategy.vendor_id) for lead in leads],
        unassignable=[],
    )


def _plan_specific(strategy: SpecificList, leads: Sequence[Lead]) -> DistributionPlan:
    vendor_ids = list(dict.fromkeys(strategy.vendor_ids))
    return DistributionPlan(
        mapping=[
            Assignment(lead.lead_id, vendor_id) for lead in leads for vendor_id in vendor_ids
        ],
        unassignable=[],
    )


def _plan_round_robin(leads: Sequence[Lead], vendors: Sequence[Vendor]) -> DistributionPlan:
    """
    Lead i goes to vendors[i % len(vendors)].

    Slots ignore differing remaining capacity; an over-assigned vendor is
    rejected at commit time.
    """
    if not vendors:
        return DistributionPlan(mapping=[], unassignable=[lead.lead_id for lead in leads])

    return DistributionPlan(
        mapping=[
            Assignment(lead.lead_id, vendors[i % len(vendors)].vendor_id)
            for i, lead in enumerate(leads)
        ],
        unassignable=[],
    )


def _plan_by_service(leads: Sequence[Lead], vendors: Sequence[Vendor]) -> DistributionPlan:
    """
    Each lead goes to the vendor offering its service with the largest
    remaining capacity; ties go to the earlier vendor in the snapshot.

    Remaining capacity is decremented as leads are planned, so one call never
    plans more leads onto a vendor than it had room for.
    """
    remaining: Dict[str, int] = {v.vendor_id: v.remaining for v in vendors}
    mapping: List[Assignment] = []
    unassignable: List[str] = []

    for lead in leads:
        candidates = [
            v for v in vendors if v.offers(lead.service) and remaining[v.vendor_id] > 0
        ]
        if not candidates:
            unassignable.append(lead.lead_id)
            continue
        # max() keeps the first of equal keys, i.e. catalog order
        chosen = max(candidates, key=lambda v: remaining[v.vendor_id])
        remaining[chosen.vendor_id] -= 1
        mapping.append(Assignment(lead.lead_id, chosen.vendor_id))

    return DistributionPlan(mapping=mapping, unassignable=unassignable)


def plan(strategy: Strategy, leads: Sequence[Lead], vendors: Sequence[Vendor]) -> DistributionPlan:
    """
    Produce a DistributionPlan for leads in submission order.

    Example:
        plan(ByService(), leads, snapshot)
        # DistributionPlan(mapping=[Assignment("l-1", "v-2"), ...], unassignable=["l-9"])
    """
    if isinstance(strategy, SingleTarget):
        return _plan_single(strategy, leads)
    if isinstance(strategy, SpecificList):
        return _plan_specific(strategy, leads)
    if isinstance(strategy, AllAvailable):
        return _plan_round_robin(leads, vendors)
    if isinstance(strategy, ByService):
        return _plan_by_service(leads, vendors)
    raise TypeError(f"Unsupported strategy: {strategy!r}")


__all__ = ["plan"]
