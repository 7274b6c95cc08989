"""
Domain: distribution strategies and plans.

A Strategy is a tagged variant selected by an admin:
- SingleTarget(vendor_id):       every lead goes to one vendor.
- SpecificList(vendor_ids):      every lead goes to every selected vendor.
- AllAvailable(city):            round-robin over vendors with remaining capacity.
- ByService(city):               each lead goes to the matching vendor with the
                                 largest remaining capacity.

Planning is pure; a DistributionPlan is only a proposal. Quota is enforced when
the plan is committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple, Union

from .errors import ValidationError


@dataclass(frozen=True, slots=True)
class SingleTarget:
    vendor_id: str
    kind: str = field(default="single", init=False)


@dataclass(frozen=True, slots=True)
class SpecificList:
    vendor_ids: Tuple[str, ...]
    kind: str = field(default="specific", init=False)

    def __post_init__(self) -> None:
        if not self.vendor_ids:
            raise ValidationError("vendorIds array is required for manual assignment", field="vendor_ids")


@dataclass(frozen=True, slots=True)
class AllAvailable:
    city: Optional[str] = None
    kind: str = field(default="all_available", init=False)


@dataclass(frozen=True, slots=True)
class ByService:
    city: Optional[str] = None
    kind: str = field(default="by_service", init=False)


Strategy = Union[SingleTarget, SpecificList, AllAvailable, ByService]


def strategy_from_dict(data: Mapping[str, Any]) -> Strategy:
    """
    Build a Strategy from a request payload.

    Example:
        strategy_from_dict({"type": "single", "vendor_id": "v-1"})
        strategy_from_dict({"type": "by_service", "city": "Pune"})
    """
    kind = data.get("type")
    if kind == "single":
        vendor_id = data.get("vendor_id")
        if not vendor_id:
            raise ValidationError("vendor_id is required for single-vendor assignment", field="vendor_id")
        return SingleTarget(vendor_id=str(vendor_id))
    if kind == "specific":
        vendor_ids = data.get("vendor_ids") or []
        if not isinstance(vendor_ids, (list, tuple)):
            raise ValidationError("vendor_ids must be a list", field="vendor_ids")
        return SpecificList(vendor_ids=tuple(str(v) for v in vendor_ids))
    if kind == "all_available":
        return AllAvailable(city=data.get("city") or None)
    if kind == "by_service":
        return ByService(city=data.get("city") or None)
    raise ValidationError(f"Unknown distribution strategy: {kind!r}", field="type")


@dataclass(frozen=True, slots=True)
class Assignment:
    """One planned lead -> vendor pair."""

    lead_id: str
    vendor_id: str


@dataclass(frozen=True, slots=True)
class DistributionPlan:
    """
    Output of planning.

    mapping preserves submission order (lead order, then vendor order for
    multi-vendor strategies). unassignable lists leads for which no eligible
    vendor existed.
    """

    mapping: List[Assignment]
    unassignable: List[str]
