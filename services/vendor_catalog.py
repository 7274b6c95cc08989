"""
Vendor catalog: read-only views over the vendor store.

- eligible_vendors(): vendors that can receive leads right now
  (active, remaining capacity > 0, optionally restricted by service and city)
- snapshot_for(): the vendor snapshot a distribution strategy plans against
- suggest_vendors(): ranked vendor suggestions for a set of leads

Ordering of eligible_vendors() is whatever the store returns; callers that
need determinism take one snapshot per distribution call and index into it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from domain.lead import Lead, LeadStatus
from domain.strategy import AllAvailable, ByService, SingleTarget, SpecificList, Strategy
from domain.vendor import Vendor, normalize_service
from repositories.base import VendorFilter, VendorStore

SUGGESTION_LIMIT = 20

_BASE_SCORE = 2.0
_CITY_MATCH_BONUS = 1.0
_SERVICE_MATCH_BONUS = 1.0


@dataclass(frozen=True, slots=True)
class CatalogMode:
    """
    Eligibility mode.

    any_active: every active vendor with remaining capacity.
    by_service: additionally, the vendor must offer `service` (or, when
    `service` is None, the service of at least one lead in the batch).
    """
    by_service: bool = False
    service: Optional[str] = None
    city: Optional[str] = None


ANY_ACTIVE = CatalogMode()


def by_service(service: Optional[str] = None, city: Optional[str] = None) -> CatalogMode:
    return CatalogMode(by_service=True, service=service, city=city)


def eligible_vendors(
    store: VendorStore, leads: Sequence[Lead], mode: CatalogMode = ANY_ACTIVE
) -> List[Vendor]:
    vendors = store.find_eligible(VendorFilter(city=mode.city))
    if not mode.by_service:
        return vendors

    if mode.service:
        wanted = {normalize_service(mode.service)}
    else:
        wanted = {normalize_service(lead.service) for lead in leads}
    return [v for v in vendors if any(v.offers(s) for s in wanted)]


def snapshot_for(strategy: Strategy, store: VendorStore, leads: Sequence[Lead]) -> List[Vendor]:
    """
    Take the vendor snapshot a strategy plans against.

    Manual strategies (single / specific) are not pre-filtered by capacity or
    status; the snapshot follows the requested ID order. Capacity is enforced
    when the plan is committed.
    """

    if isinstance(strategy, (SingleTarget, SpecificList)):
        ids = [strategy.vendor_id] if isinstance(strategy, SingleTarget) else list(strategy.vendor_ids)
        found = store.find_eligible(
            VendorFilter(active_only=False, with_capacity=False, vendor_ids=ids)
        )
        by_id = {v.vendor_id: v for v in found}
        return [by_id[vendor_id] for vendor_id in dict.fromkeys(ids) if vendor_id in by_id]
    if isinstance(strategy, AllAvailable):
        return eligible_vendors(store, leads, CatalogMode(city=strategy.city))
    if isinstance(strategy, ByService):
        return eligible_vendors(store, leads, by_service(city=strategy.city))
    raise TypeError(f"Unsupported strategy: {strategy!r}")


@dataclass(frozen=True, slots=True)
class VendorSuggestion:
    vendor: Vendor
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor.vendor_id,
            "business_name": self.vendor.business_name,
            "city": self.vendor.city,
            "services": sorted(self.vendor.services),
            "rating": self.vendor.rating,
            "quota": self.vendor.quota,
            "used": self.vendor.used,
            "remaining": self.vendor.remaining,
            "score": self.score,
        }


@dataclass(frozen=True, slots=True)
class SuggestionReport:
    suggestions: List[VendorSuggestion]
    total_leads: int
    services_required: List[str] = field(default_factory=list)
    cities_required: List[str] = field(default_factory=list)
    assignable_leads: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestions": [s.to_dict() for s in self.suggestions],
            "stats": {
                "total_leads": self.total_leads,
                "services_required": self.services_required,
                "cities_required": self.cities_required,
                "assignable_leads": self.assignable_leads,
                "suggested_vendors": len(self.suggestions),
            },
        }


def suggest_vendors(
    store: VendorStore,
    leads: Sequence[Lead],
    *,
    city: Optional[str] = None,
    limit: int = SUGGESTION_LIMIT,
) -> SuggestionReport:
    """
    Rank vendors for a batch of leads.

    Score = 2.0 base, +1.0 when the vendor's city matches the requested city
    (or any lead's city), +1.0 when the vendor offers any lead's service.
    Sorted by score (desc), then business name.
    """

    services = sorted({lead.service for lead in leads if lead.service})
    cities = sorted({lead.city for lead in leads if lead.city})
    target_cities = [city] if city else cities

    scored: List[VendorSuggestion] = []
    for vendor in eligible_vendors(store, leads, ANY_ACTIVE):
        score = _BASE_SCORE
        if any(vendor.in_city(c) for c in target_cities):
            score += _CITY_MATCH_BONUS
        if any(vendor.offers(s) for s in services):
            score += _SERVICE_MATCH_BONUS
        scored.append(VendorSuggestion(vendor=vendor, score=score))

    scored.sort(key=lambda s: (-s.score, s.vendor.business_name.casefold()))

    return SuggestionReport(
        suggestions=scored[: max(limit, 0)],
        total_leads=len(leads),
        services_required=services,
        cities_required=cities,
        assignable_leads=sum(
            1 for lead in leads if lead.status in (LeadStatus.PENDING, LeadStatus.AVAILABLE)
        ),
    )


__all__ = [
    "ANY_ACTIVE",
    "CatalogMode",
    "SUGGESTION_LIMIT",
    "SuggestionReport",
    "VendorSuggestion",
    "by_service",
    "eligible_vendors",
    "snapshot_for",
    "suggest_vendors",
]
