"""
Domain: error taxonomy for lead distribution and quota bookkeeping.

Propagation rules:
- ValidationError aborts a whole call before any write.
- CapacityExceeded, NotFound and ConflictError are recorded per lead/vendor
  pair and the batch continues.
- NoEligibleVendor marks a lead as unassignable; it is not a hard error.
- NotificationFailure never reaches the caller of an assignment operation.
"""

from __future__ import annotations

from typing import Optional


class DistributionError(Exception):
    """Base class for every error raised by the distribution engine."""

    code: str = "distribution_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(DistributionError):
    """Missing or invalid required input; raised before any mutation."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


class CapacityExceeded(DistributionError):
    """A lead/vendor pair could not be committed because remaining <= 0."""

    code = "capacity_exceeded"

    def __init__(self, vendor_id: str, message: str = "vendor at capacity") -> None:
        self.vendor_id = vendor_id
        super().__init__(message)


class NoEligibleVendor(DistributionError):
    code = "no_eligible_vendor"

    def __init__(self, lead_id: str, message: str = "no matching vendor capacity") -> None:
        self.lead_id = lead_id
        super().__init__(message)


class ConflictError(DistributionError):
    """An optimistic update lost a race against a concurrent writer."""

    code = "conflict"


class NotFound(DistributionError):
    code = "not_found"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class NotificationFailure(DistributionError):
    code = "notification_failure"

    def __init__(self, message: str, token_invalid: bool = False) -> None:
        self.token_invalid = token_invalid
        super().__init__(message)


__all__ = [
    "CapacityExceeded",
    "ConflictError",
    "DistributionError",
    "NoEligibleVendor",
    "NotFound",
    "NotificationFailure",
    "ValidationError",
]
