"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Assignment Models
# ============================================================================

class StrategyModel(BaseModel):
    """Distribution strategy selected by the admin."""
    type: Literal["single", "specific", "all_available", "by_service"]
    vendor_id: Optional[str] = None
    vendor_ids: Optional[List[str]] = None
    city: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "type": "by_service",
                "city": "Pune"
            }
        }


class AssignLeadsRequest(BaseModel):
    """Request to distribute a batch of leads."""
    lead_ids: List[str] = Field(
        ...,
        min_length=1,
        description="Lead IDs in submission order"
    )
    strategy: StrategyModel
    performed_by: str = Field(..., min_length=1, description="Admin performing the assignment")
    reason: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "lead_ids": ["lead-001", "lead-002", "lead-003"],
                "strategy": {"type": "all_available"},
                "performed_by": "admin@example.com",
                "reason": "Morning distribution"
            }
        }


class SuggestVendorsRequest(BaseModel):
    """Request vendor suggestions for a set of leads."""
    lead_ids: List[str] = Field(..., min_length=1)
    city: Optional[str] = None
    limit: int = Field(20, ge=1, le=100)


# ============================================================================
# Lead Models
# ============================================================================

class BulkActionRequest(BaseModel):
    """Apply one lifecycle action to a batch of leads."""
    lead_ids: List[str] = Field(..., min_length=1)
    action: Literal["update_status", "add_note", "set_priority", "export", "delete", "unassign"]
    payload: Dict[str, Any] = Field(default_factory=dict)
    performed_by: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "lead_ids": ["lead-001", "lead-002"],
                "action": "update_status",
                "payload": {"status": "contacted", "reason": "Called customer"},
                "performed_by": "admin@example.com"
            }
        }


class ExportRequest(BaseModel):
    """Download leads as a file."""
    lead_ids: List[str] = Field(..., min_length=1)
    format: Literal["csv", "json"] = "csv"
    performed_by: str = Field(..., min_length=1)


class TakeLeadRequest(BaseModel):
    """A vendor claims a lead assigned to it."""
    vendor_id: str = Field(..., min_length=1)


# ============================================================================
# Vendor Models
# ============================================================================

class QuotaAdjustmentRequest(BaseModel):
    """Add (positive delta) or remove (negative delta) vendor quota."""
    delta: int = Field(..., description="Units to add (> 0) or remove (< 0)")
    reason: str = Field(..., min_length=1)
    performed_by: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "delta": 20,
                "reason": "Plan upgrade",
                "performed_by": "admin@example.com"
            }
        }


# ============================================================================
# Envelope Models
# ============================================================================

class ErrorBody(BaseModel):
    """Structured error returned with success=false."""
    code: str
    message: str
    field: Optional[str] = None


class OperationResponse(BaseModel):
    """Every endpoint answers with {success, data} or {success, error}."""
    success: bool
    data: Optional[Any] = None
    error: Optional[ErrorBody] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": False,
                "error": {
                    "code": "validation_error",
                    "message": "cannot remove more than current quota",
                    "field": "count"
                }
            }
        }
