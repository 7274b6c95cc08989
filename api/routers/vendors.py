"""
Vendor API Endpoints.

Endpoints for vendor quota adjustments and quota history.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_admin_operations, respond
from api.models import OperationResponse, QuotaAdjustmentRequest
from services.admin_operations import AdminOperations

router = APIRouter()


@router.post(
    "/vendors/{vendor_id}/quota",
    response_model=OperationResponse,
    summary="Adjust Vendor Quota",
    description="Add (positive delta) or remove (negative delta) lead quota."
)
def adjust_quota(
    vendor_id: str,
    request: QuotaAdjustmentRequest,
    ops: AdminOperations = Depends(get_admin_operations),
):
    """
    Adjust a vendor's quota and append one history entry.

    Removing more than the current quota, or pushing quota below the leads
    already delivered, is rejected with `validation_error`; the vendor is
    left unchanged.
    """
    return respond(
        ops.adjust_vendor_quota(
            vendor_id, request.delta, request.reason, performed_by=request.performed_by
        )
    )


@router.get(
    "/vendors/{vendor_id}/history",
    response_model=OperationResponse,
    summary="Vendor Quota History",
)
def vendor_history(vendor_id: str, ops: AdminOperations = Depends(get_admin_operations)):
    return respond(ops.vendor_history(vendor_id))


@router.get(
    "/vendors/{vendor_id}/audit",
    response_model=OperationResponse,
    summary="Verify Vendor History",
    description="Replay the vendor's history and report inconsistencies."
)
def vendor_audit(vendor_id: str, ops: AdminOperations = Depends(get_admin_operations)):
    return respond(ops.audit_vendor(vendor_id))
