"""
Leads API Endpoints.

Endpoints for listing leads, bulk lifecycle actions, export, and vendors
taking assigned leads.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import get_admin_operations, respond
from api.models import BulkActionRequest, ExportRequest, OperationResponse, TakeLeadRequest
from services.admin_operations import AdminOperations, MAX_PAGE_SIZE

router = APIRouter()


@router.get(
    "/leads",
    response_model=OperationResponse,
    summary="List Leads",
    description="Paginated lead listing with filters and summary counts."
)
def list_leads(
    search: Optional[str] = Query(None, description="Matches name, phone, email, service"),
    status: Optional[str] = Query(None),
    service: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    assigned: Optional[bool] = Query(None, description="true: assigned only, false: unassigned only"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1),
    limit: int = Query(10, description=f"Page size, clamped to 1..{MAX_PAGE_SIZE}"),
    ops: AdminOperations = Depends(get_admin_operations),
):
    return respond(
        ops.list_leads(
            search=search,
            status=status,
            service=service,
            city=city,
            assigned=assigned,
            sort_by=sort_by,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )
    )


@router.post(
    "/leads/bulk",
    response_model=OperationResponse,
    summary="Bulk Lead Action",
    description="Apply update_status, add_note, set_priority, export, delete or unassign to a batch."
)
def bulk_action(request: BulkActionRequest, ops: AdminOperations = Depends(get_admin_operations)):
    """
    Apply one action to every lead in `lead_ids`.

    The action's required payload field is validated before any lead is
    touched. Per-lead outcomes are reported in `succeeded` / `failed`.
    """
    return respond(
        ops.bulk_lead_action(
            request.lead_ids, request.action, request.payload, performed_by=request.performed_by
        )
    )


@router.post(
    "/leads/export",
    summary="Download Leads",
    description="Download selected leads as CSV or JSON.",
    response_class=Response
)
def export_leads(request: ExportRequest, ops: AdminOperations = Depends(get_admin_operations)):
    result = ops.bulk_lead_action(
        request.lead_ids, "export", {"format": request.format}, performed_by=request.performed_by
    )
    if not result.success:
        return respond(result)

    export = result.data["export"]
    return Response(
        content=export["content"],
        media_type=export["media_type"],
        headers={"Content-Disposition": f'attachment; filename="{export["filename"]}"'},
    )


@router.post(
    "/leads/{lead_id}/take",
    response_model=OperationResponse,
    summary="Take Lead",
    description="A vendor claims a lead that was assigned to it."
)
def take_lead(
    lead_id: str,
    request: TakeLeadRequest,
    ops: AdminOperations = Depends(get_admin_operations),
):
    return respond(ops.take_lead(request.vendor_id, lead_id))
