"""
Assignment API Endpoints.

Endpoints for distributing leads to vendors and ranking vendor suggestions.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_admin_operations, respond
from api.models import AssignLeadsRequest, OperationResponse, SuggestVendorsRequest
from services.admin_operations import AdminOperations

router = APIRouter()


@router.post(
    "/assignments",
    response_model=OperationResponse,
    summary="Assign Leads",
    description="Distribute a batch of leads to vendors with the selected strategy."
)
def assign_leads(
    request: AssignLeadsRequest,
    ops: AdminOperations = Depends(get_admin_operations),
):
    """
    Plan and commit one distribution call.

    **Strategies:**
    - `single`: every lead goes to `vendor_id`
    - `specific`: every lead goes to every vendor in `vendor_ids`
    - `all_available`: round-robin over vendors with remaining capacity
    - `by_service`: each lead goes to the matching vendor with the most remaining capacity

    Quota is enforced per lead/vendor pair when the plan is committed; pairs
    that fail are listed in `failures` and the rest still commit.

    **Success response:**
    ```json
    {
      "success": true,
      "data": {
        "assigned_count": 10,
        "unassigned_count": 2,
        "per_vendor_counts": {"v-1": 7, "v-2": 3},
        "failures": [{"lead_id": "l-11", "vendor_id": null, "reason": "no matching vendor capacity", "code": "no_eligible_vendor"}],
        "summary": "Sharma Plumbing: 7 leads, Pune Electricals: 3 leads; 2 leads unassigned (no matching vendor capacity)"
      }
    }
    ```
    """
    return respond(
        ops.assign_leads(
            request.lead_ids,
            request.strategy.model_dump(),
            performed_by=request.performed_by,
            reason=request.reason,
        )
    )


@router.post(
    "/assignments/suggestions",
    response_model=OperationResponse,
    summary="Suggest Vendors",
    description="Rank vendors with remaining capacity for a set of leads."
)
def suggest_vendors(
    request: SuggestVendorsRequest,
    ops: AdminOperations = Depends(get_admin_operations),
):
    return respond(ops.suggest_vendors(request.lead_ids, city=request.city, limit=request.limit))
