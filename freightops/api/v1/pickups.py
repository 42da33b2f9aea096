"""Pickup API endpoints"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from freightops.api import deps
from freightops.core.context import RequestContext
from freightops.schemas.stock import PickupRecordResponse, PickupRequest, PickupResponse
from freightops.services.stock import PickupRecorderService

router = APIRouter()


@router.post("/demand-lines/{line_id}/pickups", response_model=PickupResponse, status_code=status.HTTP_201_CREATED)
def record_pickup(
    line_id: int,
    request: PickupRequest,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """
    Record a pickup of allocated LPNs.

    LPNs that cannot be picked are skipped and listed in warnings.
    """
    outcome = PickupRecorderService(db).record_pickup(
        ctx, line_id, request.lpn_numbers, buffer_qty=request.buffer_qty, notes=request.notes
    )
    return PickupResponse(
        record=PickupRecordResponse.model_validate(outcome.record),
        warnings=outcome.warnings,
        line_complete=outcome.line_complete,
        owner_status=outcome.owner_status,
    )
