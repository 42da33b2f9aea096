"""Stock allocation API endpoints"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from freightops.api import deps
from freightops.core.context import RequestContext
from freightops.schemas.stock import AllocationModeEnum, AllocationRequest, AllocationResponse, JobResponse, ReleaseResponse
from freightops.services.stock import StockAllocationService

router = APIRouter()


@router.post("/demand-lines/{line_id}/allocate", response_model=AllocationResponse)
def allocate_line(
    line_id: int,
    request: AllocationRequest,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """
    Reserve stock for a demand line.

    Manual mode reserves the listed LPNs, automatic mode reserves the
    oldest available LPNs until the quantity is covered.
    """
    payload = request.lpn_numbers if request.mode == AllocationModeEnum.MANUAL else request.quantity
    result = StockAllocationService(db).allocate(ctx, line_id, request.mode.value, payload)
    return AllocationResponse.model_validate(asdict(result))


@router.post("/demand-lines/{line_id}/release", response_model=ReleaseResponse)
def release_line(
    line_id: int,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """Release every LPN held by a demand line."""
    released = StockAllocationService(db).release_line(ctx, line_id)
    return ReleaseResponse(line_id=line_id, released_lpns=released)


@router.delete("/demand-lines/{line_id}", response_model=ReleaseResponse, status_code=status.HTTP_200_OK)
def delete_line(
    line_id: int,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """Delete a demand line, releasing its LPNs."""
    released = StockAllocationService(db).delete_line(ctx, line_id)
    return ReleaseResponse(line_id=line_id, released_lpns=released)


@router.post("/outbound-jobs/{job_id}/cancel", response_model=JobResponse)
def cancel_job(
    job_id: int,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """Cancel an outbound job and release its stock."""
    return StockAllocationService(db).cancel_job(ctx, job_id)
