"""Booking progression API endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from freightops.api import deps
from freightops.core.context import RequestContext
from freightops.schemas.booking import (
    BookingKindEnum, BookingStatusResponse, ContainerResponse,
    DispatchRequest, NextStatusesResponse, StatusTransitionRequest,
)
from freightops.services.bookings import (
    BookingRef, BookingStatusService, ContainerDispatchService, get_next_valid_statuses,
)

router = APIRouter()


@router.get("/bookings/{kind}/{booking_id}/next-statuses", response_model=NextStatusesResponse)
def next_statuses(
    kind: BookingKindEnum,
    booking_id: int,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """Statuses the booking can move to now."""
    snapshot = BookingStatusService(db).snapshot(ctx, BookingRef(kind.value, booking_id))
    return NextStatusesResponse(
        id=booking_id,
        kind=kind,
        status=snapshot.status,
        next_statuses=get_next_valid_statuses(snapshot),
    )


@router.post("/bookings/{kind}/{booking_id}/status", response_model=BookingStatusResponse)
def transition_booking(
    kind: BookingKindEnum,
    booking_id: int,
    request: StatusTransitionRequest,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """
    Move a booking to a new status.

    A blocked transition returns 409 with the unmet precondition.
    """
    booking = BookingStatusService(db).transition(
        ctx, BookingRef(kind.value, booking_id), request.status.value
    )
    return BookingStatusResponse(id=booking.id, kind=booking.kind, status=booking.status)


@router.post("/containers/{container_id}/dispatch", response_model=ContainerResponse)
def dispatch_container(
    container_id: int,
    request: DispatchRequest,
    db: Session = Depends(deps.get_db),
    ctx: RequestContext = Depends(deps.get_request_context),
):
    """Dispatch a picked-up export container."""
    return ContainerDispatchService(db).dispatch(ctx, container_id, request.driver_id, request.vehicle_id)
