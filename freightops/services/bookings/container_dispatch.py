"""
Container Dispatch Service
Hands a picked-up export container over to a driver and vehicle
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from freightops.core.audit import log_user_action
from freightops.core.context import RequestContext
from freightops.core.exceptions import NotFoundError, StateConflict, ValidationError
from freightops.models.booking import BookingKind, ContainerDetail, ContainerStatus
from freightops.services.bookings.allocation_stages import AllocationStage
from freightops.services.bookings.relationship_resolver import RelationshipResolver

logger = logging.getLogger(__name__)


class ContainerDispatchService:
    """Dispatch of export containers"""

    def __init__(self, db: Session, resolver: RelationshipResolver = None):
        self.db = db
        self.resolver = resolver or RelationshipResolver(db)

    def dispatch(self, ctx: RequestContext, container_id: int, driver_id: int, vehicle_id: int) -> ContainerDetail:
        """Mark a picked-up container dispatched and record its driver and vehicle"""
        try:
            if not driver_id or not vehicle_id:
                raise ValidationError("Driver and vehicle are required for dispatch", {"field": "driver_id"})

            container = self.db.query(ContainerDetail).filter(
                ContainerDetail.id == container_id,
                ContainerDetail.tenant_id == ctx.tenant_id,
            ).first()
            if not container:
                raise NotFoundError(f"Container {container_id} not found")

            booking = self.resolver.owner_of(ctx, container)
            if booking.kind != BookingKind.EXPORT:
                raise ValidationError("Only export containers can be dispatched")
            if container.status != ContainerStatus.PICKED_UP:
                raise StateConflict(
                    f"Container must be picked up before dispatch (status: {container.status})"
                )

            dispatched_at = datetime.now(timezone.utc).isoformat()
            allocation = dict(booking.driver_allocation or {})
            containers = dict(allocation.get("containers") or {})
            containers[str(container.id)] = {
                'driver_id': driver_id,
                'vehicle_id': vehicle_id,
                'dispatched_at': dispatched_at,
            }
            allocation["containers"] = containers
            # Reassign so the JSON column is flagged dirty
            booking.driver_allocation = allocation

            container.status = ContainerStatus.DISPATCHED
            for stock_allocation in container.stock_allocations:
                stock_allocation.stage = AllocationStage.DISPATCHED

            log_user_action(
                db=self.db,
                ctx=ctx,
                action="DISPATCH_CONTAINER",
                table="container_details",
                key=str(container.id),
                old_values={'status': ContainerStatus.PICKED_UP},
                new_values={'status': container.status, 'driver_id': driver_id, 'vehicle_id': vehicle_id},
                module="BOOKING"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Dispatched container {container_id} with driver {driver_id} vehicle {vehicle_id} "
            f"tenant={ctx.tenant_id}"
        )
        return container
