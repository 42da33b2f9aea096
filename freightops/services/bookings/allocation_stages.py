"""
Stock allocation stage vocabulary
Import and export bookings use disjoint stage sets that must never mix
"""
import logging
from typing import Any, Optional, Tuple

from sqlalchemy.orm import Session

from freightops.core.audit import log_user_action
from freightops.core.context import RequestContext
from freightops.core.exceptions import NotFoundError, ValidationError
from freightops.models.booking import BookingKind, ContainerDetail, StockAllocation
from freightops.services.bookings.relationship_resolver import RelationshipResolver

logger = logging.getLogger(__name__)


class AllocationStage:
    """Stock allocation stages"""
    # Import flow
    EXPECTED = "expected"
    RECEIVED = "received"
    PUT_AWAY = "put_away"
    # Export flow
    ALLOCATED = "allocated"
    PICKED = "picked"
    DISPATCHED = "dispatched"


STAGES = {
    BookingKind.IMPORT: (AllocationStage.EXPECTED, AllocationStage.RECEIVED, AllocationStage.PUT_AWAY),
    BookingKind.EXPORT: (AllocationStage.ALLOCATED, AllocationStage.PICKED, AllocationStage.DISPATCHED),
}


def stages_for(kind: str) -> Tuple[str, ...]:
    """Stage set for a booking direction"""
    try:
        return STAGES[kind]
    except KeyError:
        raise ValidationError(f"Unknown booking kind: {kind}", {"field": "kind"}) from None


def validate_stage(kind: str, stage: Optional[str]) -> str:
    if stage not in stages_for(kind):
        raise ValidationError(
            f"Stage '{stage}' is not valid for {kind} bookings; expected one of {', '.join(stages_for(kind))}",
            {"field": "stage"},
        )
    return stage


def initial_stage(kind: str) -> str:
    return stages_for(kind)[0]


class AllocationStageService:
    """Creates container stock allocations and moves them between stages"""

    def __init__(self, db: Session):
        self.db = db

    def create_allocation(
        self,
        ctx: RequestContext,
        owner: Any,
        container_id: int,
        stage: Optional[str] = None,
    ) -> StockAllocation:
        """Bind a container of a booking to a new stock allocation"""
        try:
            booking = RelationshipResolver(self.db).resolve_owner(ctx, owner)
            container = self.db.query(ContainerDetail).filter(
                ContainerDetail.id == container_id,
                ContainerDetail.tenant_id == ctx.tenant_id,
            ).first()
            if not container:
                raise NotFoundError(f"Container {container_id} not found")
            if (container.booking_kind, container.booking_id) != (booking.kind, booking.id):
                raise ValidationError(
                    f"Container {container_id} does not belong to {booking.kind} booking {booking.id}"
                )

            allocation = StockAllocation(
                tenant_id=ctx.tenant_id,
                booking_kind=booking.kind,
                booking_id=booking.id,
                container_detail_id=container.id,
                stage=validate_stage(booking.kind, stage or initial_stage(booking.kind)),
            )
            self.db.add(allocation)
            self.db.flush()
            log_user_action(
                db=self.db,
                ctx=ctx,
                action="CREATE_ALLOCATION",
                table="stock_allocations",
                key=str(allocation.id),
                new_values={'container_detail_id': container.id, 'stage': allocation.stage},
                module="BOOKING"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Created stock allocation {allocation.id} for container {container_id} tenant={ctx.tenant_id}")
        return allocation

    def set_stage(self, ctx: RequestContext, allocation_id: int, stage: str) -> StockAllocation:
        """Move a stock allocation to another stage of its own direction"""
        try:
            allocation = self.db.query(StockAllocation).filter(
                StockAllocation.id == allocation_id,
                StockAllocation.tenant_id == ctx.tenant_id,
            ).first()
            if not allocation:
                raise NotFoundError(f"Stock allocation {allocation_id} not found")

            old_stage = allocation.stage
            allocation.stage = validate_stage(allocation.booking_kind, stage)
            log_user_action(
                db=self.db,
                ctx=ctx,
                action="SET_ALLOCATION_STAGE",
                table="stock_allocations",
                key=str(allocation.id),
                old_values={'stage': old_stage},
                new_values={'stage': allocation.stage},
                module="BOOKING"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Stock allocation {allocation_id} stage {old_stage} -> {stage}")
        return allocation
