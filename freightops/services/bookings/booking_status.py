"""
Booking Status State Machine
draft -> confirmed -> in_progress -> completed, with cancelled reachable
from any state except completed and cancelled

Guards are pure functions over snapshots of a booking and its containers
and stock allocations. A failed guard yields the reason the transition is
blocked so callers can show it as-is.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from freightops.core.audit import log_user_action
from freightops.core.context import RequestContext
from freightops.core.exceptions import TransitionNotAllowed, ValidationError
from freightops.models.booking import BookingKind, BookingStatus, ContainerDetail, StockAllocation
from freightops.services.bookings.allocation_stages import STAGES
from freightops.services.bookings.relationship_resolver import BookingRef, RelationshipResolver

logger = logging.getLogger(__name__)

EMPTY_ROUTING_FIELDS = ("shipping_line_id", "pickup_location_id", "dropoff_location_id")
FULL_ROUTING_FIELDS = ("pickup_location_id", "dropoff_location_id")


@dataclass(frozen=True)
class ContainerSnapshot:
    id: Optional[int]
    container_number: Optional[str]

    @property
    def is_saved(self) -> bool:
        return self.id is not None


@dataclass(frozen=True)
class AllocationSnapshot:
    id: Optional[int]
    container_detail_id: Optional[int]
    stage: Optional[str]


@dataclass(frozen=True)
class BookingSnapshot:
    """Read-only view of a booking aggregate used by the guards"""
    kind: str
    status: str
    customer_reference: Optional[str] = None
    booking_reference: Optional[str] = None
    charge_to_id: Optional[int] = None
    party_id: Optional[int] = None  # consignee for imports, consignor for exports
    vessel_id: Optional[int] = None
    from_id: Optional[int] = None
    to_id: Optional[int] = None
    container_size_ids: Tuple[Any, ...] = ()
    container_quantities: Dict[str, Any] = field(default_factory=dict)
    empty_routing: Optional[Dict[str, Any]] = None
    full_routing: Optional[Dict[str, Any]] = None
    containers: Tuple[ContainerSnapshot, ...] = ()
    allocations: Tuple[AllocationSnapshot, ...] = ()

    @property
    def declared_containers(self) -> int:
        return sum(_as_count(qty) for qty in (self.container_quantities or {}).values())

    @classmethod
    def from_models(
        cls,
        booking,
        containers: Sequence[ContainerDetail],
        allocations: Sequence[StockAllocation],
    ) -> "BookingSnapshot":
        party_attr = "consignee_id" if booking.kind == BookingKind.IMPORT else "consignor_id"
        return cls(
            kind=booking.kind,
            status=booking.status,
            customer_reference=booking.customer_reference,
            booking_reference=booking.booking_reference,
            charge_to_id=booking.charge_to_id,
            party_id=getattr(booking, party_attr),
            vessel_id=booking.vessel_id,
            from_id=booking.from_id,
            to_id=booking.to_id,
            container_size_ids=tuple(booking.container_size_ids or ()),
            container_quantities=dict(booking.container_quantities or {}),
            empty_routing=booking.empty_routing,
            full_routing=booking.full_routing,
            containers=tuple(
                ContainerSnapshot(id=c.id, container_number=c.container_number) for c in containers
            ),
            allocations=tuple(
                AllocationSnapshot(id=a.id, container_detail_id=a.container_detail_id, stage=a.stage)
                for a in allocations
            ),
        )


@dataclass(frozen=True)
class TransitionCheck:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self):
        return self.allowed


def _as_count(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def _missing_fields(leg: Optional[Dict[str, Any]], fields: Sequence[str]) -> bool:
    return not leg or any(not leg.get(name) for name in fields)


def _containers_saved(snapshot: BookingSnapshot) -> bool:
    """Every declared container exists and has been persisted"""
    saved = [container for container in snapshot.containers if container.is_saved]
    return len(saved) == len(snapshot.containers) and len(saved) >= snapshot.declared_containers


def validate_for_confirmation(snapshot: BookingSnapshot) -> Optional[str]:
    if not (snapshot.customer_reference and snapshot.booking_reference and snapshot.charge_to_id):
        return "Step 1 (Basic Info) is incomplete"
    if not snapshot.party_id:
        if snapshot.kind == BookingKind.IMPORT:
            return "Consignee is required for import bookings"
        return "Consignor is required for export bookings"
    if not snapshot.vessel_id:
        return "Step 2 (Vessel Info) is incomplete"
    if not (snapshot.from_id and snapshot.to_id and snapshot.container_size_ids):
        return "Step 3 (Locations) is incomplete"
    if snapshot.declared_containers < 1:
        return "Container quantities are required"
    if not (snapshot.empty_routing and snapshot.full_routing):
        return "Step 4 (Routing) is incomplete"
    if _missing_fields(snapshot.empty_routing, EMPTY_ROUTING_FIELDS):
        return "Empty routing is incomplete"
    if _missing_fields(snapshot.full_routing, FULL_ROUTING_FIELDS):
        return "Full routing is incomplete"
    if not snapshot.containers:
        return "Step 5 (Container Details) is incomplete"
    if any(not c.is_saved or not c.container_number for c in snapshot.containers):
        return "All containers must have container numbers and be saved"
    missing = snapshot.declared_containers - len(snapshot.containers)
    if missing > 0:
        return f"Container details missing for {missing} declared container(s)"
    return None


def validate_for_in_progress(snapshot: BookingSnapshot) -> Optional[str]:
    if not snapshot.containers:
        return "Container details are required"
    if not _containers_saved(snapshot):
        return "All containers must be saved before starting"
    return None


def validate_for_completed(snapshot: BookingSnapshot) -> Optional[str]:
    if not snapshot.containers:
        return "Container details are required"
    if not snapshot.allocations:
        return "Stock allocations are required"

    allocated_containers = {a.container_detail_id for a in snapshot.allocations}
    orphans = [c for c in snapshot.containers if c.id not in allocated_containers]
    if orphans:
        return f"Stock allocations missing for {len(orphans)} container(s)"

    stages = STAGES.get(snapshot.kind, ())
    if any(a.stage not in stages for a in snapshot.allocations):
        return "Some stock allocations are incomplete"
    return None


GUARDS = {
    BookingStatus.DRAFT: (BookingStatus.CONFIRMED, validate_for_confirmation),
    BookingStatus.CONFIRMED: (BookingStatus.IN_PROGRESS, validate_for_in_progress),
    BookingStatus.IN_PROGRESS: (BookingStatus.COMPLETED, validate_for_completed),
}


def check_transition(snapshot: BookingSnapshot, new_status: str) -> TransitionCheck:
    """Whether a booking may move to new_status, and why not"""
    current = snapshot.status
    if new_status not in BookingStatus.ALL:
        return TransitionCheck(False, f"Unknown status: {new_status}")
    if current == BookingStatus.CANCELLED:
        return TransitionCheck(False, "Cannot transition from cancelled status")
    if current == BookingStatus.COMPLETED:
        return TransitionCheck(False, "Cannot transition from completed status")
    if current == new_status:
        return TransitionCheck(False, f"Status is already {current}")
    if new_status == BookingStatus.CANCELLED:
        return TransitionCheck(True)

    if current not in GUARDS:
        return TransitionCheck(False, f"Unknown current status: {current}")
    target, guard = GUARDS[current]
    if new_status != target:
        return TransitionCheck(False, f"Can only transition to {target} from {current}")
    reason = guard(snapshot)
    return TransitionCheck(reason is None, reason)


def get_next_valid_statuses(snapshot: BookingSnapshot) -> List[str]:
    """Statuses the booking can move to right now"""
    return [status for status in BookingStatus.ALL if check_transition(snapshot, status)]


class BookingStatusService:
    """Loads booking aggregates and applies guarded status transitions"""

    def __init__(self, db: Session, resolver: Optional[RelationshipResolver] = None):
        self.db = db
        self.resolver = resolver or RelationshipResolver(db)

    def snapshot(self, ctx: RequestContext, ref: Any, kind: Optional[str] = None) -> BookingSnapshot:
        booking = self.resolver.resolve_owner(ctx, ref, kind)
        return self._snapshot_for(ctx, booking)

    def next_statuses(self, ctx: RequestContext, ref: Any, kind: Optional[str] = None) -> List[str]:
        return get_next_valid_statuses(self.snapshot(ctx, ref, kind))

    def transition(self, ctx: RequestContext, ref: Any, new_status: str, kind: Optional[str] = None):
        """
        Move a booking to new_status

        Raises TransitionNotAllowed with the unmet precondition when a guard fails.
        """
        if not new_status:
            raise ValidationError("Status is required", {"field": "status"})
        try:
            booking = self.resolver.resolve_owner(ctx, ref, kind)
            snapshot = self._snapshot_for(ctx, booking)
            check = check_transition(snapshot, new_status)
            if not check.allowed:
                raise TransitionNotAllowed(check.reason, booking.status, new_status)

            old_status = booking.status
            booking.status = new_status
            log_user_action(
                db=self.db,
                ctx=ctx,
                action="BOOKING_TRANSITION",
                table=booking.__tablename__,
                key=str(booking.id),
                old_values={'status': old_status},
                new_values={'status': new_status},
                module="BOOKING"
            )
            self.db.commit()
        except TransitionNotAllowed as e:
            self.db.rollback()
            logger.warning(
                f"Booking {ref} transition to {new_status} blocked for tenant={ctx.tenant_id}: {e.reason}"
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Booking {booking.kind}:{booking.id} {old_status} -> {new_status} "
            f"tenant={ctx.tenant_id} user={ctx.actor_id}"
        )
        return booking

    def _snapshot_for(self, ctx: RequestContext, booking) -> BookingSnapshot:
        ref = BookingRef(booking.kind, booking.id)
        return BookingSnapshot.from_models(
            booking,
            self.resolver.containers_for(ctx, ref),
            self.resolver.allocations_for(ctx, ref),
        )
