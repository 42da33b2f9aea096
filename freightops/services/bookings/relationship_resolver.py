"""
Polymorphic Relationship Resolver
Normalizes references to an owning import or export booking

Containers and stock allocations point at one of two booking tables. A
reference can arrive as a bare id, a model instance, a dict from a request
payload or an explicit (kind, id) pair; everything is turned into a
BookingRef before any lookup happens.
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from sqlalchemy.orm import Session

from freightops.core.context import RequestContext
from freightops.core.exceptions import NotFoundError, TenantMismatch, ValidationError
from freightops.models.booking import (
    BOOKING_MODELS, BookingKind, ContainerDetail, ExportContainerBooking,
    ImportContainerBooking, StockAllocation,
)

logger = logging.getLogger(__name__)

Booking = Union[ImportContainerBooking, ExportContainerBooking]

# Collection slugs used by API payloads
KIND_ALIASES = {
    BookingKind.IMPORT: BookingKind.IMPORT,
    BookingKind.EXPORT: BookingKind.EXPORT,
    "import-container-bookings": BookingKind.IMPORT,
    "export-container-bookings": BookingKind.EXPORT,
}


@dataclass(frozen=True)
class BookingRef:
    """Reference to a booking; kind is None when the caller did not tag it"""
    kind: Optional[str]
    id: int

    @property
    def is_tagged(self) -> bool:
        return self.kind is not None

    def __str__(self):
        return f"{self.kind or '?'}:{self.id}"


def normalize_kind(kind: Any) -> Optional[str]:
    if kind is None or kind == "":
        return None
    normalized = KIND_ALIASES.get(str(kind).lower())
    if normalized is None:
        raise ValidationError(f"Unknown booking kind: {kind}", {"field": "kind"})
    return normalized


def _normalize_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"Invalid booking id: {value!r}", {"field": "id"})
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    raise ValidationError(f"Invalid booking id: {value!r}", {"field": "id"})


def normalize_ref(raw: Any, kind: Optional[str] = None) -> BookingRef:
    """Turn any supported owner reference shape into a BookingRef"""
    if isinstance(raw, BookingRef):
        ref = raw
    elif isinstance(raw, (tuple, list)) and len(raw) == 2:
        ref = BookingRef(normalize_kind(raw[0]), _normalize_id(raw[1]))
    elif isinstance(raw, dict):
        tag = raw.get("relationTo", raw.get("relation_to", raw.get("kind")))
        if "value" in raw:
            inner = normalize_ref(raw["value"])
            ref = BookingRef(normalize_kind(tag) or inner.kind, inner.id)
        elif "id" in raw:
            ref = BookingRef(normalize_kind(tag), _normalize_id(raw["id"]))
        else:
            raise ValidationError("Booking reference has no id", {"field": "id"})
    elif isinstance(raw, (int, str)):
        ref = BookingRef(None, _normalize_id(raw))
    elif hasattr(raw, "id"):
        ref = BookingRef(normalize_kind(getattr(raw, "kind", None)), _normalize_id(raw.id))
    else:
        raise ValidationError(f"Unsupported booking reference: {raw!r}")

    explicit = normalize_kind(kind)
    if explicit is not None:
        if ref.kind is not None and ref.kind != explicit:
            raise ValidationError(f"Booking reference {ref} does not match kind {explicit}")
        ref = BookingRef(explicit, ref.id)
    return ref


class RelationshipResolver:
    """Resolves booking owners and their sub-entities within the caller's tenant"""

    def __init__(self, db: Session):
        self.db = db

    def resolve_owner(self, ctx: RequestContext, raw: Any, kind: Optional[str] = None) -> Booking:
        """Load the booking a reference points to"""
        ref = normalize_ref(raw, kind)
        if ref.is_tagged:
            booking = self.db.get(BOOKING_MODELS[ref.kind], ref.id)
            if booking is None:
                raise NotFoundError(f"Booking {ref} not found")
            self._check_tenant(ctx, booking, ref)
            return booking

        # Untagged: exactly the two booking tables, preferring the caller's tenant
        hits = [
            booking for booking in (self.db.get(model, ref.id) for model in BOOKING_MODELS.values())
            if booking is not None
        ]
        in_tenant = [booking for booking in hits if booking.tenant_id == ctx.tenant_id]
        if len(in_tenant) == 1:
            return in_tenant[0]
        if len(in_tenant) > 1:
            raise ValidationError(
                f"Booking id {ref.id} exists as both import and export booking; specify its kind",
                {"field": "kind"},
            )
        if hits:
            self._check_tenant(ctx, hits[0], ref)
        raise NotFoundError(f"Booking {ref.id} not found")

    def owner_ref(self, ctx: RequestContext, raw: Any, kind: Optional[str] = None) -> BookingRef:
        """Resolve a reference and return it tagged"""
        booking = self.resolve_owner(ctx, raw, kind)
        return BookingRef(booking.kind, booking.id)

    def owner_of(self, ctx: RequestContext, entity: Union[ContainerDetail, StockAllocation]) -> Booking:
        """Owning booking of a container or stock allocation"""
        if entity.tenant_id != ctx.tenant_id:
            raise TenantMismatch(
                f"{type(entity).__name__} {entity.id} does not belong to tenant {ctx.tenant_id}"
            )
        return self.resolve_owner(ctx, BookingRef(entity.booking_kind, entity.booking_id))

    def containers_for(self, ctx: RequestContext, ref: BookingRef) -> List[ContainerDetail]:
        return self.db.query(ContainerDetail).filter(
            ContainerDetail.tenant_id == ctx.tenant_id,
            ContainerDetail.booking_kind == ref.kind,
            ContainerDetail.booking_id == ref.id,
        ).order_by(ContainerDetail.id).all()

    def allocations_for(self, ctx: RequestContext, ref: BookingRef) -> List[StockAllocation]:
        return self.db.query(StockAllocation).filter(
            StockAllocation.tenant_id == ctx.tenant_id,
            StockAllocation.booking_kind == ref.kind,
            StockAllocation.booking_id == ref.id,
        ).order_by(StockAllocation.id).all()

    @staticmethod
    def _check_tenant(ctx: RequestContext, booking: Booking, ref: BookingRef) -> None:
        if booking.tenant_id != ctx.tenant_id:
            logger.warning(
                f"Cross-tenant booking reference {ref} from tenant={ctx.tenant_id} "
                f"user={ctx.actor_id}"
            )
            raise TenantMismatch(f"Booking {ref} does not belong to tenant {ctx.tenant_id}")
