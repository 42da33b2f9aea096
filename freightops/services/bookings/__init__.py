"""Booking services - status progression, owner resolution and dispatch"""

from .relationship_resolver import BookingRef, RelationshipResolver, normalize_ref
from .allocation_stages import AllocationStage, AllocationStageService
from .booking_status import BookingStatusService, check_transition, get_next_valid_statuses
from .container_dispatch import ContainerDispatchService

__all__ = [
    "BookingRef",
    "RelationshipResolver",
    "normalize_ref",
    "AllocationStage",
    "AllocationStageService",
    "BookingStatusService",
    "check_transition",
    "get_next_valid_statuses",
    "ContainerDispatchService",
]
