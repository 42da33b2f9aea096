"""
FreightOps SQLAlchemy Models
"""

# Import all models to ensure they are registered with SQLAlchemy
from .audit import AuditLog
from .stock import AllocationStatus, Sku, StockUnit
from .outbound import JobStatus, OutboundJob, DemandLine, PickupRecord
from .booking import (
    BookingKind, BookingStatus, ContainerStatus, BOOKING_MODELS,
    ImportContainerBooking, ExportContainerBooking, ContainerDetail, StockAllocation
)

__all__ = [
    "AuditLog",
    "AllocationStatus", "Sku", "StockUnit",
    "JobStatus", "OutboundJob", "DemandLine", "PickupRecord",
    "BookingKind", "BookingStatus", "ContainerStatus", "BOOKING_MODELS",
    "ImportContainerBooking", "ExportContainerBooking", "ContainerDetail", "StockAllocation",
]
