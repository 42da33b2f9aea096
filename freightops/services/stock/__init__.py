"""Stock services - ledger access, allocation and pickup"""

from .stock_ledger import StockLedger, DemandRef
from .stock_allocation import StockAllocationService, AllocationMode, AllocationResult
from .pickup_recorder import PickupRecorderService, PickupOutcome

__all__ = [
    "StockLedger",
    "DemandRef",
    "StockAllocationService",
    "AllocationMode",
    "AllocationResult",
    "PickupRecorderService",
    "PickupOutcome",
]
