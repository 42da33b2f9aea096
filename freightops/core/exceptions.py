"""
Engine Exceptions
Error taxonomy raised by the allocation, pickup and booking services
"""
from typing import Any, Dict, List, Optional


class FreightOpsException(Exception):
    """Base exception for the FreightOps engine"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(FreightOpsException):
    """Raised when caller input is malformed or references unknown data"""
    pass


class NotFoundError(FreightOpsException):
    """Raised when a referenced entity does not exist in the caller's tenant"""
    pass


class StateConflict(FreightOpsException):
    """Raised when a stock unit is not in the state an operation requires"""
    pass


class AlreadyReserved(StateConflict):
    """Raised when a concurrent request reserved the unit first"""

    def __init__(self, lpn_number: str, held_by_line_id: Optional[int] = None):
        super().__init__(
            f"LPN {lpn_number} was reserved by another request",
            {"lpn_number": lpn_number, "held_by_line_id": held_by_line_id},
        )
        self.lpn_number = lpn_number


class InsufficientStock(FreightOpsException):
    """Raised when the available pool cannot cover the requested quantity"""

    def __init__(self, available: int, required: int):
        super().__init__(
            f"Insufficient stock. Available: {available}, Still needed: {required - available}",
            {"available": available, "required": required},
        )
        self.available = available
        self.required = required


class PartialAvailability(FreightOpsException):
    """Raised when some explicitly requested LPNs cannot be reserved"""

    def __init__(self, missing: List[str], reasons: Optional[Dict[str, str]] = None):
        super().__init__(
            f"LPNs not available: {', '.join(missing)}",
            {"missing": list(missing), "reasons": reasons or {}},
        )
        self.missing = list(missing)


class TenantMismatch(FreightOpsException):
    """Raised when a resolved reference belongs to another tenant"""
    pass


class TransitionNotAllowed(FreightOpsException):
    """Raised when a booking status guard fails"""

    def __init__(self, reason: str, current_status: Optional[str] = None, requested_status: Optional[str] = None):
        super().__init__(
            reason,
            {"current_status": current_status, "requested_status": requested_status},
        )
        self.reason = reason


class PickupRejected(ValidationError):
    """Raised when none of the requested LPNs can be picked up"""

    def __init__(self, warnings: List[str]):
        super().__init__(
            "No valid LPNs to pick up",
            {"warnings": list(warnings)},
        )
        self.warnings = list(warnings)
