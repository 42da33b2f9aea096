"""Booking status and dispatch schemas"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum


class BookingKindEnum(str, Enum):
    IMPORT = "import"
    EXPORT = "export"


class BookingStatusEnum(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class StatusTransitionRequest(BaseModel):
    status: BookingStatusEnum


class BookingStatusResponse(BaseModel):
    id: int
    kind: BookingKindEnum
    status: BookingStatusEnum

    model_config = ConfigDict(from_attributes=True)


class NextStatusesResponse(BaseModel):
    id: int
    kind: BookingKindEnum
    status: BookingStatusEnum
    next_statuses: List[BookingStatusEnum]


class DispatchRequest(BaseModel):
    driver_id: int = Field(..., gt=0)
    vehicle_id: int = Field(..., gt=0)


class ContainerResponse(BaseModel):
    id: int
    booking_kind: BookingKindEnum
    booking_id: int
    container_number: Optional[str] = None
    status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
