"""Allocation and pickup schemas"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum


class AllocationModeEnum(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class AllocationRequest(BaseModel):
    mode: AllocationModeEnum
    lpn_numbers: Optional[List[str]] = Field(None, description="LPNs to reserve in manual mode")
    quantity: Optional[int] = Field(None, gt=0, description="Quantity to cover in automatic mode")

    @model_validator(mode="after")
    def check_payload(self):
        if self.mode == AllocationModeEnum.MANUAL and not self.lpn_numbers:
            raise ValueError("lpn_numbers is required for manual allocation")
        return self


class LineTotalsResponse(BaseModel):
    allocated_qty: int
    allocated_weight: Decimal
    allocated_volume: Decimal
    allocated_pallet_qty: Decimal
    location: Optional[str] = None
    lpn_numbers: List[str] = []


class AllocationResponse(BaseModel):
    line_id: int
    mode: AllocationModeEnum
    reserved_lpns: List[str]
    totals: LineTotalsResponse
    owner_status: Optional[str] = None
    warnings: List[str] = []

    model_config = ConfigDict(from_attributes=True)


class ReleaseResponse(BaseModel):
    line_id: int
    released_lpns: List[str]


class JobResponse(BaseModel):
    id: int
    job_code: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class PickupRequest(BaseModel):
    lpn_numbers: List[str] = Field(..., min_length=1)
    buffer_qty: int = 0
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("lpn_numbers")
    @classmethod
    def strip_numbers(cls, v: List[str]) -> List[str]:
        numbers = [number.strip() for number in v if number and number.strip()]
        if not numbers:
            raise ValueError("At least one LPN number is required")
        return numbers


class PickedUnit(BaseModel):
    lpn_id: int
    lpn_number: str
    quantity: int
    location: Optional[str] = None


class PickupRecordResponse(BaseModel):
    id: int
    demand_line_id: int
    outbound_job_id: Optional[int] = None
    stock_allocation_id: Optional[int] = None
    container_detail_id: Optional[int] = None
    picked_units: List[PickedUnit]
    picked_qty: int
    buffer_qty: int
    final_qty: int
    pickup_status: str
    picked_by: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PickupResponse(BaseModel):
    record: PickupRecordResponse
    warnings: List[str] = []
    line_complete: bool
    owner_status: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
