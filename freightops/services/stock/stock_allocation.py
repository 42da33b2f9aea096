"""
Stock Allocation Service
Reserves LPNs against demand lines, FIFO or by explicit LPN list

Allocation is all-or-nothing per call: any failure rolls back every
reservation the call made. Derived line totals and the owning job or
container status are recomputed after every change.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from freightops.core.audit import log_user_action
from freightops.core.config import settings
from freightops.core.context import RequestContext
from freightops.core.exceptions import (
    FreightOpsException, InsufficientStock, NotFoundError,
    PartialAvailability, StateConflict, ValidationError,
)
from freightops.models.booking import BookingKind, ContainerStatus, StockAllocation
from freightops.models.outbound import DemandLine, JobStatus, OutboundJob, PickupRecord
from freightops.models.stock import AllocationStatus, StockUnit
from freightops.services.stock.progress import Progress, allocation_progress, pickup_progress
from freightops.services.stock.stock_ledger import DemandRef, StockLedger

logger = logging.getLogger(__name__)

CUBIC_MM_PER_M3 = Decimal("1000000000")


class AllocationMode:
    """Allocation modes"""
    MANUAL = "manual"
    AUTOMATIC = "automatic"

    ALL = (MANUAL, AUTOMATIC)


@dataclass
class LineTotals:
    allocated_qty: int = 0
    allocated_weight: Decimal = Decimal("0")
    allocated_volume: Decimal = Decimal("0")
    allocated_pallet_qty: Decimal = Decimal("0")
    location: Optional[str] = None
    lpn_numbers: List[str] = field(default_factory=list)


@dataclass
class AllocationResult:
    """Outcome of a successful allocation call"""
    line_id: int
    mode: str
    reserved_lpns: List[str]
    totals: LineTotals
    owner_status: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class StockAllocationService:
    """
    Stock allocation against outbound jobs and export container allocations
    """

    def __init__(self, db: Session, ledger: Optional[StockLedger] = None):
        self.db = db
        self.ledger = ledger or StockLedger(db)

    def allocate(
        self,
        ctx: RequestContext,
        line_id: int,
        mode: str,
        payload: Union[Sequence[str], int, None] = None,
    ) -> AllocationResult:
        """
        Allocate stock to a demand line

        Manual mode takes a list of LPN numbers, automatic mode an optional
        quantity that defaults to the line's unallocated remainder.
        """
        try:
            line = self._get_line(ctx, line_id)
            self._ensure_allocatable(line)

            if mode == AllocationMode.MANUAL:
                reserved = self._allocate_manual(ctx, line, payload)
            elif mode == AllocationMode.AUTOMATIC:
                reserved = self._allocate_automatic(ctx, line, payload)
            else:
                raise ValidationError(f"Unknown allocation mode: {mode}", {"field": "mode"})

            totals = self.recompute_line(ctx, line)
            owner_status = self._refresh_owner_status(line)

            warnings = []
            if line.required_qty and totals.allocated_qty > line.required_qty:
                warnings.append(
                    f"Line {line.id} is over-allocated: {totals.allocated_qty} allocated "
                    f"against {line.required_qty} required"
                )

            log_user_action(
                db=self.db,
                ctx=ctx,
                action="ALLOCATE_STOCK",
                table="demand_lines",
                key=str(line.id),
                new_values={
                    'mode': mode,
                    'lpns': [unit.lpn_number for unit in reserved],
                    'allocated_qty': totals.allocated_qty,
                    'owner_status': owner_status,
                },
                module="STOCK"
            )
            self.db.commit()
        except FreightOpsException as e:
            self.db.rollback()
            logger.warning(f"Allocation of line {line_id} failed (tenant={ctx.tenant_id}): {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.exception(f"Unexpected error allocating line {line_id}")
            raise

        for warning in warnings:
            logger.warning(warning)
        logger.info(
            f"Allocated {len(reserved)} LPN(s) to line {line_id} ({mode}) "
            f"tenant={ctx.tenant_id} user={ctx.actor_id}"
        )
        return AllocationResult(
            line_id=line_id,
            mode=mode,
            reserved_lpns=[unit.lpn_number for unit in reserved],
            totals=totals,
            owner_status=owner_status,
            warnings=warnings,
        )

    def release_line(self, ctx: RequestContext, line_id: int) -> List[str]:
        """Release a line's allocated units back to available

        Refused once the line has recorded pickups.
        """
        try:
            line = self._get_line(ctx, line_id)
            self._ensure_no_pickups(ctx, line, "released")
            released = self._release_units(ctx, line)
            owner_status = self._refresh_owner_status(line)
            log_user_action(
                db=self.db,
                ctx=ctx,
                action="RELEASE_STOCK",
                table="demand_lines",
                key=str(line.id),
                old_values={'lpns': released},
                new_values={'owner_status': owner_status},
                module="STOCK"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Released {len(released)} LPN(s) from line {line_id} tenant={ctx.tenant_id}")
        return released

    def delete_line(self, ctx: RequestContext, line_id: int) -> List[str]:
        """Release a line's units and delete the line"""
        try:
            line = self._get_line(ctx, line_id)
            self._ensure_no_pickups(ctx, line, "deleted")

            released = self._release_units(ctx, line)
            job, allocation = line.outbound_job, line.stock_allocation
            self.db.delete(line)
            self.db.flush()

            owner_status = None
            if job is not None:
                self.db.expire(job, ["lines"])
                owner_status = self._refresh_job_status(job)
            elif allocation is not None:
                self.db.expire(allocation, ["product_lines"])
                owner_status = self._refresh_container_status(allocation)

            log_user_action(
                db=self.db,
                ctx=ctx,
                action="DELETE_DEMAND_LINE",
                table="demand_lines",
                key=str(line_id),
                old_values={'lpns': released},
                new_values={'owner_status': owner_status},
                module="STOCK"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Deleted line {line_id} and released {len(released)} LPN(s) tenant={ctx.tenant_id}")
        return released

    def cancel_job(self, ctx: RequestContext, job_id: int) -> OutboundJob:
        """Cancel an outbound job and release every unit its lines hold"""
        try:
            job = self.db.query(OutboundJob).filter(
                OutboundJob.id == job_id,
                OutboundJob.tenant_id == ctx.tenant_id,
            ).first()
            if not job:
                raise NotFoundError(f"Outbound job {job_id} not found")
            if job.status == JobStatus.CANCELLED:
                raise StateConflict(f"Outbound job {job_id} is already cancelled")
            if job.status == JobStatus.PICKED:
                raise StateConflict(f"Outbound job {job_id} has been picked and cannot be cancelled")
            has_pickups = self.db.query(PickupRecord.id).filter(
                PickupRecord.tenant_id == ctx.tenant_id,
                PickupRecord.outbound_job_id == job.id,
            ).first()
            if has_pickups:
                raise StateConflict(f"Outbound job {job_id} has recorded pickups and cannot be cancelled")

            released = []
            for line in job.lines:
                released.extend(self._release_units(ctx, line))

            old_status = job.status
            job.status = JobStatus.CANCELLED
            log_user_action(
                db=self.db,
                ctx=ctx,
                action="CANCEL_JOB",
                table="outbound_jobs",
                key=str(job.id),
                old_values={'status': old_status},
                new_values={'status': job.status, 'released': released},
                module="STOCK"
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Cancelled job {job_id}, released {len(released)} LPN(s) tenant={ctx.tenant_id}")
        return job

    def recompute_line(self, ctx: RequestContext, line: DemandLine) -> LineTotals:
        """Recompute a line's derived totals from the units it holds"""
        units = self.ledger.units_for_line(ctx, line.id)
        sku = line.sku

        qty = sum(unit.quantity or 0 for unit in units)
        weight_per_unit = Decimal(str(sku.weight_per_unit_kg or 0))
        totals = LineTotals(
            allocated_qty=qty,
            allocated_weight=_round(weight_per_unit * qty, settings.WEIGHT_DECIMAL_PLACES),
            location=units[0].location if units else None,
            lpn_numbers=[unit.lpn_number for unit in units],
        )
        if units:
            # Cubic measure of one handling unit, not a sum over units
            totals.allocated_volume = _round(
                Decimal(sku.length_mm or 0) * Decimal(sku.width_mm or 0) * Decimal(sku.height_mm or 0)
                / CUBIC_MM_PER_M3,
                settings.VOLUME_DECIMAL_PLACES,
            )
            if sku.units_per_pallet:
                totals.allocated_pallet_qty = _round(
                    Decimal(qty) / Decimal(sku.units_per_pallet),
                    settings.PALLET_DECIMAL_PLACES,
                )

        line.allocated_qty = totals.allocated_qty
        line.allocated_weight = totals.allocated_weight
        line.allocated_volume = totals.allocated_volume
        line.allocated_pallet_qty = totals.allocated_pallet_qty
        line.location = totals.location
        return totals

    def _allocate_manual(self, ctx: RequestContext, line: DemandLine, lpn_numbers) -> List[StockUnit]:
        """Reserve an explicit LPN list, or nothing if any LPN is unusable"""
        if not lpn_numbers or isinstance(lpn_numbers, (str, int)):
            raise ValidationError("Manual allocation requires a list of LPN numbers", {"field": "lpn_numbers"})

        numbers = list(dict.fromkeys(str(number) for number in lpn_numbers))
        if len(numbers) > settings.MAX_UNITS_PER_ALLOCATION:
            raise ValidationError(
                f"At most {settings.MAX_UNITS_PER_ALLOCATION} LPNs can be allocated at once",
                {"field": "lpn_numbers"},
            )

        units = self.ledger.find_by_lpn_numbers(ctx, numbers)
        warehouse_id = self._line_warehouse(line)
        to_reserve: List[StockUnit] = []
        reasons: Dict[str, str] = {}

        for number in numbers:
            unit = units.get(number)
            if unit is None:
                reasons[number] = "not found"
            elif unit.allocation_status != AllocationStatus.AVAILABLE:
                if unit.demand_line_id == line.id and unit.allocation_status == AllocationStatus.ALLOCATED:
                    continue
                if unit.allocation_status == AllocationStatus.PICKED:
                    reasons[number] = "already picked"
                else:
                    reasons[number] = "already allocated to other product lines"
            elif unit.sku_id != line.sku_id:
                reasons[number] = "SKU does not match the line"
            elif line.batch_number and unit.batch_number != line.batch_number:
                reasons[number] = "batch does not match the line"
            elif warehouse_id is not None and unit.warehouse_id != warehouse_id:
                reasons[number] = "stored in a different warehouse"
            else:
                to_reserve.append(unit)

        if reasons:
            raise PartialAvailability(list(reasons), reasons)

        demand = DemandRef.for_line(line)
        return [self.ledger.reserve(ctx, unit, demand) for unit in to_reserve]

    def _allocate_automatic(self, ctx: RequestContext, line: DemandLine, quantity) -> List[StockUnit]:
        """Reserve whole units oldest first until the quantity is covered"""
        if quantity is None:
            held = sum(unit.quantity or 0 for unit in self.ledger.units_for_line(ctx, line.id))
            required = (line.required_qty or 0) - held
            if required <= 0:
                raise ValidationError(f"Line {line.id} is already fully allocated", {"field": "quantity"})
        else:
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                raise ValidationError("Quantity must be a positive whole number", {"field": "quantity"})
            required = quantity

        candidates = self.ledger.find_available(
            ctx, line.sku_id, line.batch_number, self._line_warehouse(line)
        )

        selected: List[StockUnit] = []
        running = 0
        for unit in candidates:
            if running >= required:
                break
            if not unit.quantity:
                continue
            selected.append(unit)
            running += unit.quantity

        if running < required:
            raise InsufficientStock(available=running, required=required)

        # A lost race aborts the call; later candidates are never substituted
        demand = DemandRef.for_line(line)
        return [self.ledger.reserve(ctx, unit, demand) for unit in selected]

    def _release_units(self, ctx: RequestContext, line: DemandLine) -> List[str]:
        released = [
            self.ledger.release(ctx, unit).lpn_number
            for unit in self.ledger.units_for_line(ctx, line.id, (AllocationStatus.ALLOCATED,))
        ]
        self.recompute_line(ctx, line)
        return released

    def _ensure_no_pickups(self, ctx: RequestContext, line: DemandLine, action: str) -> None:
        has_pickups = self.db.query(PickupRecord.id).filter(
            PickupRecord.tenant_id == ctx.tenant_id,
            PickupRecord.demand_line_id == line.id,
        ).first()
        if has_pickups:
            raise StateConflict(f"Line {line.id} has recorded pickups and cannot be {action}")

    def _get_line(self, ctx: RequestContext, line_id: int) -> DemandLine:
        line = self.db.query(DemandLine).filter(
            DemandLine.id == line_id,
            DemandLine.tenant_id == ctx.tenant_id,
        ).first()
        if not line:
            raise NotFoundError(f"Demand line {line_id} not found")
        return line

    @staticmethod
    def _ensure_allocatable(line: DemandLine) -> None:
        if line.outbound_job is not None:
            if line.outbound_job.status in (JobStatus.CANCELLED, JobStatus.PICKED):
                raise StateConflict(
                    f"Cannot allocate to a job with status {line.outbound_job.status}"
                )
        elif line.stock_allocation is not None:
            if line.stock_allocation.booking_kind != BookingKind.EXPORT:
                raise ValidationError("Stock can only be allocated against export bookings")
            container = line.stock_allocation.container_detail
            if container is not None and container.status == ContainerStatus.DISPATCHED:
                raise StateConflict(f"Container {container.container_number} has been dispatched")

    @staticmethod
    def _line_warehouse(line: DemandLine) -> Optional[int]:
        if line.outbound_job is not None:
            return line.outbound_job.warehouse_id
        return None

    def _refresh_owner_status(self, line: DemandLine) -> Optional[str]:
        if line.outbound_job is not None:
            return self._refresh_job_status(line.outbound_job)
        if line.stock_allocation is not None:
            return self._refresh_container_status(line.stock_allocation)
        return None

    @staticmethod
    def _refresh_job_status(job: OutboundJob) -> str:
        """Derive the job status from pickup progress, then allocation progress"""
        if job.status == JobStatus.CANCELLED:
            return job.status

        picking = pickup_progress(job.lines)
        if picking == Progress.FULL:
            job.status = JobStatus.PICKED
            return job.status
        if picking == Progress.PARTIAL:
            job.status = JobStatus.PARTIALLY_PICKED
            return job.status

        progress = allocation_progress(job.lines)
        if progress == Progress.FULL:
            job.status = JobStatus.ALLOCATED
        elif progress == Progress.PARTIAL:
            job.status = JobStatus.PARTIALLY_ALLOCATED
        else:
            job.status = JobStatus.DRAFT
        return job.status

    @staticmethod
    def _refresh_container_status(allocation: StockAllocation) -> Optional[str]:
        """Derive an export container's status from the lines loaded into it"""
        container = allocation.container_detail
        if container is None:
            return None
        if allocation.booking_kind != BookingKind.EXPORT or container.status == ContainerStatus.DISPATCHED:
            return container.status

        lines = [line for each in container.stock_allocations for line in each.product_lines]
        picking = pickup_progress(lines)
        if picking == Progress.FULL:
            container.status = ContainerStatus.PICKED_UP
        elif picking == Progress.PARTIAL:
            container.status = ContainerStatus.PARTIALLY_PICKED
        elif allocation_progress(lines) == Progress.FULL:
            container.status = ContainerStatus.ALLOCATED
        elif container.status == ContainerStatus.ALLOCATED:
            # Back to the pre-allocation state
            container.status = None
        return container.status


def _round(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
