"""
Pickup Recorder Service
Turns allocated LPNs into an immutable pickup record

Requested LPNs that fail validation are skipped and reported as warnings;
the call is rejected only when none of them can be picked.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from freightops.core.audit import log_user_action
from freightops.core.context import RequestContext
from freightops.core.exceptions import (
    FreightOpsException, NotFoundError, PickupRejected, StateConflict, ValidationError,
)
from freightops.models.booking import ContainerStatus, StockAllocation
from freightops.models.outbound import DemandLine, JobStatus, OutboundJob, PickupRecord
from freightops.models.stock import AllocationStatus, StockUnit
from freightops.services.bookings.allocation_stages import AllocationStage
from freightops.services.stock.progress import Progress, pickup_progress
from freightops.services.stock.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


@dataclass
class PickupOutcome:
    """A recorded pickup and the LPNs that were skipped"""
    record: PickupRecord
    warnings: List[str] = field(default_factory=list)
    line_complete: bool = False
    owner_status: Optional[str] = None


class PickupRecorderService:
    """Records pickups against demand lines of outbound jobs or container allocations"""

    def __init__(self, db: Session, ledger: Optional[StockLedger] = None):
        self.db = db
        self.ledger = ledger or StockLedger(db)

    def record_pickup(
        self,
        ctx: RequestContext,
        line_id: int,
        lpn_numbers: Sequence[str],
        buffer_qty: int = 0,
        notes: Optional[str] = None,
    ) -> PickupOutcome:
        """Pick up allocated LPNs for a demand line"""
        try:
            if not lpn_numbers or isinstance(lpn_numbers, str):
                raise ValidationError("At least one LPN number is required", {"field": "lpn_numbers"})
            if isinstance(buffer_qty, bool) or not isinstance(buffer_qty, int):
                raise ValidationError("Buffer quantity must be a whole number", {"field": "buffer_qty"})

            line = self.db.query(DemandLine).filter(
                DemandLine.id == line_id,
                DemandLine.tenant_id == ctx.tenant_id,
            ).first()
            if not line:
                raise NotFoundError(f"Demand line {line_id} not found")
            self._ensure_pickable(line)

            valid, warnings = self._validate_units(ctx, line, lpn_numbers)
            if not valid:
                raise PickupRejected(warnings)

            picked_qty = sum(unit.quantity or 0 for unit in valid)
            final_qty = picked_qty + buffer_qty
            if final_qty < 0:
                raise ValidationError(
                    f"Buffer quantity {buffer_qty} would make the final quantity negative",
                    {"field": "buffer_qty"},
                )

            for unit in valid:
                self.ledger.mark_picked(ctx, unit, line.id)

            allocation = line.stock_allocation
            record = PickupRecord(
                tenant_id=ctx.tenant_id,
                demand_line_id=line.id,
                outbound_job_id=line.outbound_job_id,
                stock_allocation_id=line.stock_allocation_id,
                container_detail_id=allocation.container_detail_id if allocation else None,
                picked_units=[
                    {
                        'lpn_id': unit.id,
                        'lpn_number': unit.lpn_number,
                        'quantity': unit.quantity,
                        'location': unit.location,
                    }
                    for unit in valid
                ],
                picked_qty=picked_qty,
                buffer_qty=buffer_qty,
                final_qty=final_qty,
                picked_by=ctx.actor_id,
                notes=notes,
            )
            self.db.add(record)

            weight_per_unit = Decimal(str(line.sku.weight_per_unit_kg or 0))
            line.picked_qty = (line.picked_qty or 0) + picked_qty
            line.picked_weight = Decimal(str(line.picked_weight or 0)) + weight_per_unit * picked_qty
            line_complete = 0 < line.allocated_qty <= line.picked_qty

            owner_status = self._refresh_owner_status(line)
            self.db.flush()

            log_user_action(
                db=self.db,
                ctx=ctx,
                action="RECORD_PICKUP",
                table="pickup_records",
                key=str(record.id),
                new_values={
                    'demand_line_id': line.id,
                    'lpns': [unit.lpn_number for unit in valid],
                    'picked_qty': picked_qty,
                    'final_qty': final_qty,
                    'owner_status': owner_status,
                },
                module="STOCK"
            )
            self.db.commit()
        except PickupRejected as e:
            self.db.rollback()
            logger.warning(f"Pickup for line {line_id} rejected: {'; '.join(e.warnings)}")
            raise
        except FreightOpsException as e:
            self.db.rollback()
            logger.warning(f"Pickup for line {line_id} failed (tenant={ctx.tenant_id}): {e.message}")
            raise
        except Exception:
            self.db.rollback()
            logger.exception(f"Unexpected error recording pickup for line {line_id}")
            raise

        for warning in warnings:
            logger.warning(f"Pickup for line {line_id}: {warning}")
        logger.info(
            f"Recorded pickup {record.id} of {picked_qty} unit(s) for line {line_id} "
            f"tenant={ctx.tenant_id} user={ctx.actor_id}"
        )
        return PickupOutcome(
            record=record,
            warnings=warnings,
            line_complete=line_complete,
            owner_status=owner_status,
        )

    def _validate_units(self, ctx: RequestContext, line: DemandLine, lpn_numbers: Sequence[str]):
        """Split requested LPNs into pickable units and warnings"""
        numbers = list(dict.fromkeys(str(number) for number in lpn_numbers))
        units = self.ledger.find_by_lpn_numbers(ctx, numbers)
        valid: List[StockUnit] = []
        warnings: List[str] = []

        for number in numbers:
            unit = units.get(number)
            if unit is None:
                warnings.append(f"LPN {number} not found")
            elif unit.demand_line_id != line.id:
                if unit.demand_line_id is not None and not self._same_owner(unit, line):
                    warnings.append(f"LPN {number} is allocated to a different job")
                else:
                    warnings.append(f"LPN {number} is not allocated to this product line")
            elif unit.allocation_status != AllocationStatus.ALLOCATED:
                warnings.append(
                    f"LPN {number} has status '{unit.allocation_status}' and cannot be picked up"
                )
            else:
                valid.append(unit)
        return valid, warnings

    @staticmethod
    def _same_owner(unit: StockUnit, line: DemandLine) -> bool:
        if line.outbound_job_id is not None:
            return unit.demand_job_id == line.outbound_job_id
        return unit.demand_allocation_id == line.stock_allocation_id

    @staticmethod
    def _ensure_pickable(line: DemandLine) -> None:
        if line.outbound_job is not None and line.outbound_job.status == JobStatus.CANCELLED:
            raise StateConflict(f"Outbound job {line.outbound_job_id} is cancelled")
        if line.stock_allocation is not None:
            container = line.stock_allocation.container_detail
            if container is not None and container.status == ContainerStatus.DISPATCHED:
                raise StateConflict(f"Container {container.container_number} has been dispatched")

    def _refresh_owner_status(self, line: DemandLine) -> Optional[str]:
        if line.outbound_job is not None:
            return self._refresh_job_status(line.outbound_job)
        if line.stock_allocation is not None:
            return self._refresh_container_status(line.stock_allocation)
        return None

    @staticmethod
    def _refresh_job_status(job: OutboundJob) -> str:
        progress = pickup_progress(job.lines)
        if progress == Progress.FULL:
            job.status = JobStatus.PICKED
        elif progress == Progress.PARTIAL:
            job.status = JobStatus.PARTIALLY_PICKED
        return job.status

    @staticmethod
    def _refresh_container_status(allocation: StockAllocation) -> Optional[str]:
        if pickup_progress(allocation.product_lines) == Progress.FULL:
            allocation.stage = AllocationStage.PICKED
        container = allocation.container_detail
        if container is None:
            return None
        # A container may be loaded from several allocations
        progress = pickup_progress(
            line for each in container.stock_allocations for line in each.product_lines
        )
        if progress == Progress.FULL:
            container.status = ContainerStatus.PICKED_UP
        elif progress == Progress.PARTIAL:
            container.status = ContainerStatus.PARTIALLY_PICKED
        return container.status
