"""
Stock Ledger
LPN-level reads and single-unit state transitions

Every transition is a conditional UPDATE guarded on the unit's current
allocation status, so two requests racing for the same unit cannot both
win. The ledger never commits; the calling service owns the transaction.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from freightops.core.context import RequestContext
from freightops.core.exceptions import AlreadyReserved, StateConflict, TenantMismatch
from freightops.models.stock import AllocationStatus, StockUnit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemandRef:
    """The demand a unit is reserved against"""
    line_id: int
    job_id: Optional[int] = None
    allocation_id: Optional[int] = None

    @classmethod
    def for_line(cls, line) -> "DemandRef":
        return cls(
            line_id=line.id,
            job_id=line.outbound_job_id,
            allocation_id=line.stock_allocation_id,
        )


class StockLedger:
    """Tenant-scoped access to stock units"""

    def __init__(self, db: Session):
        self.db = db

    def find_available(
        self,
        ctx: RequestContext,
        sku_id: int,
        batch_number: Optional[str] = None,
        warehouse_id: Optional[int] = None,
    ) -> List[StockUnit]:
        """Available units for a SKU and batch, oldest put-away first"""
        query = self.db.query(StockUnit).filter(
            StockUnit.tenant_id == ctx.tenant_id,
            StockUnit.sku_id == sku_id,
            StockUnit.allocation_status == AllocationStatus.AVAILABLE,
        )
        if batch_number:
            query = query.filter(StockUnit.batch_number == batch_number)
        if warehouse_id is not None:
            query = query.filter(StockUnit.warehouse_id == warehouse_id)
        return query.order_by(StockUnit.put_away_at.asc(), StockUnit.id.asc()).all()

    def find_by_lpn_numbers(self, ctx: RequestContext, lpn_numbers: Iterable[str]) -> Dict[str, StockUnit]:
        """Units in the tenant keyed by LPN number; unknown numbers are absent"""
        numbers = list(lpn_numbers)
        if not numbers:
            return {}
        units = self.db.query(StockUnit).filter(
            StockUnit.tenant_id == ctx.tenant_id,
            StockUnit.lpn_number.in_(numbers),
        ).all()
        return {unit.lpn_number: unit for unit in units}

    def units_for_line(
        self,
        ctx: RequestContext,
        line_id: int,
        statuses: Sequence[str] = AllocationStatus.HELD,
    ) -> List[StockUnit]:
        """Units held by a demand line in reservation order"""
        return self.db.query(StockUnit).filter(
            StockUnit.tenant_id == ctx.tenant_id,
            StockUnit.demand_line_id == line_id,
            StockUnit.allocation_status.in_(list(statuses)),
        ).order_by(
            StockUnit.reserved_at.asc(),
            StockUnit.put_away_at.asc(),
            StockUnit.id.asc(),
        ).all()

    def reserve(self, ctx: RequestContext, unit: StockUnit, demand: DemandRef) -> StockUnit:
        """Transition a unit to allocated only if it is still available"""
        self._check_tenant(ctx, unit)
        if unit.allocation_status != AllocationStatus.AVAILABLE:
            raise StateConflict(
                f"LPN {unit.lpn_number} is {unit.allocation_status}, not available",
                {"lpn_number": unit.lpn_number, "allocation_status": unit.allocation_status},
            )

        result = self.db.execute(
            update(StockUnit)
            .where(
                StockUnit.id == unit.id,
                StockUnit.tenant_id == ctx.tenant_id,
                StockUnit.allocation_status == AllocationStatus.AVAILABLE,
            )
            .values(
                allocation_status=AllocationStatus.ALLOCATED,
                demand_line_id=demand.line_id,
                demand_job_id=demand.job_id,
                demand_allocation_id=demand.allocation_id,
                reserved_at=datetime.now(timezone.utc),
                reserved_by=ctx.actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(unit)
        if result.rowcount != 1:
            logger.warning(
                f"Reserve of LPN {unit.lpn_number} lost to line {unit.demand_line_id} "
                f"(tenant={ctx.tenant_id})"
            )
            if unit.demand_line_id is not None and unit.demand_line_id != demand.line_id:
                raise AlreadyReserved(unit.lpn_number, unit.demand_line_id)
            raise StateConflict(
                f"LPN {unit.lpn_number} is {unit.allocation_status}, not available",
                {"lpn_number": unit.lpn_number, "allocation_status": unit.allocation_status},
            )

        logger.debug(f"Reserved LPN {unit.lpn_number} for line {demand.line_id}")
        return unit

    def release(self, ctx: RequestContext, unit: StockUnit) -> StockUnit:
        """Return a held unit to available and clear its demand reference"""
        self._check_tenant(ctx, unit)
        result = self.db.execute(
            update(StockUnit)
            .where(
                StockUnit.id == unit.id,
                StockUnit.tenant_id == ctx.tenant_id,
                StockUnit.allocation_status.in_(list(AllocationStatus.HELD)),
            )
            .values(
                allocation_status=AllocationStatus.AVAILABLE,
                demand_line_id=None,
                demand_job_id=None,
                demand_allocation_id=None,
                reserved_at=None,
                reserved_by=None,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(unit)
        if result.rowcount != 1:
            raise StateConflict(
                f"LPN {unit.lpn_number} is not held by any demand",
                {"lpn_number": unit.lpn_number},
            )
        return unit

    def mark_picked(self, ctx: RequestContext, unit: StockUnit, line_id: int) -> StockUnit:
        """Transition a unit allocated to the given line to picked"""
        self._check_tenant(ctx, unit)
        result = self.db.execute(
            update(StockUnit)
            .where(
                StockUnit.id == unit.id,
                StockUnit.tenant_id == ctx.tenant_id,
                StockUnit.demand_line_id == line_id,
                StockUnit.allocation_status == AllocationStatus.ALLOCATED,
            )
            .values(allocation_status=AllocationStatus.PICKED)
            .execution_options(synchronize_session=False)
        )
        self.db.refresh(unit)
        if result.rowcount != 1:
            raise StateConflict(
                f"LPN {unit.lpn_number} is not allocated to line {line_id}",
                {"lpn_number": unit.lpn_number, "allocation_status": unit.allocation_status},
            )
        return unit

    @staticmethod
    def _check_tenant(ctx: RequestContext, unit: StockUnit) -> None:
        if unit.tenant_id != ctx.tenant_id:
            raise TenantMismatch(
                f"LPN {unit.lpn_number} does not belong to tenant {ctx.tenant_id}"
            )
