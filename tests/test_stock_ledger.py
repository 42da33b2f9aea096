"""
Tests for the stock ledger
"""

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from freightops.core.exceptions import AlreadyReserved, StateConflict, TenantMismatch
from freightops.models import AllocationStatus, StockUnit
from freightops.services.stock.stock_ledger import DemandRef, StockLedger

from conftest import OTHER_TENANT_ID


class TestFindAvailable:
    """Candidate listing"""

    def test_oldest_put_away_first(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        newest = builder.unit(sku, "L3")
        oldest = builder.unit(sku, "L1", put_away_at=newest.put_away_at.replace(year=2020))
        middle = builder.unit(sku, "L2", put_away_at=newest.put_away_at.replace(year=2022))

        units = StockLedger(db_session).find_available(ctx, sku.id, "B1")

        assert [u.lpn_number for u in units] == [oldest.lpn_number, middle.lpn_number, newest.lpn_number]

    def test_filters_status_batch_warehouse_and_tenant(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        builder.unit(sku, "KEEP")
        builder.unit(sku, "OTHER-BATCH", batch="B2")
        builder.unit(sku, "OTHER-WH", warehouse_id=2)
        builder.unit(sku, "OTHER-TENANT", tenant_id=OTHER_TENANT_ID)
        job = builder.job()
        line = builder.line(sku, 10, job=job)
        held = builder.unit(sku, "HELD")
        StockLedger(db_session).reserve(ctx, held, DemandRef.for_line(line))

        units = StockLedger(db_session).find_available(ctx, sku.id, "B1", warehouse_id=1)

        assert [u.lpn_number for u in units] == ["KEEP"]

    def test_no_batch_lists_every_batch(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        builder.unit(sku, "A", batch="B1")
        builder.unit(sku, "B", batch="B2")

        units = StockLedger(db_session).find_available(ctx, sku.id, None)

        assert {u.lpn_number for u in units} == {"A", "B"}


class TestUnitTransitions:
    """Single-unit reserve, release and pick"""

    def test_reserve_sets_demand_reference(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        job = builder.job()
        line = builder.line(sku, 10, job=job)
        unit = builder.unit(sku, "L1")

        StockLedger(db_session).reserve(ctx, unit, DemandRef.for_line(line))

        assert unit.allocation_status == AllocationStatus.ALLOCATED
        assert unit.demand_line_id == line.id
        assert unit.demand_job_id == job.id
        assert unit.reserved_by == "picker-1"
        assert unit.reserved_at is not None

    def test_reserve_unavailable_unit_is_state_conflict(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        line = builder.line(sku, 10, job=builder.job())
        unit = builder.unit(sku, "L1")
        ledger = StockLedger(db_session)
        ledger.reserve(ctx, unit, DemandRef.for_line(line))

        with pytest.raises(StateConflict) as exc_info:
            ledger.reserve(ctx, unit, DemandRef.for_line(line))
        assert not isinstance(exc_info.value, AlreadyReserved)

    def test_reserve_lost_race_is_already_reserved(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        line = builder.line(sku, 10, job=builder.job("JOB-1"))
        rival = builder.line(sku, 10, job=builder.job("JOB-2"))
        unit = builder.unit(sku, "L1")

        # Another request takes the unit after this caller read it
        db_session.execute(
            update(StockUnit)
            .where(StockUnit.id == unit.id)
            .values(allocation_status=AllocationStatus.ALLOCATED, demand_line_id=rival.id)
            .execution_options(synchronize_session=False)
        )
        assert unit.allocation_status == AllocationStatus.AVAILABLE

        with pytest.raises(AlreadyReserved) as exc_info:
            StockLedger(db_session).reserve(ctx, unit, DemandRef.for_line(line))

        assert exc_info.value.details["held_by_line_id"] == rival.id
        assert unit.demand_line_id == rival.id

    def test_reserve_other_tenant_unit(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        line = builder.line(sku, 10, job=builder.job())
        foreign = builder.unit(sku, "L1", tenant_id=OTHER_TENANT_ID)

        with pytest.raises(TenantMismatch):
            StockLedger(db_session).reserve(ctx, foreign, DemandRef.for_line(line))

    def test_release_clears_reference(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        line = builder.line(sku, 10, job=builder.job())
        unit = builder.unit(sku, "L1")
        ledger = StockLedger(db_session)
        ledger.reserve(ctx, unit, DemandRef.for_line(line))

        ledger.release(ctx, unit)

        assert unit.allocation_status == AllocationStatus.AVAILABLE
        assert unit.demand_line_id is None
        assert unit.demand_job_id is None
        assert unit.reserved_at is None
        assert unit.reserved_by is None

    def test_release_available_unit_fails(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        unit = builder.unit(sku, "L1")

        with pytest.raises(StateConflict):
            StockLedger(db_session).release(ctx, unit)

    def test_mark_picked_requires_matching_line(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        job = builder.job()
        line = builder.line(sku, 10, job=job)
        other = builder.line(sku, 10, job=job)
        unit = builder.unit(sku, "L1")
        ledger = StockLedger(db_session)
        ledger.reserve(ctx, unit, DemandRef.for_line(line))

        with pytest.raises(StateConflict):
            ledger.mark_picked(ctx, unit, other.id)

        ledger.mark_picked(ctx, unit, line.id)
        assert unit.allocation_status == AllocationStatus.PICKED
        assert unit.demand_line_id == line.id

    def test_units_for_line_in_reservation_order(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        line = builder.line(sku, 30, job=builder.job())
        ledger = StockLedger(db_session)
        for lpn in ("L1", "L2", "L3"):
            ledger.reserve(ctx, builder.unit(sku, lpn), DemandRef.for_line(line))

        assert [u.lpn_number for u in ledger.units_for_line(ctx, line.id)] == ["L1", "L2", "L3"]
