"""
Tests for the pickup recorder
"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session

from freightops.core.exceptions import PickupRejected, StateConflict, ValidationError
from freightops.models import (
    AllocationStatus, BookingKind, ContainerStatus, DemandLine, JobStatus, PickupRecord, StockUnit,
)
from freightops.services.bookings.allocation_stages import AllocationStage
from freightops.services.stock import AllocationMode, PickupRecorderService, StockAllocationService


def unit_status(db: Session, lpn: str) -> str:
    return db.query(StockUnit).filter(StockUnit.lpn_number == lpn).one().allocation_status


@pytest.fixture
def allocated_job(db_session: Session, builder, ctx):
    """A job with one line holding L1-L3 (quantities 4, 5, 6)"""
    sku = builder.sku(weight_per_unit_kg=Decimal("2.000"))
    job = builder.job()
    line = builder.line(sku, 15, job=job)
    for lpn, qty in (("L1", 4), ("L2", 5), ("L3", 6)):
        builder.unit(sku, lpn, quantity=qty)
    StockAllocationService(db_session).allocate(ctx, line.id, AllocationMode.MANUAL, ["L1", "L2", "L3"])
    return sku, job, line


class TestRecordPickup:
    """Per-LPN validation and record creation"""

    def test_already_picked_unit_is_one_warning(self, db_session: Session, allocated_job, ctx):
        _, _, line = allocated_job
        recorder = PickupRecorderService(db_session)
        recorder.record_pickup(ctx, line.id, ["L1"])

        outcome = recorder.record_pickup(ctx, line.id, ["L1", "L2", "L3"])

        assert outcome.record.picked_qty == 11
        assert outcome.record.final_qty == 11
        assert outcome.warnings == ["LPN L1 has status 'picked' and cannot be picked up"]
        assert unit_status(db_session, "L2") == AllocationStatus.PICKED
        assert unit_status(db_session, "L3") == AllocationStatus.PICKED
        assert [u["lpn_number"] for u in outcome.record.picked_units] == ["L2", "L3"]

    def test_buffer_added_to_final_quantity(self, db_session: Session, allocated_job, ctx):
        _, _, line = allocated_job

        outcome = PickupRecorderService(db_session).record_pickup(
            ctx, line.id, ["L1", "L2"], buffer_qty=2, notes="damaged carton swapped"
        )

        assert outcome.record.picked_qty == 9
        assert outcome.record.buffer_qty == 2
        assert outcome.record.final_qty == 11
        assert outcome.record.picked_by == "picker-1"
        assert outcome.record.pickup_status == "completed"

    def test_unknown_and_foreign_units_are_warnings(self, db_session: Session, allocated_job, builder, ctx):
        sku, _, line = allocated_job
        other_line = builder.line(sku, 5, job=builder.job("JOB-2"))
        builder.unit(sku, "OTHER", quantity=5)
        builder.unit(sku, "FREE", quantity=5)
        StockAllocationService(db_session).allocate(ctx, other_line.id, AllocationMode.MANUAL, ["OTHER"])

        outcome = PickupRecorderService(db_session).record_pickup(
            ctx, line.id, ["L1", "OTHER", "GHOST", "FREE"]
        )

        assert outcome.record.picked_qty == 4
        assert outcome.warnings == [
            "LPN OTHER is allocated to a different job",
            "LPN GHOST not found",
            "LPN FREE is not allocated to this product line",
        ]
        assert unit_status(db_session, "OTHER") == AllocationStatus.ALLOCATED

    def test_nothing_valid_is_rejected(self, db_session: Session, allocated_job, ctx):
        _, job, line = allocated_job

        with pytest.raises(PickupRejected) as exc_info:
            PickupRecorderService(db_session).record_pickup(ctx, line.id, ["GHOST"])

        assert exc_info.value.warnings == ["LPN GHOST not found"]
        assert db_session.query(PickupRecord).count() == 0
        assert db_session.get(DemandLine, line.id).outbound_job.status == JobStatus.ALLOCATED

    def test_negative_final_quantity_rejected(self, db_session: Session, allocated_job, ctx):
        _, _, line = allocated_job

        with pytest.raises(ValidationError):
            PickupRecorderService(db_session).record_pickup(ctx, line.id, ["L1"], buffer_qty=-5)
        assert unit_status(db_session, "L1") == AllocationStatus.ALLOCATED

    def test_line_progress_updated(self, db_session: Session, allocated_job, ctx):
        _, _, line = allocated_job

        outcome = PickupRecorderService(db_session).record_pickup(ctx, line.id, ["L1", "L2"])

        stored = db_session.get(DemandLine, line.id)
        assert stored.picked_qty == 9
        assert stored.picked_weight == Decimal("18.000")
        assert stored.allocated_qty == 15
        assert outcome.line_complete is False

    def test_records_are_immutable(self, db_session: Session, allocated_job, ctx):
        _, _, line = allocated_job
        record = PickupRecorderService(db_session).record_pickup(ctx, line.id, ["L1"]).record

        record.notes = "edited"
        with pytest.raises(StateConflict):
            db_session.commit()
        db_session.rollback()


class TestCompletion:
    """Owner status after pickups"""

    def test_job_partially_picked_then_picked(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        job = builder.job()
        first = builder.line(sku, 10, job=job)
        second = builder.line(sku, 10, job=job)
        builder.unit(sku, "L1", quantity=10)
        builder.unit(sku, "L2", quantity=10)
        allocator = StockAllocationService(db_session)
        allocator.allocate(ctx, first.id, AllocationMode.MANUAL, ["L1"])
        allocator.allocate(ctx, second.id, AllocationMode.MANUAL, ["L2"])
        recorder = PickupRecorderService(db_session)

        outcome = recorder.record_pickup(ctx, first.id, ["L1"])
        assert outcome.line_complete is True
        assert outcome.owner_status == JobStatus.PARTIALLY_PICKED

        outcome = recorder.record_pickup(ctx, second.id, ["L2"])
        assert outcome.owner_status == JobStatus.PICKED

    def test_export_container_picked_up(self, db_session: Session, builder, ctx):
        sku = builder.sku()
        booking = builder.booking(BookingKind.EXPORT)
        container = builder.container(booking)
        allocation = builder.stock_allocation(booking, container)
        first = builder.line(sku, 10, allocation=allocation)
        second = builder.line(sku, 5, allocation=allocation)
        builder.unit(sku, "L1", quantity=10)
        builder.unit(sku, "L2", quantity=5)
        allocator = StockAllocationService(db_session)
        allocator.allocate(ctx, first.id, AllocationMode.MANUAL, ["L1"])
        allocator.allocate(ctx, second.id, AllocationMode.MANUAL, ["L2"])
        recorder = PickupRecorderService(db_session)

        outcome = recorder.record_pickup(ctx, first.id, ["L1"])
        assert outcome.owner_status == ContainerStatus.PARTIALLY_PICKED
        assert outcome.record.container_detail_id == container.id

        outcome = recorder.record_pickup(ctx, second.id, ["L2"])
        assert outcome.owner_status == ContainerStatus.PICKED_UP
        db_session.refresh(allocation)
        assert allocation.stage == AllocationStage.PICKED
