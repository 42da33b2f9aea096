"""
Tests for export container dispatch
"""

import pytest
from sqlalchemy.orm import Session

from freightops.core.exceptions import NotFoundError, StateConflict, ValidationError
from freightops.models import BookingKind, ContainerStatus, ExportContainerBooking, StockAllocation
from freightops.services.bookings import AllocationStage, ContainerDispatchService


class TestDispatch:

    def test_dispatch_picked_up_container(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.EXPORT)
        container = builder.container(booking, status=ContainerStatus.PICKED_UP)
        allocation = builder.stock_allocation(booking, container, stage="picked")

        dispatched = ContainerDispatchService(db_session).dispatch(ctx, container.id, driver_id=21, vehicle_id=34)

        assert dispatched.status == ContainerStatus.DISPATCHED
        assert db_session.get(StockAllocation, allocation.id).stage == AllocationStage.DISPATCHED
        record = db_session.get(ExportContainerBooking, booking.id).driver_allocation["containers"][str(container.id)]
        assert record["driver_id"] == 21
        assert record["vehicle_id"] == 34
        assert record["dispatched_at"]

    def test_requires_picked_up(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.EXPORT)
        container = builder.container(booking, status=ContainerStatus.ALLOCATED)

        with pytest.raises(StateConflict, match="picked up"):
            ContainerDispatchService(db_session).dispatch(ctx, container.id, driver_id=21, vehicle_id=34)

    def test_requires_driver_and_vehicle(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.EXPORT)
        container = builder.container(booking, status=ContainerStatus.PICKED_UP)

        with pytest.raises(ValidationError):
            ContainerDispatchService(db_session).dispatch(ctx, container.id, driver_id=21, vehicle_id=None)

    def test_import_containers_are_not_dispatched(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.IMPORT)
        container = builder.container(booking, status=ContainerStatus.PICKED_UP)

        with pytest.raises(ValidationError):
            ContainerDispatchService(db_session).dispatch(ctx, container.id, driver_id=21, vehicle_id=34)

    def test_other_tenant_container_not_found(self, db_session: Session, builder, other_ctx):
        booking = builder.booking(BookingKind.EXPORT)
        container = builder.container(booking, status=ContainerStatus.PICKED_UP)

        with pytest.raises(NotFoundError):
            ContainerDispatchService(db_session).dispatch(other_ctx, container.id, driver_id=21, vehicle_id=34)
