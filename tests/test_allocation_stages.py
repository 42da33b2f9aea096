"""
Tests for stock allocation stage vocabulary
"""

import pytest
from sqlalchemy.orm import Session

from freightops.core.exceptions import ValidationError
from freightops.models import BookingKind
from freightops.services.bookings import AllocationStage, AllocationStageService
from freightops.services.bookings.allocation_stages import initial_stage, validate_stage


class TestStageVocabulary:

    def test_directions_do_not_mix(self):
        assert validate_stage(BookingKind.IMPORT, "received") == "received"
        assert validate_stage(BookingKind.EXPORT, "picked") == "picked"
        with pytest.raises(ValidationError):
            validate_stage(BookingKind.IMPORT, "picked")
        with pytest.raises(ValidationError):
            validate_stage(BookingKind.EXPORT, "put_away")

    def test_initial_stages(self):
        assert initial_stage(BookingKind.IMPORT) == AllocationStage.EXPECTED
        assert initial_stage(BookingKind.EXPORT) == AllocationStage.ALLOCATED

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            validate_stage("domestic", "picked")


class TestAllocationStageService:

    def test_create_allocation_starts_at_initial_stage(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.IMPORT)
        container = builder.container(booking)

        allocation = AllocationStageService(db_session).create_allocation(ctx, booking, container.id)

        assert allocation.stage == AllocationStage.EXPECTED
        assert allocation.booking_kind == BookingKind.IMPORT

    def test_create_allocation_rejects_foreign_container(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.EXPORT)
        other = builder.booking(BookingKind.EXPORT)
        container = builder.container(other)

        with pytest.raises(ValidationError):
            AllocationStageService(db_session).create_allocation(ctx, booking, container.id)

    def test_set_stage_keeps_direction(self, db_session: Session, builder, ctx):
        booking = builder.booking(BookingKind.IMPORT)
        allocation = builder.stock_allocation(booking, builder.container(booking))
        service = AllocationStageService(db_session)

        assert service.set_stage(ctx, allocation.id, "put_away").stage == "put_away"
        with pytest.raises(ValidationError):
            service.set_stage(ctx, allocation.id, "dispatched")
