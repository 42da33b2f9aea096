"""
Booking Models
Import and export container bookings with their containers and stock allocations
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, JSON,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from freightops.core.database import Base


class BookingKind:
    """Booking collection tags"""
    IMPORT = "import"
    EXPORT = "export"

    ALL = (IMPORT, EXPORT)


class BookingStatus:
    """Booking status values"""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (DRAFT, CONFIRMED, IN_PROGRESS, COMPLETED, CANCELLED)


class ContainerStatus:
    """Container operational status values"""
    # Import flow
    EXPECTING = "expecting"
    RECEIVED = "received"
    PUT_AWAY = "put_away"
    # Export flow
    ALLOCATED = "allocated"
    PARTIALLY_PICKED = "partially_picked"
    PICKED_UP = "picked_up"
    DISPATCHED = "dispatched"


class BookingMixin:
    """Columns shared by both booking collections"""

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True, doc="Owning tenant")
    status = Column(String(20), nullable=False, default=BookingStatus.DRAFT)

    # Step 1 - basic info
    customer_reference = Column(String(50))
    booking_reference = Column(String(50))
    charge_to_id = Column(Integer, doc="Party charged for the booking")

    # Step 2 - vessel
    vessel_id = Column(Integer)
    eta = Column(DateTime(timezone=True))

    # Step 3 - locations and containers
    from_id = Column(Integer, doc="Origin")
    to_id = Column(Integer, doc="Destination")
    container_size_ids = Column(JSON, doc="Container size ids")
    container_quantities = Column(JSON, doc="Container size id -> quantity")

    # Step 4 - routing legs
    empty_routing = Column(JSON, doc="shipping_line_id, pickup_location_id, dropoff_location_id")
    full_routing = Column(JSON, doc="pickup_location_id, dropoff_location_id")

    driver_allocation = Column(JSON, doc="Dispatch details keyed by container id")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())


class ImportContainerBooking(BookingMixin, Base):
    """Import booking - inbound containers received into the warehouse"""
    __tablename__ = "import_container_bookings"

    kind = BookingKind.IMPORT
    consignee_id = Column(Integer, doc="Receiving party")


class ExportContainerBooking(BookingMixin, Base):
    """Export booking - outbound containers loaded from allocated stock"""
    __tablename__ = "export_container_bookings"

    kind = BookingKind.EXPORT
    consignor_id = Column(Integer, doc="Shipping party")


BOOKING_MODELS = {
    BookingKind.IMPORT: ImportContainerBooking,
    BookingKind.EXPORT: ExportContainerBooking,
}


class ContainerDetail(Base):
    """Physical container owned by an import or export booking"""
    __tablename__ = "container_details"
    __table_args__ = (
        Index('ix_container_details_owner', 'tenant_id', 'booking_kind', 'booking_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    booking_kind = Column(String(10), nullable=False, doc="Owning booking collection")
    booking_id = Column(Integer, nullable=False, doc="Owning booking id")

    container_number = Column(String(20))
    size_class = Column(String(10))
    gross_weight_kg = Column(Numeric(12, 3))
    tare_weight_kg = Column(Numeric(12, 3))
    cubic_capacity_m3 = Column(Numeric(10, 3))
    status = Column(String(20))

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    stock_allocations = relationship("StockAllocation", back_populates="container_detail")


class StockAllocation(Base):
    """Binding of one container to the product lines loaded into or out of it"""
    __tablename__ = "stock_allocations"
    __table_args__ = (
        Index('ix_stock_allocations_owner', 'tenant_id', 'booking_kind', 'booking_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    booking_kind = Column(String(10), nullable=False, doc="Owning booking collection")
    booking_id = Column(Integer, nullable=False, doc="Owning booking id")
    container_detail_id = Column(Integer, ForeignKey("container_details.id"), nullable=False)
    stage = Column(String(20), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    container_detail = relationship("ContainerDetail", back_populates="stock_allocations")
    product_lines = relationship("DemandLine", back_populates="stock_allocation", order_by="DemandLine.id")
