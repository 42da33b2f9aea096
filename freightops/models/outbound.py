"""
Outbound Models
Outbound jobs, their demand lines and pickup records
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, JSON,
    ForeignKey, CheckConstraint, Index, event
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from freightops.core.database import Base
from freightops.core.exceptions import StateConflict


class JobStatus:
    """Outbound job status values"""
    DRAFT = "draft"
    PARTIALLY_ALLOCATED = "partially_allocated"
    ALLOCATED = "allocated"
    PARTIALLY_PICKED = "partially_picked"
    PICKED = "picked"
    CANCELLED = "cancelled"


class OutboundJob(Base):
    """Outbound job - a customer shipment made up of demand lines"""
    __tablename__ = "outbound_jobs"
    __table_args__ = (
        Index('ix_outbound_jobs_tenant_code', 'tenant_id', 'job_code'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    job_code = Column(String(30), nullable=False, doc="Job reference")
    customer_reference = Column(String(50))
    warehouse_id = Column(Integer, doc="Warehouse the job ships from")
    status = Column(String(30), nullable=False, default=JobStatus.DRAFT)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp())

    lines = relationship("DemandLine", back_populates="outbound_job", order_by="DemandLine.id")


class DemandLine(Base):
    """
    Demand Line - one SKU and batch requirement

    Owned by exactly one outbound job or one container stock allocation.
    The allocated_* columns are derived from the units reserved against
    the line and are only written by the allocation service.
    """
    __tablename__ = "demand_lines"
    __table_args__ = (
        CheckConstraint(
            "(outbound_job_id IS NULL) <> (stock_allocation_id IS NULL)",
            name='single_owner'
        ),
        CheckConstraint('required_qty >= 0', name='required_qty_non_negative'),
        Index('ix_demand_lines_sku_batch', 'tenant_id', 'sku_id', 'batch_number'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    outbound_job_id = Column(Integer, ForeignKey("outbound_jobs.id"))
    stock_allocation_id = Column(Integer, ForeignKey("stock_allocations.id"))

    sku_id = Column(Integer, ForeignKey("skus.id"), nullable=False)
    batch_number = Column(String(50))

    # Requirement
    required_qty = Column(Integer, nullable=False, default=0)
    required_weight = Column(Numeric(14, 3), default=0)

    # Derived from reserved units
    allocated_qty = Column(Integer, nullable=False, default=0)
    allocated_weight = Column(Numeric(14, 3), nullable=False, default=0)
    allocated_volume = Column(Numeric(14, 6), nullable=False, default=0, doc="Cubic metres per handling unit")
    allocated_pallet_qty = Column(Numeric(10, 2), nullable=False, default=0)
    location = Column(String(50), doc="Location of the first reserved unit")

    # Pickup progress
    picked_qty = Column(Integer, nullable=False, default=0)
    picked_weight = Column(Numeric(14, 3), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())

    sku = relationship("Sku")
    outbound_job = relationship("OutboundJob", back_populates="lines")
    stock_allocation = relationship("StockAllocation", back_populates="product_lines")


class PickupRecord(Base):
    """Immutable record of one pickup action against a demand line"""
    __tablename__ = "pickup_records"
    __table_args__ = (
        Index('ix_pickup_records_line', 'tenant_id', 'demand_line_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    demand_line_id = Column(Integer, ForeignKey("demand_lines.id"), nullable=False)
    outbound_job_id = Column(Integer, ForeignKey("outbound_jobs.id"))
    stock_allocation_id = Column(Integer, ForeignKey("stock_allocations.id"))
    container_detail_id = Column(Integer, ForeignKey("container_details.id"))

    picked_units = Column(JSON, nullable=False, doc="[{lpn_id, lpn_number, quantity, location}]")
    picked_qty = Column(Integer, nullable=False)
    buffer_qty = Column(Integer, nullable=False, default=0)
    final_qty = Column(Integer, nullable=False)
    pickup_status = Column(String(20), nullable=False, default="completed")
    picked_by = Column(String(64), nullable=False)
    notes = Column(Text)

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


@event.listens_for(PickupRecord, "before_update")
def _reject_pickup_record_update(mapper, connection, target):
    raise StateConflict(f"Pickup record {target.id} is immutable")
