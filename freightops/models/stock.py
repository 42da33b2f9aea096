"""
Stock Models
SKU master data and LPN-level stock units
"""
from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text,
    ForeignKey, CheckConstraint, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from freightops.core.database import Base


class AllocationStatus:
    """Allocation status values of a stock unit"""
    AVAILABLE = "available"
    ALLOCATED = "allocated"
    PICKED = "picked"

    ALL = (AVAILABLE, ALLOCATED, PICKED)
    HELD = (ALLOCATED, PICKED)


class Sku(Base):
    """Stock keeping unit with the physical measures used for derivation"""
    __tablename__ = "skus"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'sku_code', name='uq_skus_tenant_code'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True, doc="Owning tenant")
    sku_code = Column(String(50), nullable=False, doc="SKU code")
    description = Column(String(200), doc="SKU description")

    # Physical measures per handling unit
    weight_per_unit_kg = Column(Numeric(12, 3), default=0, doc="Weight per handling unit in kg")
    length_mm = Column(Integer, default=0, doc="Length in mm")
    width_mm = Column(Integer, default=0, doc="Width in mm")
    height_mm = Column(Integer, default=0, doc="Height in mm")
    units_per_pallet = Column(Integer, default=1, doc="Handling units per storage unit")

    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp())


class StockUnit(Base):
    """
    Stock Unit - one license-plate-numbered (LPN) unit of put-away stock

    A unit is never deleted by the engine. It moves available -> allocated
    -> picked and back to available when its demand is released.
    """
    __tablename__ = "stock_units"
    __table_args__ = (
        UniqueConstraint('tenant_id', 'lpn_number', name='uq_stock_units_tenant_lpn'),
        CheckConstraint('quantity >= 0', name='quantity_non_negative'),
        CheckConstraint(
            "allocation_status IN ('available', 'allocated', 'picked')",
            name='allocation_status_valid'
        ),
        CheckConstraint(
            "(allocation_status = 'available') = (demand_line_id IS NULL)",
            name='demand_ref_matches_status'
        ),
        Index('ix_stock_units_fifo', 'tenant_id', 'sku_id', 'batch_number', 'allocation_status', 'put_away_at'),
        Index('ix_stock_units_demand_line', 'tenant_id', 'demand_line_id'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    lpn_number = Column(String(50), nullable=False, doc="License plate number")

    sku_id = Column(Integer, ForeignKey("skus.id"), nullable=False)
    batch_number = Column(String(50), doc="Batch identifier")
    warehouse_id = Column(Integer, doc="Warehouse holding the unit")
    quantity = Column(Integer, nullable=False, default=0, doc="Handling units on this LPN")
    location = Column(String(50), doc="Storage location")

    allocation_status = Column(String(20), nullable=False, default=AllocationStatus.AVAILABLE)

    # Demand reference, set only while the unit is held
    demand_job_id = Column(Integer, ForeignKey("outbound_jobs.id"), doc="Reserving outbound job")
    demand_allocation_id = Column(Integer, ForeignKey("stock_allocations.id"), doc="Reserving stock allocation")
    demand_line_id = Column(Integer, ForeignKey("demand_lines.id"), doc="Reserving demand line")
    reserved_at = Column(DateTime(timezone=True))
    reserved_by = Column(String(64))

    put_away_at = Column(DateTime(timezone=True), nullable=False, server_default=func.current_timestamp(),
                         doc="FIFO eligibility timestamp")
    notes = Column(Text)

    sku = relationship("Sku")

    def __repr__(self):
        return f"<StockUnit {self.lpn_number} {self.allocation_status}>"
