"""
Audit Trail Model
Audit logging of allocation, pickup and booking status changes
"""
from sqlalchemy import Column, String, Integer, JSON, BigInteger, DateTime, Index
from sqlalchemy.sql import func

from freightops.core.database import Base


class AuditLog(Base):
    """Audit trail for engine state changes"""
    __tablename__ = "audit_log"
    __table_args__ = (
        Index('ix_audit_log_tenant_table_key', 'tenant_id', 'audit_table', 'audit_key'),
    )

    audit_id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, doc="Owning tenant")
    audit_timestamp = Column(DateTime(timezone=True), server_default=func.current_timestamp(), index=True)
    audit_user = Column(String(64), nullable=False, index=True)
    audit_action = Column(String(40), nullable=False, index=True)  # ALLOCATE, RELEASE, PICKUP, TRANSITION, etc
    audit_table = Column(String(50))
    audit_key = Column(String(100))
    audit_old_values = Column(JSON)
    audit_new_values = Column(JSON)
    audit_module = Column(String(20))  # STOCK, BOOKING
