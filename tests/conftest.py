"""
Test Configuration and Fixtures
Shared testing infrastructure for the allocation engine
"""

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Generator, Optional

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from freightops.main import app
from freightops.core.context import RequestContext
from freightops.core.database import get_db, Base
from freightops.models import (
    AllocationStatus, BookingKind, BookingStatus, ContainerDetail, DemandLine,
    ExportContainerBooking, ImportContainerBooking, OutboundJob, Sku, StockAllocation, StockUnit,
)

TENANT_ID = 1
OTHER_TENANT_ID = 2

# In-memory SQLite shared across threads for the TestClient
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh database session for each test"""
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database dependency override"""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext(tenant_id=TENANT_ID, actor_id="picker-1")


@pytest.fixture
def other_ctx() -> RequestContext:
    return RequestContext(tenant_id=OTHER_TENANT_ID, actor_id="intruder")


@pytest.fixture
def api_headers() -> Dict[str, str]:
    return {"X-Tenant-Id": str(TENANT_ID), "X-User-Id": "picker-1"}


class DataBuilder:
    """Creates engine rows with sensible defaults"""

    def __init__(self, db: Session):
        self.db = db
        self._clock = datetime(2024, 1, 1, 8, 0, 0)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def sku(self, code: str = "SKU-1", tenant_id: int = TENANT_ID, **fields) -> Sku:
        values = dict(
            weight_per_unit_kg=Decimal("2.500"),
            length_mm=1200,
            width_mm=1000,
            height_mm=500,
            units_per_pallet=4,
        )
        values.update(fields)
        return self._save(Sku(tenant_id=tenant_id, sku_code=code, **values))

    def unit(
        self,
        sku: Sku,
        lpn: str,
        quantity: int = 10,
        batch: Optional[str] = "B1",
        location: Optional[str] = None,
        tenant_id: int = TENANT_ID,
        warehouse_id: Optional[int] = 1,
        put_away_at: Optional[datetime] = None,
    ) -> StockUnit:
        """Put away a unit; each call is one minute younger than the last"""
        if put_away_at is None:
            self._clock += timedelta(minutes=1)
            put_away_at = self._clock
        return self._save(StockUnit(
            tenant_id=tenant_id,
            lpn_number=lpn,
            sku_id=sku.id,
            batch_number=batch,
            warehouse_id=warehouse_id,
            quantity=quantity,
            location=location or f"LOC-{lpn}",
            allocation_status=AllocationStatus.AVAILABLE,
            put_away_at=put_away_at,
        ))

    def job(self, code: str = "JOB-1", tenant_id: int = TENANT_ID, warehouse_id: Optional[int] = 1) -> OutboundJob:
        return self._save(OutboundJob(tenant_id=tenant_id, job_code=code, warehouse_id=warehouse_id))

    def line(
        self,
        sku: Sku,
        required_qty: int,
        job: Optional[OutboundJob] = None,
        allocation: Optional[StockAllocation] = None,
        batch: Optional[str] = "B1",
        tenant_id: int = TENANT_ID,
    ) -> DemandLine:
        return self._save(DemandLine(
            tenant_id=tenant_id,
            outbound_job_id=job.id if job else None,
            stock_allocation_id=allocation.id if allocation else None,
            sku_id=sku.id,
            batch_number=batch,
            required_qty=required_qty,
        ))

    def booking(self, kind: str = BookingKind.EXPORT, tenant_id: int = TENANT_ID, complete: bool = True, **fields):
        """A booking with every step filled in unless complete=False"""
        model = ExportContainerBooking if kind == BookingKind.EXPORT else ImportContainerBooking
        values = dict(status=BookingStatus.DRAFT)
        if complete:
            values.update(
                customer_reference="CUST-REF",
                booking_reference="BK-001",
                charge_to_id=5,
                vessel_id=7,
                from_id=11,
                to_id=12,
                container_size_ids=[20],
                container_quantities={"20": 2},
                empty_routing={"shipping_line_id": 3, "pickup_location_id": 4, "dropoff_location_id": 5},
                full_routing={"pickup_location_id": 6, "dropoff_location_id": 8},
            )
            party = "consignor_id" if kind == BookingKind.EXPORT else "consignee_id"
            values[party] = 9
        values.update(fields)
        return self._save(model(tenant_id=tenant_id, **values))

    def container(self, booking, number: Optional[str] = "MSCU1234567", status: Optional[str] = None) -> ContainerDetail:
        return self._save(ContainerDetail(
            tenant_id=booking.tenant_id,
            booking_kind=booking.kind,
            booking_id=booking.id,
            container_number=number,
            size_class="20",
            status=status,
        ))

    def stock_allocation(self, booking, container: ContainerDetail, stage: Optional[str] = None) -> StockAllocation:
        if stage is None:
            stage = "allocated" if booking.kind == BookingKind.EXPORT else "expected"
        return self._save(StockAllocation(
            tenant_id=booking.tenant_id,
            booking_kind=booking.kind,
            booking_id=booking.id,
            container_detail_id=container.id,
            stage=stage,
        ))


@pytest.fixture
def builder(db_session: Session) -> DataBuilder:
    return DataBuilder(db_session)
