"""Pytest configuration and fixtures."""

import os

# Point the application at throwaway resources before it is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from supplier_catalog.core.cache import CatalogCache
from supplier_catalog.db.base import Base
from supplier_catalog.db.session import configure_sqlite_engine, get_db
from supplier_catalog.main import app
# Import all models to ensure they're registered with Base.metadata
from supplier_catalog.models import *
from supplier_catalog.models.order import POStatus, PurchaseOrder, PurchaseOrderLine
from supplier_catalog.models.supplier import InventoryItem, Supplier
from supplier_catalog.services.certificate_storage import CertificateStorage

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_engine(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def storage(tmp_path) -> CertificateStorage:
    """Certificate storage writing to a temporary directory."""
    return CertificateStorage(local_dir=str(tmp_path / "certificates"), connect=False)


@pytest.fixture
def cache() -> CatalogCache:
    return CatalogCache(ttl_seconds=300, max_entries=1000)


@pytest.fixture(scope="function")
def client(db_session: Session, storage: CertificateStorage, cache: CatalogCache) -> Generator[TestClient, None, None]:
    """Create a test client with database, storage and cache overrides."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.state.catalog_cache = cache
    # Disable rate limiters during tests to avoid flaky failures
    from supplier_catalog.core.rate_limit import limiter as global_limiter
    global_limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        # Startup created the configured storage; swap in the temporary one
        app.state.certificate_storage = storage
        yield test_client
    global_limiter.enabled = True
    app.dependency_overrides.clear()


@pytest.fixture
def test_supplier(db_session: Session) -> Supplier:
    """Create a test supplier."""
    supplier = Supplier(name="Hurtownia Smaku", contact_email="orders@smak.example.com")
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture
def other_supplier(db_session: Session) -> Supplier:
    """Create a second supplier."""
    supplier = Supplier(name="Eko Farm", contact_email="sales@ekofarm.example.com")
    db_session.add(supplier)
    db_session.commit()
    db_session.refresh(supplier)
    return supplier


@pytest.fixture
def flour(db_session: Session) -> InventoryItem:
    item = InventoryItem(name="Wheat flour", unit="kg", sku="FLR-001")
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def butter(db_session: Session) -> InventoryItem:
    item = InventoryItem(name="Butter 82%", unit="kg", sku="BTR-001")
    db_session.add(item)
    db_session.commit()
    db_session.refresh(item)
    return item


@pytest.fixture
def make_order(db_session: Session):
    """
    Factory storing a purchase order with its lines.

    ``lines`` is a list of (item_or_id, unit_price, quantity) tuples or of
    keyword dicts for PurchaseOrderLine. Orders get strictly increasing
    ``created_at`` values so the replay order is deterministic.
    """
    base_time = datetime(2026, 1, 1, 8, 0, tzinfo=timezone.utc)
    counter = {"n": 0}

    def _make(supplier, lines, status=POStatus.SENT, number=None, currency="PLN", order_date=None):
        counter["n"] += 1
        n = counter["n"]
        created = base_time + timedelta(minutes=n)
        order = PurchaseOrder(
            number=number or f"PO/2026/{n:04d}",
            supplier_id=supplier.id if isinstance(supplier, Supplier) else supplier,
            status=status,
            order_date=order_date or created,
            currency=currency,
            created_at=created,
        )
        for line in lines:
            if isinstance(line, dict):
                order.lines.append(PurchaseOrderLine(**line))
                continue
            item, price, qty = line
            item_id = item.id if isinstance(item, InventoryItem) else item
            order.lines.append(
                PurchaseOrderLine(
                    inventory_item_id=item_id,
                    name=item.name if isinstance(item, InventoryItem) else None,
                    unit=item.unit if isinstance(item, InventoryItem) else None,
                    unit_price=None if price is None else Decimal(str(price)),
                    quantity=None if qty is None else Decimal(str(qty)),
                )
            )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make


@pytest.fixture
def pdf_bytes() -> bytes:
    return PDF_BYTES
