"""Supplier product catalog model.

One row per (supplier, inventory item) pair. Price and quantity statistics are
derived from purchase order history and can be regenerated at any time; the
certificate columns are maintained by hand and must survive a regeneration.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supplier_catalog.db.base import Base


class CertificateType(str, Enum):
    """Kind of quality certificate a supplier holds for a product."""

    ECO = "eco"
    HALAL = "halal"
    KOSHER = "kosher"
    VEGAN = "vegan"
    VEGE = "vege"
    GMP = "gmp"
    ISO = "iso"
    OTHER = "other"


CERTIFICATE_INFO_FIELDS = (
    "certificate_unit",
    "certificate_number",
    "certificate_type",
    "certificate_valid_from",
    "certificate_valid_to",
)

CERTIFICATE_FILE_FIELDS = (
    "certificate_file_name",
    "certificate_content_type",
    "certificate_storage_path",
    "certificate_file_url",
    "certificate_uploaded_at",
)

CERTIFICATE_FIELDS = CERTIFICATE_INFO_FIELDS + CERTIFICATE_FILE_FIELDS


class SupplierProduct(Base):
    """Rolling price/quantity statistics for one item bought from one supplier."""

    __tablename__ = "supplier_products"
    __table_args__ = (
        UniqueConstraint("supplier_id", "inventory_item_id", name="uq_supplier_product_pair"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    supplier_id: Mapped[int] = mapped_column(
        ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inventory_item_id: Mapped[int] = mapped_column(
        ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    supplier_product_code: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    # Price statistics
    last_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    average_price: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    min_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    max_price: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Volume statistics
    total_ordered_quantity: Mapped[Decimal] = mapped_column(
        Numeric(18, 3), nullable=False, default=Decimal("0")
    )
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Provenance
    last_order_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_purchase_order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_purchase_order_number: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    first_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Certificate
    certificate_unit: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    certificate_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    certificate_type: Mapped[Optional[CertificateType]] = mapped_column(
        SQLEnum(CertificateType, values_callable=lambda e: [m.value for m in e]),
        nullable=True,
    )
    certificate_valid_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    certificate_valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    certificate_file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    certificate_content_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    certificate_storage_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    certificate_file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    certificate_uploaded_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    supplier: Mapped["Supplier"] = relationship("Supplier", back_populates="catalog_entries")
    inventory_item: Mapped["InventoryItem"] = relationship(
        "InventoryItem", back_populates="catalog_entries"
    )

    @property
    def business_key(self) -> tuple[int, int]:
        return (self.supplier_id, self.inventory_item_id)

    def certificate_snapshot(self) -> Dict[str, Any]:
        """Copy of every certificate column."""
        return {field: getattr(self, field) for field in CERTIFICATE_FIELDS}

    @property
    def has_certificate_data(self) -> bool:
        """True when any certificate column carries a non-empty value."""
        for field in CERTIFICATE_FIELDS:
            value = getattr(self, field)
            if value is None:
                continue
            if isinstance(value, str) and not value.strip():
                continue
            return True
        return False

    def __repr__(self) -> str:
        return (
            f"<SupplierProduct id={self.id} supplier={self.supplier_id} "
            f"item={self.inventory_item_id} orders={self.order_count}>"
        )


# Forward references
from supplier_catalog.models.supplier import Supplier, InventoryItem
