"""Supplier and inventory item models."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from supplier_catalog.db.base import Base, TimestampMixin


class Supplier(Base, TimestampMixin):
    """Supplier of inventory items."""

    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    purchase_orders: Mapped[list["PurchaseOrder"]] = relationship(
        "PurchaseOrder", back_populates="supplier"
    )
    catalog_entries: Mapped[list["SupplierProduct"]] = relationship(
        "SupplierProduct", back_populates="supplier", passive_deletes=True
    )


class InventoryItem(Base, TimestampMixin):
    """Stock-keeping item that purchase orders refer to."""

    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, unique=True)

    catalog_entries: Mapped[list["SupplierProduct"]] = relationship(
        "SupplierProduct", back_populates="inventory_item", passive_deletes=True
    )


# Forward references
from supplier_catalog.models.order import PurchaseOrder
from supplier_catalog.models.supplier_product import SupplierProduct
