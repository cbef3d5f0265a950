"""Supplier product catalog schemas."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from supplier_catalog.models.order import POStatus
from supplier_catalog.models.supplier_product import CertificateType


class SupplierProductResponse(BaseModel):
    """Catalog entry as returned to the UI."""

    id: int
    supplier_id: int
    inventory_item_id: int
    product_name: str
    unit: Optional[str] = None
    supplier_product_code: str = ""

    last_price: Decimal
    average_price: Decimal
    min_price: Decimal
    max_price: Decimal
    currency: str
    total_ordered_quantity: Decimal
    order_count: int

    last_order_date: Optional[datetime] = None
    last_purchase_order_id: Optional[int] = None
    last_purchase_order_number: str = ""
    first_seen_at: datetime
    updated_at: datetime

    certificate_unit: Optional[str] = None
    certificate_number: Optional[str] = None
    certificate_type: Optional[CertificateType] = None
    certificate_valid_from: Optional[date] = None
    certificate_valid_to: Optional[date] = None
    certificate_file_name: Optional[str] = None
    certificate_content_type: Optional[str] = None
    certificate_storage_path: Optional[str] = None
    certificate_file_url: Optional[str] = None
    certificate_uploaded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CertificateUpdate(BaseModel):
    """Partial update of an entry's certificate information.

    Only the fields present in the request body are written; send ``null`` to
    clear a field.
    """

    certificate_unit: Optional[str] = Field(default=None, max_length=255)
    certificate_number: Optional[str] = Field(default=None, max_length=100)
    certificate_type: Optional[CertificateType] = None
    certificate_valid_from: Optional[date] = None
    certificate_valid_to: Optional[date] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def check_validity_range(self) -> "CertificateUpdate":
        if (
            self.certificate_valid_from
            and self.certificate_valid_to
            and self.certificate_valid_to < self.certificate_valid_from
        ):
            raise ValueError("certificate_valid_to must not be earlier than certificate_valid_from")
        return self


class PurchaseOrderLinePayload(BaseModel):
    """Line item of a purchase order pushed from the order screen.

    Accepts both snake_case and the camelCase keys the web client sends,
    including the legacy ``itemId`` key. Item id, price and quantity are taken
    as sent; an unusable value skips that line only, so they are parsed by the
    aggregator rather than rejected here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    inventory_item_id: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("inventory_item_id", "inventoryItemId", "itemId", "item_id"),
    )
    name: Optional[str] = None
    unit: Optional[str] = None
    unit_price: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("unit_price", "unitPrice")
    )
    quantity: Optional[Any] = None
    currency: Optional[str] = None
    supplier_product_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("supplier_product_code", "supplierProductCode")
    )


class PurchaseOrderPayload(BaseModel):
    """Purchase order aggregate used for an incremental catalog update."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int] = None
    number: Optional[str] = None
    supplier_id: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("supplier_id", "supplierId")
    )
    order_date: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("order_date", "orderDate")
    )
    currency: Optional[str] = None
    status: Optional[POStatus] = None
    items: List[PurchaseOrderLinePayload] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


class CatalogItemError(BaseModel):
    """One line item that could not be written to the catalog."""

    item_id: Optional[Any] = None
    item_name: Optional[str] = None
    purchase_order_id: Optional[int] = None
    error: str


class CatalogUpdateResult(BaseModel):
    """Outcome of an incremental update from one purchase order."""

    success: bool = True
    updated: int = 0
    errors: List[CatalogItemError] = Field(default_factory=list)
    message: str = ""


class RebuildResult(BaseModel):
    """Outcome of a catalog rebuild."""

    success: bool = True
    scope: Literal["supplier", "all"]
    supplier_id: Optional[int] = None
    updated: int = 0
    orders_processed: int = 0
    suppliers_processed: Optional[int] = None
    certificates_restored: int = 0
    error_count: int = 0
    errors: List[CatalogItemError] = Field(default_factory=list)
    message: str = ""


class ExpiringCertificateResponse(BaseModel):
    """Catalog entry whose certificate runs out soon."""

    id: int
    supplier_id: int
    inventory_item_id: int
    product_name: str
    certificate_type: Optional[CertificateType] = None
    certificate_number: Optional[str] = None
    certificate_valid_to: date
    days_until_expiry: int
