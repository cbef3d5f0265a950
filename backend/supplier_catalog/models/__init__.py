"""SQLAlchemy models."""

from supplier_catalog.models.supplier import Supplier, InventoryItem
from supplier_catalog.models.order import PurchaseOrder, PurchaseOrderLine, POStatus
from supplier_catalog.models.supplier_product import (
    SupplierProduct,
    CertificateType,
    CERTIFICATE_FIELDS,
    CERTIFICATE_FILE_FIELDS,
    CERTIFICATE_INFO_FIELDS,
)

__all__ = [
    "Supplier",
    "InventoryItem",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "POStatus",
    "SupplierProduct",
    "CertificateType",
    "CERTIFICATE_FIELDS",
    "CERTIFICATE_FILE_FIELDS",
    "CERTIFICATE_INFO_FIELDS",
]
