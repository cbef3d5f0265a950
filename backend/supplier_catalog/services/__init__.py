# Services module

from supplier_catalog.services.certificate_storage import (
    CertificateStorage,
    CertificateStorageError,
    get_certificate_storage,
)
from supplier_catalog.services.supplier_product_repository import (
    PurchaseOrderRepository,
    SupplierProductRepository,
)
from supplier_catalog.services.supplier_product_service import (
    CatalogEntryNotFoundError,
    CatalogError,
    CatalogValidationError,
    PurchaseOrderNotFoundError,
    rebuild_all_supplier_catalogs,
    rebuild_supplier_catalog,
    update_catalog_from_purchase_order,
    upsert_supplier_product,
)

__all__ = [
    "CertificateStorage",
    "CertificateStorageError",
    "get_certificate_storage",
    "PurchaseOrderRepository",
    "SupplierProductRepository",
    "CatalogEntryNotFoundError",
    "CatalogError",
    "CatalogValidationError",
    "PurchaseOrderNotFoundError",
    "rebuild_all_supplier_catalogs",
    "rebuild_supplier_catalog",
    "update_catalog_from_purchase_order",
    "upsert_supplier_product",
]
