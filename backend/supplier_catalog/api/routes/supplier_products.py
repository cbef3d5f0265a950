"""Supplier product catalog routes.

Read access to the per-supplier price catalog, certificate maintenance, and
the incremental / full rebuild triggers used by the purchase order screens.
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError

from supplier_catalog.core.cache import CatalogCache, get_catalog_cache
from supplier_catalog.core.config import settings
from supplier_catalog.core.file_guardrails import FileRejectedError
from supplier_catalog.core.rate_limit import limiter
from supplier_catalog.db.session import DbSession
from supplier_catalog.schemas.supplier_product import (
    CatalogUpdateResult,
    CertificateUpdate,
    ExpiringCertificateResponse,
    PurchaseOrderPayload,
    RebuildResult,
    SupplierProductResponse,
)
from supplier_catalog.services import supplier_product_service as catalog
from supplier_catalog.services.certificate_storage import (
    CertificateStorage,
    CertificateStorageError,
    get_certificate_storage,
)

_catalog_logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    """Translate a service-layer error into the matching HTTP error."""
    if isinstance(e, (catalog.CatalogEntryNotFoundError, catalog.PurchaseOrderNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, FileRejectedError):
        return HTTPException(status_code=e.status_code, detail=e.message)
    if isinstance(e, catalog.CatalogValidationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, CertificateStorageError):
        return HTTPException(status_code=502, detail="Certificate storage is unavailable")
    return HTTPException(status_code=500, detail="Supplier catalog operation failed")


def _serialize(entries) -> list:
    return [SupplierProductResponse.model_validate(e).model_dump(mode="json") for e in entries]


# ==================== READS ====================

@router.get("/supplier/{supplier_id}", response_model=List[SupplierProductResponse])
@limiter.limit("120/minute")
def list_supplier_products(
    request: Request,
    supplier_id: int,
    db: DbSession,
    search: Optional[str] = Query(None, max_length=100),
    order_by: str = Query("product_name"),
    direction: Literal["asc", "desc"] = Query("asc"),
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Catalog of one supplier, optionally filtered by name/code and sorted."""
    key = cache.supplier_key(supplier_id, (search or "").strip().lower(), order_by, direction)
    cached = cache.get(key)
    if cached is not None:
        return cached
    try:
        entries = catalog.get_supplier_products(
            db, supplier_id, search=search, order_by=order_by, direction=direction
        )
    except catalog.CatalogError as e:
        raise _http_error(e)
    result = _serialize(entries)
    cache.set(key, result)
    return result


@router.get("/item/{inventory_item_id}", response_model=List[SupplierProductResponse])
@limiter.limit("120/minute")
def list_product_suppliers(
    request: Request,
    inventory_item_id: int,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Every supplier of one inventory item, cheapest last price first."""
    key = cache.item_key(inventory_item_id)
    cached = cache.get(key)
    if cached is not None:
        return cached
    try:
        entries = catalog.get_product_suppliers(db, inventory_item_id)
    except catalog.CatalogError as e:
        raise _http_error(e)
    result = _serialize(entries)
    cache.set(key, result)
    return result


@router.get("/search", response_model=List[SupplierProductResponse])
@limiter.limit("120/minute")
def search_supplier_products(
    request: Request,
    db: DbSession,
    prefix: str = Query(..., min_length=1, max_length=100),
    field: Literal["product_name", "supplier_product_code"] = Query("product_name"),
    supplier_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
):
    """Type-ahead search by product name or supplier code prefix."""
    try:
        return catalog.search_catalog(db, prefix, supplier_id=supplier_id, field=field, limit=limit)
    except catalog.CatalogError as e:
        raise _http_error(e)


@router.get("/by-ids", response_model=List[SupplierProductResponse])
@limiter.limit("120/minute")
def get_supplier_products_by_ids(
    request: Request,
    db: DbSession,
    ids: List[int] = Query(...),
):
    """Batch lookup of catalog entries by id."""
    return catalog.get_supplier_products_by_ids(db, ids)


@router.get("/certificates/expiring", response_model=List[ExpiringCertificateResponse])
@limiter.limit("60/minute")
def list_expiring_certificates(
    request: Request,
    db: DbSession,
    days: int = Query(30, ge=0, le=3650),
):
    """Certificates expiring within the given number of days, expired ones included."""
    return catalog.get_expiring_certificates(db, days=days)


# ==================== CERTIFICATES ====================

@router.patch("/{entry_id}/certificate", response_model=SupplierProductResponse)
@limiter.limit("30/minute")
def update_certificate(
    request: Request,
    entry_id: int,
    data: CertificateUpdate,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Update the certificate information of one catalog entry."""
    try:
        return catalog.update_product_certificate(db, entry_id, data, cache=cache)
    except catalog.CatalogError as e:
        raise _http_error(e)


@router.post(
    "/supplier/{supplier_id}/{entry_id}/certificate/file",
    response_model=SupplierProductResponse,
)
@limiter.limit("20/minute")
async def upload_certificate(
    request: Request,
    supplier_id: int,
    entry_id: int,
    db: DbSession,
    file: UploadFile = File(..., description="Certificate PDF"),
    storage: CertificateStorage = Depends(get_certificate_storage),
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Attach a certificate PDF (max 10 MB by default) to a catalog entry."""
    # One byte over the limit is enough to reject an oversized upload
    data = await file.read(settings.max_certificate_size_bytes + 1)
    try:
        return catalog.upload_certificate_file(
            db,
            storage,
            supplier_id,
            entry_id,
            file.filename,
            file.content_type,
            data,
            cache=cache,
        )
    except (catalog.CatalogError, FileRejectedError, CertificateStorageError) as e:
        if isinstance(e, CertificateStorageError):
            _catalog_logger.error(f"Certificate upload failed for entry {entry_id}: {e}")
        raise _http_error(e)


@router.get("/{entry_id}/certificate/file")
@limiter.limit("60/minute")
def download_certificate(
    request: Request,
    entry_id: int,
    db: DbSession,
    storage: CertificateStorage = Depends(get_certificate_storage),
):
    """Stream the attached certificate PDF."""
    try:
        entry, data = catalog.get_certificate_file(db, storage, entry_id)
    except catalog.CatalogError as e:
        raise _http_error(e)
    filename = entry.certificate_file_name or "certificate.pdf"
    return Response(
        content=data,
        media_type=entry.certificate_content_type or "application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )


@router.delete("/{entry_id}/certificate/file", response_model=SupplierProductResponse)
@limiter.limit("30/minute")
def delete_certificate(
    request: Request,
    entry_id: int,
    db: DbSession,
    storage: CertificateStorage = Depends(get_certificate_storage),
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Remove the certificate attachment of a catalog entry."""
    try:
        return catalog.delete_certificate_file(db, storage, entry_id, cache=cache)
    except catalog.CatalogError as e:
        raise _http_error(e)


# ==================== AGGREGATION ====================

@router.post("/from-purchase-order", response_model=CatalogUpdateResult)
@limiter.limit("60/minute")
def update_from_purchase_order(
    request: Request,
    data: PurchaseOrderPayload,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Fold the lines of a saved purchase order into its supplier's catalog."""
    try:
        return catalog.update_catalog_from_purchase_order(db, data, cache=cache)
    except catalog.CatalogError as e:
        raise _http_error(e)
    except SQLAlchemyError as e:
        db.rollback()
        _catalog_logger.error(f"Catalog update from purchase order failed: {e}")
        raise _http_error(e)


@router.post("/from-purchase-order/{po_id}", response_model=CatalogUpdateResult)
@limiter.limit("60/minute")
def update_from_stored_purchase_order(
    request: Request,
    po_id: int,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Fold a purchase order that is already stored into its supplier's catalog."""
    try:
        return catalog.update_catalog_from_stored_order(db, po_id, cache=cache)
    except catalog.CatalogError as e:
        raise _http_error(e)
    except SQLAlchemyError as e:
        db.rollback()
        _catalog_logger.error(f"Catalog update from purchase order {po_id} failed: {e}")
        raise _http_error(e)


@router.post("/supplier/{supplier_id}/rebuild", response_model=RebuildResult)
@limiter.limit("5/minute")
def rebuild_supplier(
    request: Request,
    supplier_id: int,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Regenerate one supplier's catalog from its order history."""
    try:
        return catalog.rebuild_supplier_catalog(db, supplier_id, cache=cache)
    except catalog.CatalogError as e:
        raise _http_error(e)
    except SQLAlchemyError as e:
        db.rollback()
        _catalog_logger.error(f"Catalog rebuild for supplier {supplier_id} failed: {e}")
        raise _http_error(e)


@router.post("/rebuild", response_model=RebuildResult)
@limiter.limit("2/minute")
def rebuild_all(
    request: Request,
    db: DbSession,
    cache: CatalogCache = Depends(get_catalog_cache),
):
    """Regenerate every supplier catalog from the full order history."""
    try:
        return catalog.rebuild_all_supplier_catalogs(db, cache=cache)
    except SQLAlchemyError as e:
        db.rollback()
        _catalog_logger.error(f"Full catalog rebuild failed: {e}")
        raise _http_error(e)
