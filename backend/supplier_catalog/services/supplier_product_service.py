"""
Supplier Product Catalog Service

Maintains one catalog entry per (supplier, inventory item) pair with running
price and quantity statistics taken from purchase order history.

Two update modes:
- incremental: every line of a newly saved purchase order is folded into the
  existing statistics (``update_catalog_from_purchase_order``);
- rebuild: the entries of one supplier (or of the whole catalog) are deleted
  and regenerated from the full order history. Certificate data is not derived
  from orders, so it is copied aside before the delete and written back onto
  the recreated entries by (supplier_id, inventory_item_id).
"""
import logging
import os
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from supplier_catalog.core.cache import CatalogCache
from supplier_catalog.core.config import settings
from supplier_catalog.core.file_guardrails import sanitize_filename, validate_certificate_upload
from supplier_catalog.models.order import POStatus, PurchaseOrder, PurchaseOrderLine
from supplier_catalog.models.supplier_product import (
    CERTIFICATE_FILE_FIELDS,
    CERTIFICATE_INFO_FIELDS,
    CertificateType,
    SupplierProduct,
)
from supplier_catalog.schemas.supplier_product import (
    CatalogItemError,
    CatalogUpdateResult,
    CertificateUpdate,
    PurchaseOrderLinePayload,
    PurchaseOrderPayload,
    RebuildResult,
)
from supplier_catalog.services.certificate_storage import CertificateStorage
from supplier_catalog.services.supplier_product_repository import (
    PurchaseOrderRepository,
    SupplierProductRepository,
)

logger = logging.getLogger(__name__)

PRICE_QUANT = Decimal("0.0001")
AVERAGE_PRICE_QUANT = Decimal("0.000001")
QUANTITY_QUANT = Decimal("0.001")


class CatalogError(Exception):
    """Base class for catalog service errors."""


class CatalogValidationError(CatalogError):
    """Raised when a request cannot be applied to the catalog as given."""


class CatalogEntryNotFoundError(CatalogError):
    """Raised when a catalog entry does not exist (or not for that supplier)."""

    def __init__(self, entry_id: int, supplier_id: Optional[int] = None):
        self.entry_id = entry_id
        self.supplier_id = supplier_id
        if supplier_id is None:
            super().__init__(f"Catalog entry {entry_id} not found")
        else:
            super().__init__(f"Catalog entry {entry_id} not found for supplier {supplier_id}")


class PurchaseOrderNotFoundError(CatalogError):
    """Raised when a purchase order referenced by id does not exist."""

    def __init__(self, po_id: int):
        self.po_id = po_id
        super().__init__(f"Purchase order {po_id} not found")


# ===== INPUT NORMALIZATION =====

def _to_decimal(value: Any) -> Optional[Decimal]:
    """Parse a numeric value leniently; None for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip().replace(" ", "")
        if "," in text and "." in text:
            # 1,234.50: commas group thousands
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not parsed.is_finite():
        return None
    return parsed


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LineItem:
    """One purchase order line as the aggregator sees it."""

    inventory_item_id: Optional[int]
    name: Optional[str] = None
    unit: Optional[str] = None
    unit_price: Optional[Decimal] = None
    quantity: Optional[Decimal] = None
    currency: Optional[str] = None
    supplier_product_code: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        """Build from a raw dict; accepts camelCase keys and the legacy ``itemId``."""
        item_id = None
        for key in ("inventory_item_id", "inventoryItemId", "itemId", "item_id"):
            if data.get(key) not in (None, ""):
                item_id = data.get(key)
                break
        return cls(
            inventory_item_id=_to_int(item_id),
            name=_clean_str(data.get("name")),
            unit=_clean_str(data.get("unit")),
            unit_price=_to_decimal(data.get("unit_price", data.get("unitPrice"))),
            quantity=_to_decimal(data.get("quantity")),
            currency=_clean_str(data.get("currency")),
            supplier_product_code=_clean_str(
                data.get("supplier_product_code", data.get("supplierProductCode"))
            ),
        )

    @classmethod
    def from_order_line(cls, line: PurchaseOrderLine) -> "LineItem":
        return cls(
            inventory_item_id=_to_int(line.inventory_item_id),
            name=_clean_str(line.name),
            unit=_clean_str(line.unit),
            unit_price=_to_decimal(line.unit_price),
            quantity=_to_decimal(line.quantity),
            currency=_clean_str(line.currency),
            supplier_product_code=_clean_str(line.supplier_product_code),
        )

    @classmethod
    def coerce(cls, item: Union["LineItem", PurchaseOrderLine, PurchaseOrderLinePayload, Mapping]) -> "LineItem":
        if isinstance(item, LineItem):
            return item
        if isinstance(item, PurchaseOrderLine):
            return cls.from_order_line(item)
        if isinstance(item, PurchaseOrderLinePayload):
            return cls.from_mapping(item.model_dump())
        return cls.from_mapping(item)


@dataclass
class OrderContext:
    """Provenance of the order a line item came from."""

    id: Optional[int] = None
    number: Optional[str] = None
    order_date: Optional[datetime] = None
    currency: Optional[str] = None

    @classmethod
    def from_order(cls, order: Union[PurchaseOrder, PurchaseOrderPayload]) -> "OrderContext":
        return cls(
            id=order.id,
            number=order.number,
            order_date=order.order_date,
            currency=_clean_str(order.currency),
        )


# ===== INCREMENTAL UPSERT =====

def upsert_supplier_product(
    db: Session,
    supplier_id: Optional[int],
    item: Union[LineItem, PurchaseOrderLine, PurchaseOrderLinePayload, Mapping],
    order: OrderContext,
    repo: Optional[SupplierProductRepository] = None,
) -> Optional[SupplierProduct]:
    """
    Fold one purchase order line into the catalog entry for its pair.

    Lines without a usable item id, or with a missing/non-positive unit price,
    are skipped and None is returned. Otherwise the entry is created or
    updated and flushed (the caller commits).
    """
    line = LineItem.coerce(item)
    if not supplier_id or not line.inventory_item_id:
        return None

    unit_price = line.unit_price
    if unit_price is None or unit_price <= 0:
        return None

    repo = repo or SupplierProductRepository(db)
    now = _utcnow()
    quantity = line.quantity if line.quantity is not None else Decimal("0")
    currency = (line.currency or order.currency or settings.default_currency).upper()
    last_order_date = order.order_date or now

    entry = repo.find_by_key(supplier_id, line.inventory_item_id)

    if entry is not None:
        prev_count = entry.order_count or 0
        order_count = prev_count + 1
        prev_average = entry.average_price if entry.average_price is not None else unit_price
        # Running mean: previous average weighted by the previous count
        average_price = (prev_average * prev_count + unit_price) / order_count

        entry.order_count = order_count
        entry.total_ordered_quantity = (entry.total_ordered_quantity or Decimal("0")) + quantity
        entry.min_price = unit_price if entry.min_price is None else min(entry.min_price, unit_price)
        entry.max_price = unit_price if entry.max_price is None else max(entry.max_price, unit_price)
        entry.average_price = average_price.quantize(AVERAGE_PRICE_QUANT)
        entry.last_price = unit_price
        entry.currency = currency
        entry.last_order_date = last_order_date
        entry.last_purchase_order_id = order.id
        entry.last_purchase_order_number = order.number or ""
        if line.name:
            entry.product_name = line.name
        if line.unit:
            entry.unit = line.unit
        if line.supplier_product_code and not entry.supplier_product_code:
            entry.supplier_product_code = line.supplier_product_code
        entry.updated_at = now
        db.flush()
        return entry

    entry = SupplierProduct(
        supplier_id=supplier_id,
        inventory_item_id=line.inventory_item_id,
        product_name=line.name or "",
        unit=line.unit or settings.default_unit,
        supplier_product_code=line.supplier_product_code or "",
        last_price=unit_price,
        average_price=unit_price.quantize(AVERAGE_PRICE_QUANT),
        min_price=unit_price,
        max_price=unit_price,
        currency=currency,
        total_ordered_quantity=quantity,
        order_count=1,
        last_order_date=last_order_date,
        last_purchase_order_id=order.id,
        last_purchase_order_number=order.number or "",
        first_seen_at=now,
        updated_at=now,
    )
    return repo.add(entry)


def _apply_line(
    db: Session,
    repo: SupplierProductRepository,
    supplier_id: int,
    line: LineItem,
    order: OrderContext,
    errors: List[CatalogItemError],
) -> Optional[SupplierProduct]:
    """Upsert one line inside a savepoint; a failure is recorded, not raised."""
    try:
        with db.begin_nested():
            return upsert_supplier_product(db, supplier_id, line, order, repo=repo)
    except Exception as e:
        logger.warning(
            f"Skipping line item {line.inventory_item_id} ({line.name}) "
            f"of purchase order {order.id}: {e}"
        )
        errors.append(
            CatalogItemError(
                item_id=line.inventory_item_id,
                item_name=line.name,
                purchase_order_id=order.id,
                error=str(e).splitlines()[0] if str(e) else e.__class__.__name__,
            )
        )
        return None


def update_catalog_from_purchase_order(
    db: Session,
    purchase_order: Union[PurchaseOrder, PurchaseOrderPayload, Mapping],
    cache: Optional[CatalogCache] = None,
) -> CatalogUpdateResult:
    """
    Apply every line of one purchase order to its supplier's catalog.

    Draft orders are ignored. A line that fails is recorded in ``errors`` and
    the remaining lines are still applied.
    """
    if isinstance(purchase_order, Mapping):
        try:
            purchase_order = PurchaseOrderPayload.model_validate(purchase_order)
        except ValidationError as e:
            raise CatalogValidationError(f"Invalid purchase order: {e.errors()[0]['msg']}") from e

    supplier_id = purchase_order.supplier_id
    if not supplier_id:
        raise CatalogValidationError("Purchase order has no supplier")

    status = purchase_order.status
    status_value = status.value if isinstance(status, POStatus) else status
    if status_value == POStatus.DRAFT.value:
        return CatalogUpdateResult(updated=0, message="Draft purchase orders are not added to the catalog")

    if isinstance(purchase_order, PurchaseOrder):
        lines = [LineItem.from_order_line(line) for line in purchase_order.lines]
    else:
        lines = [LineItem.coerce(line) for line in purchase_order.items]

    if not lines:
        return CatalogUpdateResult(updated=0, message="No line items to process")

    context = OrderContext.from_order(purchase_order)
    repo = SupplierProductRepository(db)
    errors: List[CatalogItemError] = []
    updated = 0
    touched_items = set()

    for line in lines:
        entry = _apply_line(db, repo, supplier_id, line, context, errors)
        if entry is not None:
            updated += 1
            touched_items.add(entry.inventory_item_id)

    db.commit()

    if cache is not None:
        cache.invalidate_supplier(supplier_id)
        for item_id in touched_items:
            cache.invalidate_item(item_id)

    logger.info(
        f"Catalog updated from purchase order {context.number or context.id}: "
        f"{updated} entries, {len(errors)} errors"
    )
    return CatalogUpdateResult(
        updated=updated,
        errors=errors,
        message=f"Updated {updated} products in the supplier catalog",
    )


def update_catalog_from_stored_order(
    db: Session, po_id: int, cache: Optional[CatalogCache] = None
) -> CatalogUpdateResult:
    """Same as ``update_catalog_from_purchase_order`` for an order already in the database."""
    order = PurchaseOrderRepository(db).get(po_id)
    if order is None:
        raise PurchaseOrderNotFoundError(po_id)
    return update_catalog_from_purchase_order(db, order, cache=cache)


# ===== REBUILD =====

@dataclass
class _OrderSnapshot:
    supplier_id: int
    context: OrderContext
    lines: List[LineItem]


def _load_orders_for_rebuild(db: Session, supplier_id: Optional[int]) -> List[_OrderSnapshot]:
    """Read the authoritative order history, dropping drafts and empty orders."""
    snapshots = []
    for order in PurchaseOrderRepository(db).list_for_rebuild(supplier_id):
        if order.status == POStatus.DRAFT:
            continue
        if order.supplier_id is None:
            continue
        if not order.lines:
            continue
        snapshots.append(
            _OrderSnapshot(
                supplier_id=order.supplier_id,
                context=OrderContext.from_order(order),
                lines=[LineItem.from_order_line(line) for line in order.lines],
            )
        )
    return snapshots


def _rebuild(
    db: Session,
    supplier_id: Optional[int],
    batch_size: Optional[int] = None,
    cache: Optional[CatalogCache] = None,
) -> RebuildResult:
    repo = SupplierProductRepository(db)
    batch_size = batch_size or settings.rebuild_delete_batch_size
    scope = "supplier" if supplier_id is not None else "all"

    # 1. Set certificate data aside, keyed by the business key. Row ids change
    #    when the entries are recreated.
    existing = repo.find_in_scope(supplier_id)
    preserved: Dict[Tuple[int, int], Dict[str, Any]] = {
        entry.business_key: entry.certificate_snapshot()
        for entry in existing
        if entry.has_certificate_data
    }

    # 2. Drop the derived entries
    deleted = repo.delete_in_batches(existing, batch_size)
    logger.info(
        f"Catalog rebuild ({scope}{'' if supplier_id is None else f' {supplier_id}'}): "
        f"deleted {deleted} entries, preserved {len(preserved)} certificates"
    )

    # 3 + 4. Replay the order history
    orders = _load_orders_for_rebuild(db, supplier_id)
    errors: List[CatalogItemError] = []
    updated = 0
    orders_processed = 0
    supplier_ids = set()

    for order in orders:
        supplier_ids.add(order.supplier_id)
        for line in order.lines:
            if _apply_line(db, repo, order.supplier_id, line, order.context, errors) is not None:
                updated += 1
        orders_processed += 1
        db.commit()

    # 5. Reattach the certificates
    restored = 0
    if preserved:
        for entry in repo.find_in_scope(supplier_id):
            snapshot = preserved.pop(entry.business_key, None)
            if snapshot is None:
                continue
            for field, value in snapshot.items():
                setattr(entry, field, value)
            restored += 1
        db.commit()
        if preserved:
            logger.warning(
                f"Catalog rebuild dropped certificate data for {len(preserved)} pairs "
                f"with no remaining order history: {sorted(preserved)}"
            )

    if cache is not None:
        if supplier_id is None:
            cache.clear()
        else:
            # Per-item supplier lists of any item may contain this supplier
            cache.invalidate_supplier(supplier_id)
            cache.clear_prefix(CatalogCache.ITEM_PREFIX)

    if supplier_id is None:
        message = (
            f"Rebuilt catalogs: {updated} entries from {orders_processed} orders "
            f"for {len(supplier_ids)} suppliers"
        )
    else:
        message = f"Rebuilt catalog: {updated} entries from {orders_processed} orders"
    if errors:
        message += f" ({len(errors)} line items skipped)"
    logger.info(message)

    return RebuildResult(
        scope=scope,
        supplier_id=supplier_id,
        updated=updated,
        orders_processed=orders_processed,
        suppliers_processed=len(supplier_ids) if supplier_id is None else None,
        certificates_restored=restored,
        error_count=len(errors),
        errors=errors,
        message=message,
    )


def rebuild_supplier_catalog(
    db: Session,
    supplier_id: int,
    batch_size: Optional[int] = None,
    cache: Optional[CatalogCache] = None,
) -> RebuildResult:
    """Regenerate one supplier's catalog from its non-draft order history."""
    if not supplier_id:
        raise CatalogValidationError("Supplier id is required")
    return _rebuild(db, supplier_id, batch_size=batch_size, cache=cache)


def rebuild_all_supplier_catalogs(
    db: Session,
    batch_size: Optional[int] = None,
    cache: Optional[CatalogCache] = None,
) -> RebuildResult:
    """Regenerate the whole catalog from every non-draft order."""
    return _rebuild(db, None, batch_size=batch_size, cache=cache)


# ===== READS =====

def get_supplier_products(
    db: Session,
    supplier_id: int,
    search: Optional[str] = None,
    order_by: str = "product_name",
    direction: str = "asc",
) -> List[SupplierProduct]:
    if not supplier_id:
        raise CatalogValidationError("Supplier id is required")
    return SupplierProductRepository(db).find_by_supplier(
        supplier_id, search=search, order_by=order_by, direction=direction
    )


def get_product_suppliers(db: Session, inventory_item_id: int) -> List[SupplierProduct]:
    if not inventory_item_id:
        raise CatalogValidationError("Inventory item id is required")
    return SupplierProductRepository(db).find_by_inventory_item(inventory_item_id)


def get_supplier_products_by_ids(db: Session, entry_ids: List[int]) -> List[SupplierProduct]:
    return SupplierProductRepository(db).find_by_ids(entry_ids)


def search_catalog(
    db: Session,
    prefix: str,
    supplier_id: Optional[int] = None,
    field: str = "product_name",
    limit: int = 50,
) -> List[SupplierProduct]:
    """Type-ahead lookup by product name or supplier code prefix."""
    prefix = (prefix or "").strip()
    if not prefix:
        raise CatalogValidationError("Search prefix is required")
    try:
        return SupplierProductRepository(db).find_by_prefix(
            prefix, field=field, supplier_id=supplier_id, limit=limit
        )
    except ValueError as e:
        raise CatalogValidationError(str(e)) from e


def get_expiring_certificates(
    db: Session, days: int = 30, today: Optional[date] = None
) -> List[Dict[str, Any]]:
    """Entries whose certificate expires within *days* days (expired ones included)."""
    today = today or date.today()
    entries = SupplierProductRepository(db).find_expiring(today + timedelta(days=days))
    return [
        {
            "id": e.id,
            "supplier_id": e.supplier_id,
            "inventory_item_id": e.inventory_item_id,
            "product_name": e.product_name,
            "certificate_type": e.certificate_type,
            "certificate_number": e.certificate_number,
            "certificate_valid_to": e.certificate_valid_to,
            "days_until_expiry": (e.certificate_valid_to - today).days,
        }
        for e in entries
    ]


# ===== CERTIFICATES =====

def _get_entry(db: Session, entry_id: int, supplier_id: Optional[int] = None) -> SupplierProduct:
    entry = SupplierProductRepository(db).get(entry_id)
    if entry is None or (supplier_id is not None and entry.supplier_id != supplier_id):
        raise CatalogEntryNotFoundError(entry_id, supplier_id)
    return entry


def _invalidate(cache: Optional[CatalogCache], entry: SupplierProduct):
    if cache is not None:
        cache.invalidate_entry(entry.supplier_id, entry.inventory_item_id)


def update_product_certificate(
    db: Session,
    entry_id: int,
    fields: Union[CertificateUpdate, Mapping[str, Any]],
    cache: Optional[CatalogCache] = None,
) -> SupplierProduct:
    """Write certificate information only; price and quantity fields are untouched."""
    if isinstance(fields, CertificateUpdate):
        changes = fields.model_dump(exclude_unset=True)
    else:
        changes = dict(fields)

    unknown = set(changes) - set(CERTIFICATE_INFO_FIELDS)
    if unknown:
        raise CatalogValidationError(f"Not certificate fields: {', '.join(sorted(unknown))}")

    entry = _get_entry(db, entry_id)

    if changes.get("certificate_type") is not None:
        try:
            changes["certificate_type"] = CertificateType(changes["certificate_type"])
        except ValueError as e:
            raise CatalogValidationError(f"Unknown certificate type: {changes['certificate_type']}") from e

    for key in ("certificate_unit", "certificate_number"):
        if key in changes:
            changes[key] = _clean_str(changes[key])

    valid_from = changes.get("certificate_valid_from", entry.certificate_valid_from)
    valid_to = changes.get("certificate_valid_to", entry.certificate_valid_to)
    if valid_from and valid_to and valid_to < valid_from:
        raise CatalogValidationError("Certificate validity ends before it starts")

    for key, value in changes.items():
        setattr(entry, key, value)
    entry.updated_at = _utcnow()
    db.commit()
    db.refresh(entry)
    _invalidate(cache, entry)
    logger.info(f"Certificate updated on catalog entry {entry_id}: {sorted(changes)}")
    return entry


def certificate_download_url(entry_id: int) -> str:
    return f"{settings.api_v1_prefix}/supplier-products/{entry_id}/certificate/file"


def build_certificate_object_name(supplier_id: int, entry_id: int, filename: str) -> str:
    """``{namespace}/{supplier}/{entry}/{timestamp}_{filename}``"""
    timestamp = int(time.time() * 1000)
    return (
        f"{settings.certificate_namespace}/{supplier_id}/{entry_id}/"
        f"{timestamp}_{sanitize_filename(filename)}"
    )


def upload_certificate_file(
    db: Session,
    storage: CertificateStorage,
    supplier_id: int,
    entry_id: int,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    cache: Optional[CatalogCache] = None,
) -> SupplierProduct:
    """
    Attach a certificate PDF to a catalog entry.

    The file is validated before anything is stored. A file that was already
    attached is removed from storage once the new one is recorded.
    """
    entry = _get_entry(db, entry_id, supplier_id)
    validate_certificate_upload(filename, content_type, data, settings.max_certificate_size_bytes)

    object_name = build_certificate_object_name(supplier_id, entry_id, filename or "certificate.pdf")
    storage.upload(object_name, data, content_type="application/pdf")

    previous_path = entry.certificate_storage_path
    entry.certificate_file_name = os.path.basename((filename or "certificate.pdf").replace("\\", "/"))
    entry.certificate_content_type = "application/pdf"
    entry.certificate_storage_path = object_name
    entry.certificate_file_url = certificate_download_url(entry_id)
    entry.certificate_uploaded_at = _utcnow()
    entry.updated_at = entry.certificate_uploaded_at
    try:
        db.commit()
    except Exception:
        db.rollback()
        if not storage.delete(object_name):
            logger.warning(f"Could not remove orphaned certificate file {object_name}")
        raise
    db.refresh(entry)

    if previous_path and previous_path != object_name and not storage.delete(previous_path):
        logger.warning(f"Previous certificate file {previous_path} could not be deleted")

    _invalidate(cache, entry)
    logger.info(f"Certificate file attached to catalog entry {entry_id}: {object_name}")
    return entry


def delete_certificate_file(
    db: Session,
    storage: CertificateStorage,
    entry_id: int,
    cache: Optional[CatalogCache] = None,
) -> SupplierProduct:
    """
    Remove the certificate attachment of an entry.

    Deleting the stored object is best-effort: a storage failure is logged and
    the file fields are cleared anyway.
    """
    entry = _get_entry(db, entry_id)
    path = entry.certificate_storage_path
    if path:
        try:
            removed = storage.delete(path)
        except Exception as e:
            logger.error(f"Certificate storage delete raised for {path}: {e}")
            removed = False
        if not removed:
            logger.warning(f"Certificate file {path} was not deleted from storage; clearing entry anyway")

    for field in CERTIFICATE_FILE_FIELDS:
        setattr(entry, field, None)
    entry.updated_at = _utcnow()
    db.commit()
    db.refresh(entry)
    _invalidate(cache, entry)
    return entry


def get_certificate_file(
    db: Session, storage: CertificateStorage, entry_id: int
) -> Tuple[SupplierProduct, bytes]:
    """Stored certificate bytes for an entry."""
    entry = _get_entry(db, entry_id)
    if not entry.certificate_storage_path:
        raise CatalogEntryNotFoundError(entry_id)
    data = storage.download(entry.certificate_storage_path)
    if data is None:
        raise CatalogEntryNotFoundError(entry_id)
    return entry, data
