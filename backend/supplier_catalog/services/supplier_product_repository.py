"""Store access for the supplier product catalog and its purchase order input.

The aggregation service only talks to these repositories, so the query
dialect (and any per-store limits such as batch sizes) stays in one place.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session, selectinload

from supplier_catalog.models.order import PurchaseOrder
from supplier_catalog.models.supplier_product import SupplierProduct

logger = logging.getLogger(__name__)

# Columns the catalog screen may sort by
SORTABLE_COLUMNS = {
    "product_name": SupplierProduct.product_name,
    "supplier_product_code": SupplierProduct.supplier_product_code,
    "last_price": SupplierProduct.last_price,
    "average_price": SupplierProduct.average_price,
    "min_price": SupplierProduct.min_price,
    "max_price": SupplierProduct.max_price,
    "total_ordered_quantity": SupplierProduct.total_ordered_quantity,
    "order_count": SupplierProduct.order_count,
    "last_order_date": SupplierProduct.last_order_date,
    "updated_at": SupplierProduct.updated_at,
}

PREFIX_COLUMNS = {
    "product_name": SupplierProduct.product_name,
    "supplier_product_code": SupplierProduct.supplier_product_code,
}


class SupplierProductRepository:
    """Queries and bulk writes on the ``supplier_products`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, entry_id: int) -> Optional[SupplierProduct]:
        return self.db.get(SupplierProduct, entry_id)

    def find_by_key(self, supplier_id: int, inventory_item_id: int) -> Optional[SupplierProduct]:
        """Look up the single entry for a (supplier, item) pair."""
        stmt = select(SupplierProduct).where(
            SupplierProduct.supplier_id == supplier_id,
            SupplierProduct.inventory_item_id == inventory_item_id,
        )
        return self.db.scalars(stmt).first()

    def find_by_supplier(
        self,
        supplier_id: int,
        search: Optional[str] = None,
        order_by: str = "product_name",
        direction: str = "asc",
    ) -> List[SupplierProduct]:
        stmt = select(SupplierProduct).where(SupplierProduct.supplier_id == supplier_id)
        if search and search.strip():
            term = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(SupplierProduct.product_name).like(term),
                    func.lower(SupplierProduct.supplier_product_code).like(term),
                )
            )
        column = SORTABLE_COLUMNS.get(order_by, SupplierProduct.product_name)
        ordering = column.desc() if direction == "desc" else column.asc()
        stmt = stmt.order_by(ordering, SupplierProduct.id)
        return list(self.db.scalars(stmt))

    def find_by_inventory_item(self, inventory_item_id: int) -> List[SupplierProduct]:
        """All suppliers of one item, cheapest last price first."""
        stmt = (
            select(SupplierProduct)
            .where(SupplierProduct.inventory_item_id == inventory_item_id)
            .order_by(SupplierProduct.last_price.asc(), SupplierProduct.id)
        )
        return list(self.db.scalars(stmt))

    def find_by_ids(self, entry_ids: Iterable[int]) -> List[SupplierProduct]:
        ids = sorted({int(i) for i in entry_ids})
        if not ids:
            return []
        stmt = select(SupplierProduct).where(SupplierProduct.id.in_(ids)).order_by(SupplierProduct.id)
        return list(self.db.scalars(stmt))

    def find_by_prefix(
        self,
        prefix: str,
        field: str = "product_name",
        supplier_id: Optional[int] = None,
        limit: int = 50,
    ) -> List[SupplierProduct]:
        """Entries whose *field* starts with *prefix* (case-insensitive)."""
        column = PREFIX_COLUMNS.get(field)
        if column is None:
            raise ValueError(f"Prefix search is not supported on '{field}'")
        escaped = prefix.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = select(SupplierProduct).where(func.lower(column).like(f"{escaped}%", escape="\\"))
        if supplier_id is not None:
            stmt = stmt.where(SupplierProduct.supplier_id == supplier_id)
        stmt = stmt.order_by(column.asc(), SupplierProduct.id).limit(limit)
        return list(self.db.scalars(stmt))

    def find_in_scope(self, supplier_id: Optional[int] = None) -> List[SupplierProduct]:
        """Every entry of one supplier, or the whole catalog when *supplier_id* is None."""
        stmt = select(SupplierProduct)
        if supplier_id is not None:
            stmt = stmt.where(SupplierProduct.supplier_id == supplier_id)
        return list(self.db.scalars(stmt.order_by(SupplierProduct.id)))

    def find_expiring(self, until: date) -> List[SupplierProduct]:
        stmt = (
            select(SupplierProduct)
            .where(
                SupplierProduct.certificate_valid_to.isnot(None),
                SupplierProduct.certificate_valid_to <= until,
            )
            .order_by(SupplierProduct.certificate_valid_to.asc(), SupplierProduct.id)
        )
        return list(self.db.scalars(stmt))

    def add(self, entry: SupplierProduct) -> SupplierProduct:
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_in_batches(self, entries: Sequence[SupplierProduct], batch_size: int) -> int:
        """Delete *entries*, committing every *batch_size* rows. Returns rows deleted."""
        ids = [e.id for e in entries]
        # Row ids can be reused by the recreated rows; detach the doomed objects
        # so the identity map never holds two objects for one key.
        for entry in entries:
            if entry in self.db:
                self.db.expunge(entry)
        deleted = 0
        for start in range(0, len(ids), batch_size):
            chunk = ids[start:start + batch_size]
            result = self.db.execute(
                delete(SupplierProduct)
                .where(SupplierProduct.id.in_(chunk))
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            deleted += result.rowcount or 0
            logger.debug(f"Deleted catalog batch of {len(chunk)} entries")
        return deleted


class PurchaseOrderRepository:
    """Read access to purchase orders for catalog aggregation."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, po_id: int) -> Optional[PurchaseOrder]:
        stmt = (
            select(PurchaseOrder)
            .options(selectinload(PurchaseOrder.lines))
            .where(PurchaseOrder.id == po_id)
        )
        return self.db.scalars(stmt).first()

    def list_for_rebuild(self, supplier_id: Optional[int] = None) -> List[PurchaseOrder]:
        """Orders in creation order, oldest first, with their lines loaded."""
        stmt = select(PurchaseOrder).options(selectinload(PurchaseOrder.lines))
        if supplier_id is not None:
            stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
        stmt = stmt.order_by(PurchaseOrder.created_at.asc(), PurchaseOrder.id.asc())
        return list(self.db.scalars(stmt))
