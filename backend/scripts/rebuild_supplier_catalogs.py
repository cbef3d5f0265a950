#!/usr/bin/env python3
"""
Rebuild Supplier Catalogs - regenerate catalog entries from purchase order history.

Usage:
    python scripts/rebuild_supplier_catalogs.py                  # every supplier
    python scripts/rebuild_supplier_catalogs.py --supplier-id 7  # one supplier
    python scripts/rebuild_supplier_catalogs.py --list-errors

Certificate data already attached to catalog entries is kept.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from supplier_catalog.core.config import settings
from supplier_catalog.db.base import Base
from supplier_catalog.db.session import SessionLocal, engine
from supplier_catalog.services.supplier_product_service import (
    CatalogError,
    rebuild_all_supplier_catalogs,
    rebuild_supplier_catalog,
)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Rebuild supplier catalogs from purchase orders")
    parser.add_argument('--supplier-id', type=int, help="Rebuild only this supplier's catalog")
    parser.add_argument(
        '--batch-size', type=int, default=settings.rebuild_delete_batch_size,
        help="Entries deleted per commit (1-500)",
    )
    parser.add_argument('--list-errors', action='store_true', help="Print every skipped line item")
    parser.add_argument('--verbose', action='store_true', help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not 1 <= args.batch_size <= 500:
        print(f"ERROR: --batch-size must be between 1 and 500, got {args.batch_size}")
        return 2

    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if args.supplier_id is not None:
            result = rebuild_supplier_catalog(db, args.supplier_id, batch_size=args.batch_size)
        else:
            result = rebuild_all_supplier_catalogs(db, batch_size=args.batch_size)
    except CatalogError as e:
        print(f"ERROR: {e}")
        return 2
    finally:
        db.close()

    print(result.message)
    print(f"Certificates restored: {result.certificates_restored}")
    if result.errors:
        print(f"Skipped line items: {result.error_count}")
        if args.list_errors:
            for err in result.errors:
                print(f"  PO {err.purchase_order_id} item {err.item_id} ({err.item_name}): {err.error}")
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
