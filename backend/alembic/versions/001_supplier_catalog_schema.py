"""Supplier catalog schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PO_STATUSES = ("draft", "sent", "received", "cancelled")
CERTIFICATE_TYPES = ("eco", "halal", "kosher", "vegan", "vege", "gmp", "iso", "other")


def upgrade() -> None:
    # Suppliers table
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("contact_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Inventory items table
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("sku", sa.String(100), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Purchase orders table
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(50), nullable=True, index=True),
        sa.Column(
            "supplier_id", sa.Integer(),
            sa.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True,
        ),
        sa.Column("status", sa.Enum(*PO_STATUSES, name="postatus"), nullable=False, server_default="draft"),
        sa.Column("order_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )

    # Purchase order lines table
    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "po_id", sa.Integer(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("inventory_item_id", sa.Integer(), nullable=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("quantity", sa.Numeric(14, 3), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        sa.Column("supplier_product_code", sa.String(100), nullable=True),
    )

    # Supplier product catalog table
    op.create_table(
        "supplier_products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "supplier_id", sa.Integer(),
            sa.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column(
            "inventory_item_id", sa.Integer(),
            sa.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column("product_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("supplier_product_code", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_price", sa.Numeric(14, 4), nullable=False),
        sa.Column("average_price", sa.Numeric(18, 6), nullable=False),
        sa.Column("min_price", sa.Numeric(14, 4), nullable=False),
        sa.Column("max_price", sa.Numeric(14, 4), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("total_ordered_quantity", sa.Numeric(18, 3), nullable=False, server_default="0"),
        sa.Column("order_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_order_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("last_purchase_order_number", sa.String(50), nullable=False, server_default=""),
        sa.Column("first_seen_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("certificate_unit", sa.String(255), nullable=True),
        sa.Column("certificate_number", sa.String(100), nullable=True),
        sa.Column("certificate_type", sa.Enum(*CERTIFICATE_TYPES, name="certificatetype"), nullable=True),
        sa.Column("certificate_valid_from", sa.Date(), nullable=True),
        sa.Column("certificate_valid_to", sa.Date(), nullable=True, index=True),
        sa.Column("certificate_file_name", sa.String(255), nullable=True),
        sa.Column("certificate_content_type", sa.String(100), nullable=True),
        sa.Column("certificate_storage_path", sa.String(500), nullable=True),
        sa.Column("certificate_file_url", sa.String(500), nullable=True),
        sa.Column("certificate_uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("supplier_id", "inventory_item_id", name="uq_supplier_product_pair"),
    )


def downgrade() -> None:
    op.drop_table("supplier_products")
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("inventory_items")
    op.drop_table("suppliers")
    sa.Enum(name="certificatetype").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="postatus").drop(op.get_bind(), checkfirst=True)
