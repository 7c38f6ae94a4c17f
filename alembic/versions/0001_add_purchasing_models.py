"""add store, catalog lookups, purchase orders and purchase lots

Revision ID: 0001
Revises:
Create Date: 2025-12-01 00:00:00.000000

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.create_table(
        "store",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "supplier",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_supplier_store_id", "supplier", ["store_id"])

    op.create_table(
        "unit",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("base_unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=True),
        sa.Column("conversion_factor", sa.Float(), nullable=False, server_default="1"),
    )
    op.create_index("ix_unit_store_id", "unit", ["store_id"])

    op.create_table(
        "product",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_product_store_id", "product", ["store_id"])

    op.create_table(
        "product_inventory",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("store_id", "product_id", name="uq_product_inventory_store_product"),
    )

    op.create_table(
        "purchase_order",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("order_number", sa.String(length=20), nullable=False),
        sa.Column("supplier_id", sa.String(length=36), sa.ForeignKey("supplier.id"), nullable=True),
        sa.Column("import_date", sa.Date(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.UniqueConstraint("store_id", "order_number", name="uq_purchase_order_store_number"),
    )
    op.create_index(
        "ix_purchase_order_store_import_date",
        "purchase_order",
        ["store_id", "import_date"],
    )

    op.create_table(
        "purchase_order_item",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "purchase_order_id",
            sa.String(length=36),
            sa.ForeignKey("purchase_order.id"),
            nullable=False,
        ),
        sa.Column("line_no", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("cost", sa.Float(), nullable=False),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=False),
        sa.Column("base_quantity", sa.Float(), nullable=True),
        sa.Column("base_cost", sa.Float(), nullable=True),
        sa.Column("base_unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=True),
    )
    op.create_index(
        "ix_purchase_order_item_purchase_order_id",
        "purchase_order_item",
        ["purchase_order_id"],
    )

    op.create_table(
        "purchase_lot",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("product_id", sa.String(length=36), sa.ForeignKey("product.id"), nullable=False),
        sa.Column("store_id", sa.String(length=36), sa.ForeignKey("store.id"), nullable=False),
        sa.Column("import_date", sa.Date(), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("remaining_quantity", sa.Float(), nullable=False),
        sa.Column("cost", sa.Float(), nullable=False),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("unit.id"), nullable=False),
        sa.Column(
            "purchase_order_id",
            sa.String(length=36),
            sa.ForeignKey("purchase_order.id"),
            nullable=True,
        ),
        sa.Column(
            "purchase_order_item_id",
            sa.String(length=36),
            sa.ForeignKey("purchase_order_item.id"),
            nullable=True,
        ),
        sa.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_purchase_lot_remaining_quantity",
        ),
    )
    op.create_index("ix_purchase_lot_purchase_order_id", "purchase_lot", ["purchase_order_id"])
    op.create_index("ix_purchase_lot_purchase_order_item_id", "purchase_lot", ["purchase_order_item_id"])
    op.create_index("ix_purchase_lot_store_product", "purchase_lot", ["store_id", "product_id"])


def downgrade() -> None:
    op.drop_table("purchase_lot")
    op.drop_table("purchase_order_item")
    op.drop_table("purchase_order")
    op.drop_table("product_inventory")
    op.drop_table("product")
    op.drop_table("unit")
    op.drop_table("supplier")
    op.drop_table("store")
