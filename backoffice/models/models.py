from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import CheckConstraint, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Store(Base):
    __tablename__ = "store"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Supplier(Base):
    __tablename__ = "supplier"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Unit(Base):
    __tablename__ = "unit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Non-base units point at their base unit; quantity_in_base = quantity * conversion_factor
    base_unit_id: Mapped[str | None] = mapped_column(ForeignKey("unit.id"), nullable=True)
    conversion_factor: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)


class Product(Base):
    __tablename__ = "product"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit_id: Mapped[str | None] = mapped_column(ForeignKey("unit.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    unit: Mapped[Unit | None] = relationship("Unit")


class ProductInventory(Base):
    """On-hand quantity per product and store, in the product's base unit."""

    __tablename__ = "product_inventory"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(ForeignKey("product.id"), nullable=False)
    unit_id: Mapped[str | None] = mapped_column(ForeignKey("unit.id"), nullable=True)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "product_id", name="uq_product_inventory_store_product"),
    )


class PurchaseOrder(Base):
    __tablename__ = "purchase_order"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False)
    order_number: Mapped[str] = mapped_column(String(20), nullable=False)
    supplier_id: Mapped[str | None] = mapped_column(ForeignKey("supplier.id"), nullable=True)
    import_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    supplier: Mapped[Supplier | None] = relationship("Supplier")
    items: Mapped[list["PurchaseOrderItem"]] = relationship("PurchaseOrderItem", back_populates="purchase_order")

    __table_args__ = (
        UniqueConstraint("store_id", "order_number", name="uq_purchase_order_store_number"),
        Index("ix_purchase_order_store_import_date", "store_id", "import_date"),
    )


class PurchaseOrderItem(Base):
    __tablename__ = "purchase_order_item"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    purchase_order_id: Mapped[str] = mapped_column(ForeignKey("purchase_order.id"), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[str] = mapped_column(ForeignKey("product.id"), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    cost: Mapped[float] = mapped_column(Float, nullable=False)
    unit_id: Mapped[str] = mapped_column(ForeignKey("unit.id"), nullable=False)
    base_quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    base_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    base_unit_id: Mapped[str | None] = mapped_column(ForeignKey("unit.id"), nullable=True)

    purchase_order: Mapped[PurchaseOrder] = relationship("PurchaseOrder", back_populates="items")


class PurchaseLot(Base):
    """A tranche of stock with its own cost; consumed FIFO by sales and transfers."""

    __tablename__ = "purchase_lot"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(ForeignKey("product.id"), nullable=False)
    store_id: Mapped[str] = mapped_column(ForeignKey("store.id"), nullable=False)
    import_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    remaining_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    cost: Mapped[float] = mapped_column(Float, nullable=False)
    unit_id: Mapped[str] = mapped_column(ForeignKey("unit.id"), nullable=False)
    # Lots from manual stock adjustments have no order
    purchase_order_id: Mapped[str | None] = mapped_column(ForeignKey("purchase_order.id"), nullable=True, index=True)
    purchase_order_item_id: Mapped[str | None] = mapped_column(
        ForeignKey("purchase_order_item.id"), nullable=True, index=True
    )

    __table_args__ = (
        Index("ix_purchase_lot_store_product", "store_id", "product_id"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_purchase_lot_remaining_quantity",
        ),
    )

    @property
    def is_used(self) -> bool:
        return self.remaining_quantity < self.quantity
