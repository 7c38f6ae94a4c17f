from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import Session

from backoffice.models.models import PurchaseLot


def count_used_lots(db: Session, order_id: str, store_id: str) -> int:
    """Number of lots of the order that sales or transfers have drawn from."""
    count = (
        db.query(func.count(PurchaseLot.id))
        .filter(
            PurchaseLot.purchase_order_id == order_id,
            PurchaseLot.store_id == store_id,
            PurchaseLot.remaining_quantity < PurchaseLot.quantity,
        )
        .scalar()
    )
    return int(count or 0)


def can_delete_order(db: Session, order_id: str, store_id: str) -> bool:
    """True when no lot of the order has been consumed.

    Only a hint outside a transaction: consumption may happen before the
    delete runs, so destructive paths must re-check after ``lock_order_lots``.
    """
    return count_used_lots(db, order_id, store_id) == 0


def lock_order_lots(db: Session, order_id: str, store_id: str) -> list[PurchaseLot]:
    """Select the order's lots FOR UPDATE (ignored by SQLite)."""
    return (
        db.query(PurchaseLot)
        .filter(
            PurchaseLot.purchase_order_id == order_id,
            PurchaseLot.store_id == store_id,
        )
        .order_by(PurchaseLot.id)
        .with_for_update()
        .all()
    )
