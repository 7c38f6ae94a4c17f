from __future__ import annotations

from datetime import date

from sqlalchemy.orm import Session

from backoffice.models.models import PurchaseOrder
from backoffice.services.errors import OrderNumberExhaustedError


ORDER_NUMBER_PREFIX = "PN"
SEQUENCE_WIDTH = 4
MAX_SEQUENCE = 10**SEQUENCE_WIDTH - 1


def order_number_prefix(day: date) -> str:
    return f"{ORDER_NUMBER_PREFIX}{day.year:04d}{day.month:02d}"


def parse_sequence(order_number: str, prefix: str) -> int | None:
    suffix = order_number[len(prefix):]
    if not suffix.isdigit():
        return None
    return int(suffix)


def generate_order_number(db: Session, store_id: str, today: date | None = None) -> str:
    """Return the next ``PN<yyyy><mm><nnnn>`` number for ``store_id``.

    Relies on the suffix being zero-padded to a fixed width, so the
    lexicographically greatest number of the month is also the highest
    sequence. Call it inside the transaction that inserts the order; the
    caller is expected to retry on a uniqueness conflict.
    """
    prefix = order_number_prefix(today or date.today())

    last_number = (
        db.query(PurchaseOrder.order_number)
        .filter(
            PurchaseOrder.store_id == store_id,
            PurchaseOrder.order_number.like(f"{prefix}%"),
        )
        .order_by(PurchaseOrder.order_number.desc())
        .limit(1)
        .scalar()
    )

    next_sequence = 1
    if last_number is not None:
        last_sequence = parse_sequence(last_number, prefix)
        if last_sequence is not None:
            next_sequence = last_sequence + 1

    if next_sequence > MAX_SEQUENCE:
        raise OrderNumberExhaustedError(
            f"Order number sequence exhausted for {prefix} (store {store_id})"
        )

    return f"{prefix}{next_sequence:0{SEQUENCE_WIDTH}d}"
