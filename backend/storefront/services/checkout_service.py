# Overview: Checkout; turns a cart into an order in one storage transaction.

"""
Checkout Pipeline

1. Take the write lock, then snapshot cart lines with live price/active flag
2. Validate: cart not empty, every product active, shipping address given
3. Reserve every line in ascending product_id order
4. Build the order from captured lines, append the Purchase row, clear the cart
5. Commit

Any failure rolls back the whole storage transaction, which gives back every
reservation made so far. A failed checkout leaves stock, orders, ledger and
cart exactly as they were. Nothing is retried.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import EmptyCart, InactiveProduct, InsufficientStock, ValidationError
from ..models import CartItem, Order, Product
from .cart_service import _delete_lines
from .concurrency import begin_write, unit_of_work
from .inventory_service import reserve
from .order_service import CapturedLine, build_order
from .transaction_service import record_purchase


def _snapshot_lines(session: Session, user_id: int) -> list[CapturedLine]:
    rows = session.execute(
        select(CartItem.product_id, CartItem.count, Product.price_cents, Product.is_active)
        .join(Product, Product.id == CartItem.product_id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.product_id)
    ).all()

    if not rows:
        raise EmptyCart(user_id)

    for row in rows:
        if not row.is_active:
            raise InactiveProduct(row.product_id)

    return [
        CapturedLine(product_id=row.product_id, quantity=row.count, unit_price_cents=row.price_cents)
        for row in rows
    ]


def checkout(session: Session, user_id: int, shipping_address: str) -> Order:
    """
    Place an order from the user's cart.

    Raises EmptyCart, InactiveProduct, ValidationError (blank address),
    InsufficientStock (nothing reserved, cart intact), PersistenceFailure.
    """
    address = (shipping_address or "").strip()
    if not address:
        raise ValidationError("Shipping address is required")

    try:
        with unit_of_work(session, operation="checkout"):
            begin_write(session)
            lines = _snapshot_lines(session, user_id)

            # Fixed order so concurrent checkouts lock rows the same way
            for line in sorted(lines, key=lambda l: l.product_id):
                reserve(session, line.product_id, line.quantity)

            order = build_order(user_id, address, lines)
            session.add(order)
            session.flush()

            record_purchase(session, order)
            _delete_lines(session, user_id)
    except InsufficientStock as e:
        current_app.logger.warning(
            "Checkout rejected for user %s: insufficient stock for product %s", user_id, e.product_id
        )
        raise

    current_app.logger.info(
        "Order %s placed by user %s: %s lines, total %s cents",
        order.id, user_id, len(lines), order.total_amount_cents,
    )
    return order
