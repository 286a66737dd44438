# Overview: Order aggregate; construction, status lifecycle and cancellation.

"""
Order Lifecycle

    Pending -> Paid -> Shipped -> Completed
    Pending | Paid -> Cancelled

Completed and Cancelled are terminal. Cancelling gives every ordered unit back
to stock in the same storage transaction as the status change. Orders that
have shipped are undone through the return workflow instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ForbiddenError, InvalidStateTransition, OrderNotFound, ValidationError
from ..models import Order, OrderItem, Transaction
from ..models.ledger import TRANSACTION_TYPE_PURCHASE
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PAID,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUSES,
)
from ..pagination import paginate
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, unit_of_work
from .inventory_service import release


ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PAID: {ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_COMPLETED},
    ORDER_STATUS_COMPLETED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

CANCELLABLE_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_PAID}


# =============================================================================
# CONSTRUCTION
# =============================================================================

@dataclass(frozen=True)
class CapturedLine:
    """A cart line frozen at checkout: quantity and the price paid per unit."""
    product_id: int
    quantity: int
    unit_price_cents: int


def build_order(user_id: int, shipping_address: str, lines: list[CapturedLine]) -> Order:
    """
    The only way to construct an Order.

    The order is never built without its items, and the total is always the
    sum of the captured line subtotals.
    """
    if not lines:
        raise ValidationError("An order needs at least one line")

    seen: set[int] = set()
    for line in lines:
        if line.product_id in seen:
            raise ValidationError("Duplicate product in order lines", details={"product_id": line.product_id})
        seen.add(line.product_id)
        if line.quantity <= 0:
            raise ValidationError("Line quantity must be positive", details={"product_id": line.product_id})
        if line.unit_price_cents < 0:
            raise ValidationError("Line price cannot be negative", details={"product_id": line.product_id})

    now = utcnow()
    order = Order(
        user_id=user_id,
        order_date=now,
        status=ORDER_STATUS_PENDING,
        status_changed_at=now,
        shipping_address=shipping_address,
        total_amount_cents=sum(line.quantity * line.unit_price_cents for line in lines),
    )
    order.items = [
        OrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
        )
        for line in sorted(lines, key=lambda l: l.product_id)
    ]
    return order


# =============================================================================
# LOOKUPS
# =============================================================================

def get_order(session: Session, order_id: int, *, lock: bool = False) -> Order:
    query = select(Order).where(Order.id == order_id)
    if lock:
        query = lock_for_update(query)
    order = session.execute(query).scalar_one_or_none()
    if order is None:
        raise OrderNotFound(order_id)
    return order


def get_order_for_user(session: Session, order_id: int, user_id: int, *, is_admin: bool = False) -> Order:
    """Owner or admin view of an order."""
    order = get_order(session, order_id)
    if order.user_id != user_id and not is_admin:
        raise ForbiddenError("Order belongs to another user", details={"order_id": order_id})
    return order


def get_order_items(session: Session, order_id: int) -> list[OrderItem]:
    return list(
        session.scalars(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.product_id)
        )
    )


def list_user_orders(
    session: Session,
    user_id: int,
    *,
    status: str | None = None,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    return list_orders(session, user_id=user_id, status=status, page=page, page_size=page_size)


def list_orders(
    session: Session,
    *,
    status: str | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    min_amount_cents: int | None = None,
    max_amount_cents: int | None = None,
    sort_by: str = "order_date",
    descending: bool = True,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    """Admin order search. sort_by is 'order_date' or 'total_amount'."""
    if status is not None and status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {list(ORDER_STATUSES)}")

    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if start is not None:
        query = query.where(Order.order_date >= start)
    if end is not None:
        query = query.where(Order.order_date <= end)
    if min_amount_cents is not None:
        query = query.where(Order.total_amount_cents >= min_amount_cents)
    if max_amount_cents is not None:
        query = query.where(Order.total_amount_cents <= max_amount_cents)

    column = Order.total_amount_cents if sort_by == "total_amount" else Order.order_date
    query = query.order_by(column.desc() if descending else column.asc(), Order.id.desc())

    return paginate(session, query, page, page_size)


# =============================================================================
# LIFECYCLE
# =============================================================================

def _check_transition(order: Order, new_status: str) -> None:
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of {list(ORDER_STATUSES)}", details={"status": new_status})
    if new_status not in ALLOWED_TRANSITIONS[order.status]:
        raise InvalidStateTransition("order", order.id, order.status, new_status)


def transition_order(session: Session, order_id: int, new_status: str, actor_user_id: int) -> Order:
    """
    Move an order forward (admin / payment integration).

    Cancellation goes through cancel_order so stock is released.
    """
    if new_status == ORDER_STATUS_CANCELLED:
        return cancel_order(session, order_id, actor_user_id=actor_user_id, is_admin=True)

    with unit_of_work(session, operation="order status change"):
        begin_write(session)
        order = get_order(session, order_id, lock=True)
        old_status = order.status
        _check_transition(order, new_status)
        order.status = new_status
        order.status_changed_at = utcnow()

    current_app.logger.info(
        "Order %s status %s -> %s by user %s", order_id, old_status, new_status, actor_user_id
    )
    return order


def mark_paid(session: Session, order_id: int, actor_user_id: int) -> Order:
    return transition_order(session, order_id, ORDER_STATUS_PAID, actor_user_id)


def mark_shipped(session: Session, order_id: int, actor_user_id: int) -> Order:
    return transition_order(session, order_id, ORDER_STATUS_SHIPPED, actor_user_id)


def mark_completed(session: Session, order_id: int, actor_user_id: int) -> Order:
    return transition_order(session, order_id, ORDER_STATUS_COMPLETED, actor_user_id)


def cancel_order(session: Session, order_id: int, *, actor_user_id: int, is_admin: bool = False) -> Order:
    """
    Cancel a Pending or Paid order and give its stock back.

    The owner or an admin may cancel. Status change and every release commit
    together or not at all.
    """
    with unit_of_work(session, operation="cancel order"):
        begin_write(session)
        order = get_order(session, order_id, lock=True)

        if order.user_id != actor_user_id and not is_admin:
            raise ForbiddenError("Order belongs to another user", details={"order_id": order_id})

        if order.status not in CANCELLABLE_STATUSES:
            raise InvalidStateTransition("order", order.id, order.status, ORDER_STATUS_CANCELLED)

        for item in get_order_items(session, order.id):
            release(session, item.product_id, item.quantity)

        order.status = ORDER_STATUS_CANCELLED
        order.status_changed_at = utcnow()

    current_app.logger.info("Order %s cancelled by user %s", order_id, actor_user_id)
    return order


# =============================================================================
# AUDIT
# =============================================================================

def verify_ledger_consistency(session: Session, order_id: int) -> dict:
    """
    Check one order against its ledger rows.

    - sum(quantity * unit_price_cents) equals total_amount_cents
    - exactly one Purchase transaction, for the order total
    """
    order = get_order(session, order_id)
    items = get_order_items(session, order_id)
    items_total = sum(item.quantity * item.unit_price_cents for item in items)

    purchases = list(
        session.scalars(
            select(Transaction).where(
                Transaction.order_id == order_id,
                Transaction.transaction_type == TRANSACTION_TYPE_PURCHASE,
            )
        )
    )

    problems = []
    if not items:
        problems.append("order has no items")
    if items_total != order.total_amount_cents:
        problems.append(f"items total {items_total} != order total {order.total_amount_cents}")
    if len(purchases) != 1:
        problems.append(f"expected 1 purchase transaction, found {len(purchases)}")
    elif purchases[0].amount_cents != order.total_amount_cents:
        problems.append(
            f"purchase amount {purchases[0].amount_cents} != order total {order.total_amount_cents}"
        )

    return {
        "order_id": order_id,
        "consistent": not problems,
        "items_total_cents": items_total,
        "order_total_cents": order.total_amount_cents,
        "purchase_transactions": len(purchases),
        "problems": problems,
    }
