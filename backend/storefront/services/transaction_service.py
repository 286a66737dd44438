# Overview: Transaction ledger; append-only record of monetary movements per order.

"""
Ledger Invariants (authoritative)

- Rows are appended, never updated or deleted. Corrections are Adjustment rows.
- Exactly one Purchase per order, written by checkout in the same storage
  transaction as the order (partial unique index on order_id).
- Refunds are separate rows written by the return workflow, one per
  completed return.
- record_* helpers flush but do not commit; they join the caller's unit of work.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..errors import OrderNotFound, TransactionNotFound, ValidationError
from ..models import Order, Transaction
from ..models.ledger import (
    TRANSACTION_STATUS_COMPLETED,
    TRANSACTION_STATUS_FAILED,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPE_ADJUSTMENT,
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPES,
)
from ..time_utils import utcnow
from ..pagination import paginate
from .concurrency import unit_of_work


# =============================================================================
# APPEND
# =============================================================================

def _append(
    session: Session,
    *,
    transaction_type: str,
    order: Order,
    user_id: int,
    amount_cents: int,
    description: str | None,
    status: str = TRANSACTION_STATUS_COMPLETED,
) -> Transaction:
    txn = Transaction(
        transaction_type=transaction_type,
        amount_cents=amount_cents,
        transaction_date=utcnow(),
        status=status,
        description=description,
        order_id=order.id,
        user_id=user_id,
    )
    session.add(txn)
    session.flush()  # assigns txn.id without committing
    return txn


def record_purchase(session: Session, order: Order) -> Transaction:
    """Purchase row for a freshly built order. Amount is the order total."""
    return _append(
        session,
        transaction_type=TRANSACTION_TYPE_PURCHASE,
        order=order,
        user_id=order.user_id,
        amount_cents=order.total_amount_cents,
        description=f"Purchase for Order #{order.id}",
    )


def record_refund(session: Session, order: Order, amount_cents: int, reason: str) -> Transaction:
    return _append(
        session,
        transaction_type=TRANSACTION_TYPE_REFUND,
        order=order,
        user_id=order.user_id,
        amount_cents=amount_cents,
        description=f"Refund for Order #{order.id} - {reason}",
    )


def record_adjustment(
    session: Session,
    order_id: int,
    amount_cents: int,
    description: str,
    actor_user_id: int,
) -> Transaction:
    """
    Manual ledger correction (admin). Commits.

    amount_cents is signed: positive credits the store, negative debits it.
    """
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents == 0:
        raise ValidationError("amount_cents must be a non-zero integer", details={"amount_cents": amount_cents})
    if not description or not description.strip():
        raise ValidationError("description required for adjustments")

    with unit_of_work(session, operation="record adjustment"):
        order = session.get(Order, order_id)
        if order is None:
            raise OrderNotFound(order_id)
        txn = _append(
            session,
            transaction_type=TRANSACTION_TYPE_ADJUSTMENT,
            order=order,
            user_id=order.user_id,
            amount_cents=amount_cents,
            description=description.strip(),
        )

    current_app.logger.info(
        "Adjustment %s recorded on order %s: %s cents by user %s",
        txn.id, order_id, amount_cents, actor_user_id,
    )
    return txn


# =============================================================================
# QUERIES
# =============================================================================

def get_transaction(session: Session, transaction_id: int) -> Transaction:
    txn = session.get(Transaction, transaction_id)
    if txn is None:
        raise TransactionNotFound(transaction_id)
    return txn


def get_purchase_for_order(session: Session, order_id: int) -> Transaction | None:
    return session.execute(
        select(Transaction).where(
            Transaction.order_id == order_id,
            Transaction.transaction_type == TRANSACTION_TYPE_PURCHASE,
        )
    ).scalar_one_or_none()


def list_order_transactions(session: Session, order_id: int) -> list[Transaction]:
    return list(
        session.scalars(
            select(Transaction).where(Transaction.order_id == order_id).order_by(Transaction.id)
        )
    )


def list_transactions(
    session: Session,
    *,
    transaction_type: str | None = None,
    status: str | None = None,
    order_id: int | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int = 20,
) -> dict:
    """Filtered, newest-first page of ledger rows."""
    if transaction_type is not None and transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"transaction_type must be one of {list(TRANSACTION_TYPES)}")
    if status is not None and status not in TRANSACTION_STATUSES:
        raise ValidationError(f"status must be one of {list(TRANSACTION_STATUSES)}")

    query = select(Transaction)
    if transaction_type:
        query = query.where(Transaction.transaction_type == transaction_type)
    if status:
        query = query.where(Transaction.status == status)
    if order_id is not None:
        query = query.where(Transaction.order_id == order_id)
    if user_id is not None:
        query = query.where(Transaction.user_id == user_id)
    if start is not None:
        query = query.where(Transaction.transaction_date >= start)
    if end is not None:
        query = query.where(Transaction.transaction_date <= end)

    return paginate(session, query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()), page, page_size)


def list_user_transactions(session: Session, user_id: int, page: int = 1, page_size: int = 20) -> dict:
    return list_transactions(session, user_id=user_id, page=page, page_size=page_size)


def get_statistics(session: Session, start: datetime | None = None, end: datetime | None = None) -> dict:
    """
    Revenue summary over an optional date window.

    - total_revenue_cents: completed purchases
    - total_refunds_cents: completed refunds
    - net_revenue_cents: revenue - refunds
    - average_order_value_cents: revenue / completed purchases (floor)
    """
    query = select(
        Transaction.transaction_type,
        Transaction.status,
        func.count(Transaction.id),
        func.coalesce(func.sum(Transaction.amount_cents), 0),
    ).group_by(Transaction.transaction_type, Transaction.status)
    if start is not None:
        query = query.where(Transaction.transaction_date >= start)
    if end is not None:
        query = query.where(Transaction.transaction_date <= end)

    count_by_type = {t: 0 for t in TRANSACTION_TYPES}
    amount_by_type = {t: 0 for t in TRANSACTION_TYPES}
    total = successful = failed = 0
    completed_purchases = 0

    for txn_type, status, count, amount in session.execute(query).all():
        count = int(count)
        amount = int(amount)
        total += count
        count_by_type[txn_type] = count_by_type.get(txn_type, 0) + count
        if status == TRANSACTION_STATUS_COMPLETED:
            successful += count
            amount_by_type[txn_type] = amount_by_type.get(txn_type, 0) + amount
            if txn_type == TRANSACTION_TYPE_PURCHASE:
                completed_purchases += count
        elif status == TRANSACTION_STATUS_FAILED:
            failed += count

    revenue = amount_by_type[TRANSACTION_TYPE_PURCHASE]
    refunds = amount_by_type[TRANSACTION_TYPE_REFUND]

    return {
        "total_revenue_cents": revenue,
        "total_refunds_cents": refunds,
        "net_revenue_cents": revenue - refunds,
        "total_transactions": total,
        "successful_transactions": successful,
        "failed_transactions": failed,
        "amount_by_type_cents": amount_by_type,
        "count_by_type": count_by_type,
        "average_order_value_cents": revenue // completed_purchases if completed_purchases else 0,
    }

