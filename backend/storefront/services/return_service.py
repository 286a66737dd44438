# Overview: Return/refund workflow; request, admin decision, refund completion.

"""
Return Lifecycle

    Pending -> Approved -> Completed
    Pending -> Rejected

- A return covers the whole order. Only Shipped or Completed orders qualify.
- At most one open (Pending/Approved) return per order, enforced by a partial
  unique index as well as the check here. An order that already has a
  completed refund cannot be returned again.
- Completion writes the Refund row, links it, and gives every ordered unit
  back to stock in one storage transaction.
- Completing an already Completed return returns its existing refund row.
  refund_transaction_id is unique so two completions cannot both write one.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    DuplicateReturn,
    ForbiddenError,
    InvalidOrderState,
    InvalidStateTransition,
    RefundAmountExceedsOrderTotal,
    ReturnNotFound,
    ValidationError,
)
from ..models import OrderReturn, Transaction
from ..models.ledger import (
    RETURN_OPEN_STATUSES,
    RETURN_REASONS,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
    RETURN_STATUSES,
)
from ..models.orders import ORDER_STATUS_COMPLETED, ORDER_STATUS_SHIPPED
from ..pagination import paginate
from ..time_utils import utcnow
from .concurrency import begin_write, lock_for_update, unit_of_work
from .inventory_service import release
from .order_service import get_order, get_order_items
from .transaction_service import record_refund


RETURNABLE_ORDER_STATUSES = (ORDER_STATUS_SHIPPED, ORDER_STATUS_COMPLETED)


# =============================================================================
# LOOKUPS
# =============================================================================

def get_return(session: Session, return_id: int, *, lock: bool = False) -> OrderReturn:
    query = select(OrderReturn).where(OrderReturn.id == return_id)
    if lock:
        query = lock_for_update(query)
    order_return = session.execute(query).scalar_one_or_none()
    if order_return is None:
        raise ReturnNotFound(return_id)
    return order_return


def get_return_for_user(session: Session, return_id: int, user_id: int, *, is_admin: bool = False) -> OrderReturn:
    order_return = get_return(session, return_id)
    if order_return.user_id != user_id and not is_admin:
        raise ForbiddenError("Return belongs to another user", details={"return_id": return_id})
    return order_return


def _existing_blocking_return(session: Session, order_id: int) -> OrderReturn | None:
    return session.execute(
        select(OrderReturn)
        .where(
            OrderReturn.order_id == order_id,
            OrderReturn.status.in_(RETURN_OPEN_STATUSES + (RETURN_STATUS_COMPLETED,)),
        )
        .order_by(OrderReturn.id)
        .limit(1)
    ).scalar_one_or_none()


def list_user_returns(session: Session, user_id: int, page: int = 1, page_size: int = 10) -> dict:
    return list_returns(session, user_id=user_id, page=page, page_size=page_size)


def list_returns(
    session: Session,
    *,
    status: str | None = None,
    reason: str | None = None,
    order_id: int | None = None,
    user_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    """Newest-first page of returns with admin filters."""
    if status is not None and status not in RETURN_STATUSES:
        raise ValidationError(f"status must be one of {list(RETURN_STATUSES)}")
    if reason is not None and reason not in RETURN_REASONS:
        raise ValidationError(f"reason must be one of {list(RETURN_REASONS)}")

    query = select(OrderReturn)
    if status:
        query = query.where(OrderReturn.status == status)
    if reason:
        query = query.where(OrderReturn.return_reason == reason)
    if order_id is not None:
        query = query.where(OrderReturn.order_id == order_id)
    if user_id is not None:
        query = query.where(OrderReturn.user_id == user_id)
    if start is not None:
        query = query.where(OrderReturn.created_at >= start)
    if end is not None:
        query = query.where(OrderReturn.created_at <= end)

    return paginate(session, query.order_by(OrderReturn.created_at.desc(), OrderReturn.id.desc()), page, page_size)


# =============================================================================
# REQUEST
# =============================================================================

def request_return(
    session: Session,
    order_id: int,
    user_id: int,
    reason: str,
    description: str | None = None,
    *,
    is_admin: bool = False,
) -> OrderReturn:
    """
    Open a Pending return for a shipped or completed order.

    Raises OrderNotFound, ForbiddenError, InvalidOrderState, ValidationError,
    DuplicateReturn.
    """
    if reason not in RETURN_REASONS:
        raise ValidationError(f"reason must be one of {list(RETURN_REASONS)}", details={"reason": reason})

    try:
        with unit_of_work(session, operation="request return"):
            begin_write(session)
            order = get_order(session, order_id)

            if order.user_id != user_id and not is_admin:
                raise ForbiddenError("Order belongs to another user", details={"order_id": order_id})

            if order.status not in RETURNABLE_ORDER_STATUSES:
                raise InvalidOrderState(
                    f"Order {order_id} is {order.status}; only shipped or completed orders can be returned",
                    details={"order_id": order_id, "status": order.status},
                )

            existing = _existing_blocking_return(session, order_id)
            if existing is not None:
                raise DuplicateReturn(order_id, existing.id)

            now = utcnow()
            order_return = OrderReturn(
                order_id=order_id,
                user_id=order.user_id,
                return_reason=reason,
                return_description=(description or "").strip() or None,
                status=RETURN_STATUS_PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(order_return)
            try:
                session.flush()
            except IntegrityError as exc:
                # Lost the race on the open-return index
                raise DuplicateReturn(order_id) from exc
    except DuplicateReturn:
        current_app.logger.warning("Return request rejected for order %s: already returned", order_id)
        raise

    current_app.logger.info("Return %s requested for order %s (%s)", order_return.id, order_id, reason)
    return order_return


# =============================================================================
# DECISION
# =============================================================================

def decide(
    session: Session,
    return_id: int,
    approve: bool,
    actor_user_id: int,
    admin_note: str | None = None,
    refund_amount_cents: int | None = None,
) -> OrderReturn:
    """
    Approve or reject a Pending return (admin).

    Approval needs 0 < refund_amount_cents <= order total. A zero-total order
    has nothing to refund, so its return can only be rejected.
    """
    with unit_of_work(session, operation="decide return"):
        begin_write(session)
        order_return = get_return(session, return_id, lock=True)

        target = RETURN_STATUS_APPROVED if approve else RETURN_STATUS_REJECTED
        if order_return.status != RETURN_STATUS_PENDING:
            raise InvalidStateTransition("return", return_id, order_return.status, target)

        if approve:
            if (
                refund_amount_cents is None
                or isinstance(refund_amount_cents, bool)
                or not isinstance(refund_amount_cents, int)
                or refund_amount_cents <= 0
            ):
                raise ValidationError(
                    "refund_amount_cents must be a positive integer",
                    details={"refund_amount_cents": refund_amount_cents},
                )
            order = get_order(session, order_return.order_id)
            if refund_amount_cents > order.total_amount_cents:
                raise RefundAmountExceedsOrderTotal(refund_amount_cents, order.total_amount_cents)
            order_return.refund_amount_cents = refund_amount_cents

        order_return.status = target
        order_return.admin_note = (admin_note or "").strip() or None
        order_return.decided_by_user_id = actor_user_id
        order_return.updated_at = utcnow()

    current_app.logger.info("Return %s %s by user %s", return_id, target.lower(), actor_user_id)
    return order_return


def approve_return(session: Session, return_id: int, refund_amount_cents: int, actor_user_id: int,
                   admin_note: str | None = None) -> OrderReturn:
    return decide(session, return_id, True, actor_user_id, admin_note, refund_amount_cents)


def reject_return(session: Session, return_id: int, actor_user_id: int, admin_note: str | None = None) -> OrderReturn:
    return decide(session, return_id, False, actor_user_id, admin_note)


# =============================================================================
# COMPLETION
# =============================================================================

def complete_refund(session: Session, return_id: int, actor_user_id: int) -> Transaction:
    """
    Pay out an Approved return and restock its items. Idempotent.

    Raises ReturnNotFound, InvalidStateTransition (Pending/Rejected),
    PersistenceFailure.
    """
    with unit_of_work(session, operation="complete refund"):
        begin_write(session)
        order_return = get_return(session, return_id, lock=True)

        if order_return.status == RETURN_STATUS_COMPLETED:
            refund = session.get(Transaction, order_return.refund_transaction_id)
            current_app.logger.info("Return %s already completed; refund %s", return_id, refund.id)
            return refund

        if order_return.status != RETURN_STATUS_APPROVED:
            raise InvalidStateTransition("return", return_id, order_return.status, RETURN_STATUS_COMPLETED)

        order = get_order(session, order_return.order_id)
        refund = record_refund(session, order, order_return.refund_amount_cents, order_return.return_reason)

        for item in get_order_items(session, order.id):
            release(session, item.product_id, item.quantity)

        order_return.refund_transaction_id = refund.id
        order_return.status = RETURN_STATUS_COMPLETED
        order_return.updated_at = utcnow()

    current_app.logger.info(
        "Return %s completed by user %s: refund %s for %s cents",
        return_id, actor_user_id, refund.id, refund.amount_cents,
    )
    return refund
