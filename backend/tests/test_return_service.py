"""
Return/refund workflow tests.

Verifies:
- Full refund of a 100.00 order: Refund row, link, restock
- Completion is idempotent (one Refund row, one restock)
- Decisions only from Pending; completion only from Approved
- One open return per order, and no second return after a refund
- Concurrent completions write one refund and restock once
"""

import threading

import pytest
from sqlalchemy import select

from storefront import create_app
from storefront.errors import (
    DuplicateReturn,
    ForbiddenError,
    InvalidOrderState,
    InvalidStateTransition,
    OrderNotFound,
    RefundAmountExceedsOrderTotal,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import OrderReturn, Product, Transaction, User
from storefront.models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from storefront.models.ledger import (
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
    TRANSACTION_TYPE_REFUND,
)
from storefront.services import cart_service, checkout_service, order_service, return_service


@pytest.fixture
def shipped_order(db_session, customer, make_product, place_order, ship_order):
    """A shipped order worth exactly 100.00 (two units at 50.00)."""
    product = make_product(price_cents=5000, stock=10)
    order = ship_order(place_order(customer, [(product, 2)]))
    return order, product


def _refunds(db_session, order_id):
    return db_session.scalars(
        select(Transaction).where(
            Transaction.order_id == order_id,
            Transaction.transaction_type == TRANSACTION_TYPE_REFUND,
        )
    ).all()


# =============================================================================
# FULL REFUND
# =============================================================================


class TestFullRefund:

    def test_full_refund_of_100(self, db_session, customer, admin, shipped_order):
        order, product = shipped_order
        assert order.total_amount_cents == 10000
        assert db_session.get(Product, product.id).stock == 8

        order_return = return_service.request_return(
            db_session, order.id, customer.id, "DefectiveProduct", "Both arrived broken"
        )
        assert order_return.status == RETURN_STATUS_PENDING

        approved = return_service.decide(
            db_session, order_return.id, True, admin.id, admin_note="ok", refund_amount_cents=10000
        )
        assert approved.status == RETURN_STATUS_APPROVED
        assert approved.decided_by_user_id == admin.id

        refund = return_service.complete_refund(db_session, order_return.id, admin.id)

        assert refund.transaction_type == TRANSACTION_TYPE_REFUND
        assert refund.amount_cents == 10000
        assert refund.order_id == order.id

        completed = return_service.get_return(db_session, order_return.id)
        assert completed.status == RETURN_STATUS_COMPLETED
        assert completed.refund_transaction_id == refund.id
        assert db_session.get(Product, product.id).stock == 10

    def test_complete_twice_is_idempotent(self, db_session, customer, admin, shipped_order):
        order, product = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "Damaged")
        return_service.approve_return(db_session, order_return.id, 4000, admin.id)

        first = return_service.complete_refund(db_session, order_return.id, admin.id)
        second = return_service.complete_refund(db_session, order_return.id, admin.id)

        assert first.id == second.id
        assert len(_refunds(db_session, order.id)) == 1
        assert db_session.get(Product, product.id).stock == 10

    def test_partial_amount_still_restocks_every_item(self, db_session, customer, admin, shipped_order):
        order, product = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "ChangeOfMind")
        return_service.approve_return(db_session, order_return.id, 2500, admin.id)
        refund = return_service.complete_refund(db_session, order_return.id, admin.id)

        assert refund.amount_cents == 2500
        assert db_session.get(Product, product.id).stock == 10


# =============================================================================
# DECISIONS
# =============================================================================


class TestDecide:

    def test_decide_on_rejected_return_fails(self, db_session, customer, admin, shipped_order):
        order, _ = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "NotAsDescribed")
        rejected = return_service.reject_return(db_session, order_return.id, admin.id, "Outside policy")
        assert rejected.status == RETURN_STATUS_REJECTED
        assert rejected.admin_note == "Outside policy"

        with pytest.raises(InvalidStateTransition):
            return_service.decide(db_session, order_return.id, True, admin.id, refund_amount_cents=100)
        assert return_service.get_return(db_session, order_return.id).status == RETURN_STATUS_REJECTED

    def test_refund_cannot_exceed_order_total(self, db_session, customer, admin, shipped_order):
        order, _ = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "Other")
        with pytest.raises(RefundAmountExceedsOrderTotal):
            return_service.approve_return(db_session, order_return.id, 10001, admin.id)
        assert return_service.get_return(db_session, order_return.id).status == RETURN_STATUS_PENDING

    @pytest.mark.parametrize("amount", [0, -100, None])
    def test_approval_needs_positive_amount(self, db_session, customer, admin, shipped_order, amount):
        order, _ = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "Other")
        with pytest.raises(ValidationError):
            return_service.decide(db_session, order_return.id, True, admin.id, refund_amount_cents=amount)

    def test_cannot_complete_pending_or_rejected(self, db_session, customer, admin, shipped_order):
        order, product = shipped_order
        order_return = return_service.request_return(db_session, order.id, customer.id, "Other")
        with pytest.raises(InvalidStateTransition):
            return_service.complete_refund(db_session, order_return.id, admin.id)

        return_service.reject_return(db_session, order_return.id, admin.id)
        with pytest.raises(InvalidStateTransition):
            return_service.complete_refund(db_session, order_return.id, admin.id)

        assert _refunds(db_session, order.id) == []
        assert db_session.get(Product, product.id).stock == 8


# =============================================================================
# REQUEST RULES
# =============================================================================


class TestRequestReturn:

    def test_pending_order_cannot_be_returned(self, db_session, customer, make_product, place_order):
        order = place_order(customer, [(make_product(), 1)])
        with pytest.raises(InvalidOrderState):
            return_service.request_return(db_session, order.id, customer.id, "Other")

    def test_completed_order_can_be_returned(self, db_session, customer, make_product, place_order, ship_order):
        order = ship_order(place_order(customer, [(make_product(), 1)]), complete=True)
        order_return = return_service.request_return(db_session, order.id, customer.id, "Other")
        assert order_return.status == RETURN_STATUS_PENDING

    def test_unknown_order(self, db_session, customer):
        with pytest.raises(OrderNotFound):
            return_service.request_return(db_session, 999, customer.id, "Other")

    def test_unknown_reason(self, db_session, customer, shipped_order):
        order, _ = shipped_order
        with pytest.raises(ValidationError):
            return_service.request_return(db_session, order.id, customer.id, "Bored")

    def test_other_customer_forbidden(self, db_session, other_customer, shipped_order):
        order, _ = shipped_order
        with pytest.raises(ForbiddenError):
            return_service.request_return(db_session, order.id, other_customer.id, "Other")

    def test_one_open_return_per_order(self, db_session, customer, shipped_order):
        order, _ = shipped_order
        first = return_service.request_return(db_session, order.id, customer.id, "Other")
        with pytest.raises(DuplicateReturn) as exc:
            return_service.request_return(db_session, order.id, customer.id, "Damaged")
        assert exc.value.details["existing_return_id"] == first.id

    def test_new_request_allowed_after_rejection(self, db_session, customer, admin, shipped_order):
        order, _ = shipped_order
        first = return_service.request_return(db_session, order.id, customer.id, "Other")
        return_service.reject_return(db_session, first.id, admin.id)

        second = return_service.request_return(db_session, order.id, customer.id, "Damaged")
        assert second.id != first.id

    def test_no_second_return_after_refund(self, db_session, customer, admin, shipped_order):
        order, _ = shipped_order
        first = return_service.request_return(db_session, order.id, customer.id, "Other")
        return_service.approve_return(db_session, first.id, 10000, admin.id)
        return_service.complete_refund(db_session, first.id, admin.id)

        with pytest.raises(DuplicateReturn):
            return_service.request_return(db_session, order.id, customer.id, "Damaged")

    def test_competing_open_return_hits_the_index(self, db_session, customer, shipped_order, monkeypatch):
        order, _ = shipped_order
        return_service.request_return(db_session, order.id, customer.id, "Other")

        # Second request never sees the first one, as if both checked at once
        monkeypatch.setattr(return_service, "_existing_blocking_return", lambda session, order_id: None)

        with pytest.raises(DuplicateReturn) as exc:
            return_service.request_return(db_session, order.id, customer.id, "Damaged")
        assert exc.value.details["order_id"] == order.id

        rows = db_session.scalars(select(OrderReturn).where(OrderReturn.order_id == order.id)).all()
        assert [r.return_reason for r in rows] == ["Other"]


class TestListReturns:

    def test_filters(self, db_session, customer, admin, make_product, place_order, ship_order):
        product = make_product(stock=10)
        a = ship_order(place_order(customer, [(product, 1)]))
        b = ship_order(place_order(customer, [(product, 1)]))
        ra = return_service.request_return(db_session, a.id, customer.id, "Damaged")
        rb = return_service.request_return(db_session, b.id, customer.id, "Other")
        return_service.reject_return(db_session, rb.id, admin.id)

        pending = return_service.list_returns(db_session, status=RETURN_STATUS_PENDING)
        assert [r.id for r in pending["items"]] == [ra.id]

        damaged = return_service.list_returns(db_session, reason="Damaged")
        assert [r.id for r in damaged["items"]] == [ra.id]

        mine = return_service.list_user_returns(db_session, customer.id)
        assert mine["total_count"] == 2
        assert all(isinstance(r, OrderReturn) for r in mine["items"])


class TestZeroTotalOrder:

    def test_free_order_can_only_be_rejected(self, db_session, customer, admin, make_product, place_order,
                                             ship_order):
        order = ship_order(place_order(customer, [(make_product(price_cents=0), 1)]))
        assert order.total_amount_cents == 0
        order_return = return_service.request_return(db_session, order.id, customer.id, "ChangeOfMind")

        with pytest.raises(ValidationError):
            return_service.approve_return(db_session, order_return.id, 0, admin.id)

        rejected = return_service.reject_return(db_session, order_return.id, admin.id, "Nothing to refund")
        assert rejected.status == RETURN_STATUS_REJECTED


# =============================================================================
# CONCURRENCY
# =============================================================================


class TestConcurrentCompletion:
    """Several admins complete the same approved return at once."""

    def test_one_refund_one_restock(self, tmp_path):
        race_app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'refund_race.sqlite3'}",
            'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30, "check_same_thread": False}},
        })

        with race_app.app_context():
            db.create_all()
            buyer = User(email="buyer@example.com", password_hash="x", role=ROLE_CUSTOMER, is_active=True)
            staff = User(email="staff@example.com", password_hash="x", role=ROLE_ADMIN, is_active=True)
            product = Product(sku="RET-1", name="Kettle", price_cents=2500, stock=6)
            db.session.add_all([buyer, staff, product])
            db.session.commit()

            cart_service.add_item(db.session, buyer.id, product.id, 2)
            order = checkout_service.checkout(db.session, buyer.id, "1 Main Street")
            order_service.mark_paid(db.session, order.id, staff.id)
            order_service.mark_shipped(db.session, order.id, staff.id)
            order_return = return_service.request_return(db.session, order.id, buyer.id, "Damaged")
            return_service.approve_return(db.session, order_return.id, 5000, staff.id)

            return_id, order_id, product_id, staff_id = order_return.id, order.id, product.id, staff.id
            assert db.session.get(Product, product_id).stock == 4
            db.session.remove()

        workers = 4
        barrier = threading.Barrier(workers)
        refund_ids = []
        errors = []

        def attempt():
            with race_app.app_context():
                barrier.wait()
                try:
                    refund_ids.append(return_service.complete_refund(db.session, return_id, staff_id).id)
                except Exception as e:
                    errors.append(e)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        assert len(refund_ids) == workers
        assert len(set(refund_ids)) == 1

        with race_app.app_context():
            assert len(_refunds(db.session, order_id)) == 1
            assert db.session.get(Product, product_id).stock == 6
            assert return_service.get_return(db.session, return_id).refund_transaction_id == refund_ids[0]
            db.session.remove()
            db.engine.dispose()
