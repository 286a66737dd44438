"""Transaction ledger tests: uniqueness, adjustments, filters, statistics."""

import pytest
from sqlalchemy import func, select

from storefront.errors import OrderNotFound, PersistenceFailure, TransactionNotFound, ValidationError
from storefront.models import Transaction
from storefront.models.ledger import (
    TRANSACTION_TYPE_ADJUSTMENT,
    TRANSACTION_TYPE_PURCHASE,
    TRANSACTION_TYPE_REFUND,
)
from storefront.services import return_service, transaction_service
from storefront.services.concurrency import unit_of_work


def _ledger_size(db_session):
    return db_session.execute(select(func.count(Transaction.id))).scalar_one()


class TestPurchaseUniqueness:

    def test_second_purchase_for_order_is_refused(self, db_session, customer, make_product, place_order):
        order = place_order(customer, [(make_product(price_cents=700), 1)])

        with pytest.raises(PersistenceFailure):
            with unit_of_work(db_session, operation="duplicate purchase"):
                transaction_service.record_purchase(db_session, order)

        assert _ledger_size(db_session) == 1

    def test_get_purchase_for_order(self, db_session, customer, make_product, place_order):
        order = place_order(customer, [(make_product(price_cents=700), 2)])
        purchase = transaction_service.get_purchase_for_order(db_session, order.id)
        assert purchase.amount_cents == 1400


class TestAdjustments:

    def test_adjustment_appends(self, db_session, customer, admin, make_product, place_order):
        order = place_order(customer, [(make_product(price_cents=700), 1)])
        txn = transaction_service.record_adjustment(db_session, order.id, -150, "Courier credit", admin.id)

        assert txn.transaction_type == TRANSACTION_TYPE_ADJUSTMENT
        assert txn.amount_cents == -150
        assert txn.user_id == customer.id
        assert [t.transaction_type for t in transaction_service.list_order_transactions(db_session, order.id)] == [
            TRANSACTION_TYPE_PURCHASE,
            TRANSACTION_TYPE_ADJUSTMENT,
        ]

    @pytest.mark.parametrize("amount", [0, 1.5, True])
    def test_adjustment_amount_must_be_non_zero_int(self, db_session, customer, admin, make_product,
                                                    place_order, amount):
        order = place_order(customer, [(make_product(), 1)])
        with pytest.raises(ValidationError):
            transaction_service.record_adjustment(db_session, order.id, amount, "x", admin.id)

    def test_adjustment_needs_description(self, db_session, customer, admin, make_product, place_order):
        order = place_order(customer, [(make_product(), 1)])
        with pytest.raises(ValidationError):
            transaction_service.record_adjustment(db_session, order.id, 100, "   ", admin.id)

    def test_adjustment_unknown_order(self, db_session, admin):
        with pytest.raises(OrderNotFound):
            transaction_service.record_adjustment(db_session, 404, 100, "x", admin.id)


class TestQueries:

    def test_get_transaction_not_found(self, db_session):
        with pytest.raises(TransactionNotFound):
            transaction_service.get_transaction(db_session, 12345)

    def test_list_by_type_and_user(self, db_session, customer, other_customer, admin, make_product, place_order):
        product = make_product(stock=20)
        mine = place_order(customer, [(product, 1)])
        place_order(other_customer, [(product, 1)])
        transaction_service.record_adjustment(db_session, mine.id, 50, "Goodwill", admin.id)

        purchases = transaction_service.list_transactions(db_session, transaction_type=TRANSACTION_TYPE_PURCHASE)
        assert purchases["total_count"] == 2

        own = transaction_service.list_user_transactions(db_session, customer.id)
        assert own["total_count"] == 2
        assert all(t.user_id == customer.id for t in own["items"])

    def test_list_rejects_unknown_type(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(db_session, transaction_type="Gift")


class TestStatistics:

    def test_revenue_refunds_and_average(self, db_session, customer, admin, make_product, place_order,
                                         ship_order):
        product = make_product(price_cents=1000, stock=20)
        first = ship_order(place_order(customer, [(product, 3)]))
        place_order(customer, [(product, 1)])

        order_return = return_service.request_return(db_session, first.id, customer.id, "Damaged")
        return_service.approve_return(db_session, order_return.id, 1200, admin.id)
        return_service.complete_refund(db_session, order_return.id, admin.id)

        stats = transaction_service.get_statistics(db_session)

        assert stats["total_revenue_cents"] == 4000
        assert stats["total_refunds_cents"] == 1200
        assert stats["net_revenue_cents"] == 2800
        assert stats["total_transactions"] == 3
        assert stats["successful_transactions"] == 3
        assert stats["failed_transactions"] == 0
        assert stats["count_by_type"][TRANSACTION_TYPE_REFUND] == 1
        assert stats["average_order_value_cents"] == 2000

    def test_empty_ledger(self, db_session):
        stats = transaction_service.get_statistics(db_session)
        assert stats["total_revenue_cents"] == 0
        assert stats["average_order_value_cents"] == 0
