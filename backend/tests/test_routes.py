"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Customers are denied admin operations (403)
- Domain errors map to status codes with the {"error", "code", "details"} body
- Checkout and the return workflow end to end over HTTP
"""

import pytest

from storefront.models import Product


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/cart"),
            ("POST", "/api/cart/items"),
            ("POST", "/api/checkout"),
            ("GET", "/api/orders"),
            ("GET", "/api/orders/admin/all"),
            ("POST", "/api/returns"),
            ("GET", "/api/returns"),
            ("GET", "/api/transactions"),
            ("GET", "/api/transactions/statistics"),
            ("GET", "/api/inventory/low-stock"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.get_json()["code"] == "UNAUTHENTICATED"

    def test_bad_token(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestLogin:

    def test_login_me_logout(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Password123!"})
        assert resp.status_code == 200
        token = resp.get_json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.get_json()["user"]["email"] == customer.email

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_bad_credentials(self, client, customer):
        resp = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/auth/login", json={})
        assert resp.status_code == 400


# =============================================================================
# CUSTOMER DENIED ADMIN OPERATIONS (403)
# =============================================================================


class TestCustomerDenied:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/orders/admin/all"),
            ("PATCH", "/api/orders/1/status"),
            ("GET", "/api/returns"),
            ("POST", "/api/returns/1/decide"),
            ("POST", "/api/returns/1/complete"),
            ("GET", "/api/transactions"),
            ("GET", "/api/transactions/statistics"),
            ("POST", "/api/transactions/adjustments"),
            ("GET", "/api/inventory/low-stock"),
            ("POST", "/api/inventory/1/restock"),
        ],
    )
    def test_forbidden(self, client, customer, headers_for, method, path):
        resp = getattr(client, method.lower())(path, headers=headers_for(customer), json={})
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "FORBIDDEN"

    def test_product_manager_can_restock(self, client, product_manager, headers_for, make_product):
        product = make_product(stock=1)
        resp = client.post(
            f"/api/inventory/{product.id}/restock",
            json={"quantity": 4},
            headers=headers_for(product_manager),
        )
        assert resp.status_code == 200
        assert resp.get_json()["product"]["stock"] == 5


# =============================================================================
# CART + CHECKOUT
# =============================================================================


class TestCheckoutFlow:

    def test_cart_then_checkout(self, client, customer, headers_for, make_product, db_session):
        headers = headers_for(customer)
        product = make_product(price_cents=1250, stock=3)

        resp = client.post("/api/cart/items", json={"product_id": product.id, "count": 2}, headers=headers)
        assert resp.status_code == 201

        cart = client.get("/api/cart", headers=headers).get_json()
        assert cart["total_price_cents"] == 2500

        resp = client.post("/api/checkout", json={"shipping_address": "9 Harbour Lane"}, headers=headers)
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["order"]["total_amount_cents"] == 2500
        assert body["order"]["status"] == "Pending"
        assert [i["quantity"] for i in body["items"]] == [2]

        assert db_session.get(Product, product.id).stock == 1
        assert client.get("/api/cart", headers=headers).get_json()["items"] == []

        orders = client.get("/api/orders", headers=headers).get_json()
        assert orders["total_count"] == 1

    def test_empty_cart_is_400(self, client, customer, headers_for):
        resp = client.post("/api/checkout", json={"shipping_address": "x"}, headers=headers_for(customer))
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "EMPTY_CART"

    def test_insufficient_stock_is_409(self, client, customer, headers_for, make_product, db_session):
        headers = headers_for(customer)
        product = make_product(stock=2)
        client.post("/api/cart/items", json={"product_id": product.id, "count": 2}, headers=headers)
        product.stock = 1
        db_session.commit()

        resp = client.post("/api/checkout", json={"shipping_address": "x"}, headers=headers)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["product_id"] == product.id

    def test_non_integer_count_is_400(self, client, customer, headers_for, make_product):
        product = make_product()
        resp = client.post(
            "/api/cart/items",
            json={"product_id": product.id, "count": "2"},
            headers=headers_for(customer),
        )
        assert resp.status_code == 400

    def test_other_users_order_is_403(self, client, customer, other_customer, headers_for, make_product,
                                      place_order):
        order = place_order(customer, [(make_product(), 1)])
        resp = client.get(f"/api/orders/{order.id}", headers=headers_for(other_customer))
        assert resp.status_code == 403

    def test_cancel_over_http(self, client, customer, headers_for, make_product, place_order, db_session):
        product = make_product(stock=5)
        order = place_order(customer, [(product, 5)])
        resp = client.post(f"/api/orders/{order.id}/cancel", headers=headers_for(customer))
        assert resp.status_code == 200
        assert resp.get_json()["order"]["status"] == "Cancelled"
        assert db_session.get(Product, product.id).stock == 5


# =============================================================================
# RETURNS
# =============================================================================


class TestReturnFlow:

    def test_request_decide_complete(self, client, customer, admin, headers_for, make_product, place_order,
                                     db_session):
        customer_headers = headers_for(customer)
        admin_headers = headers_for(admin)
        product = make_product(price_cents=5000, stock=4)
        order = place_order(customer, [(product, 2)])

        for status in ("Paid", "Shipped"):
            resp = client.patch(f"/api/orders/{order.id}/status", json={"status": status}, headers=admin_headers)
            assert resp.status_code == 200

        resp = client.post(
            "/api/returns",
            json={"order_id": order.id, "reason": "Damaged", "description": "Box crushed"},
            headers=customer_headers,
        )
        assert resp.status_code == 201
        return_id = resp.get_json()["return"]["id"]

        dup = client.post("/api/returns", json={"order_id": order.id, "reason": "Other"}, headers=customer_headers)
        assert dup.status_code == 409
        assert dup.get_json()["code"] == "DUPLICATE_RETURN"

        too_much = client.post(
            f"/api/returns/{return_id}/decide",
            json={"approve": True, "refund_amount_cents": 10001},
            headers=admin_headers,
        )
        assert too_much.status_code == 400
        assert too_much.get_json()["code"] == "REFUND_AMOUNT_EXCEEDS_ORDER_TOTAL"

        resp = client.post(
            f"/api/returns/{return_id}/decide",
            json={"approve": True, "refund_amount_cents": 10000},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        first = client.post(f"/api/returns/{return_id}/complete", headers=admin_headers)
        second = client.post(f"/api/returns/{return_id}/complete", headers=admin_headers)
        assert first.status_code == 200
        assert second.status_code == 200
        assert first.get_json()["transaction"]["id"] == second.get_json()["transaction"]["id"]
        assert first.get_json()["transaction"]["amount_cents"] == 10000
        assert first.get_json()["return"]["status"] == "Completed"
        assert db_session.get(Product, product.id).stock == 4

        mine = client.get("/api/transactions/mine", headers=customer_headers).get_json()
        assert sorted(t["transaction_type"] for t in mine["items"]) == ["Purchase", "Refund"]

        stats = client.get("/api/transactions/statistics", headers=admin_headers).get_json()
        assert stats["net_revenue_cents"] == 0

    def test_return_on_pending_order_is_409(self, client, customer, headers_for, make_product, place_order):
        order = place_order(customer, [(make_product(), 1)])
        resp = client.post(
            "/api/returns",
            json={"order_id": order.id, "reason": "Other"},
            headers=headers_for(customer),
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INVALID_ORDER_STATE"

    def test_unknown_return_is_404(self, client, admin, headers_for):
        resp = client.post("/api/returns/999/complete", headers=headers_for(admin))
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "RETURN_NOT_FOUND"


# =============================================================================
# PUBLIC
# =============================================================================


class TestPublic:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    def test_product_not_found_shape(self, client, db_session):
        resp = client.get("/api/products/4040")
        assert resp.status_code == 404
        assert resp.get_json() == {
            "error": "Product 4040 not found",
            "code": "PRODUCT_NOT_FOUND",
            "details": {"product_id": 4040},
        }

    def test_product_below_critical_flag(self, client, make_product):
        product = make_product(stock=1, critical_stock_level=2)
        resp = client.get(f"/api/products/{product.id}")
        assert resp.get_json()["product"]["is_below_critical"] is True
