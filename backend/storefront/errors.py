"""
Storefront error taxonomy.

Every service raises a subclass of StorefrontError. Routes translate them to
JSON with the class-level status_code; anything else is an unexpected 500.

- ValidationError (400): rejected before any mutation
- ForbiddenError (403): actor may not touch the resource
- NotFoundError (404)
- ConflictError (409): recoverable with different input or state
- PersistenceFailure (500): storage failed, the unit of work was rolled back
"""

from __future__ import annotations


class StorefrontError(Exception):
    status_code = 400
    code = "STOREFRONT_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


# =============================================================================
# VALIDATION (400)
# =============================================================================

class ValidationError(StorefrontError):
    status_code = 400
    code = "VALIDATION_ERROR"


class EmptyCart(ValidationError):
    code = "EMPTY_CART"

    def __init__(self, user_id: int):
        super().__init__("Cart is empty", details={"user_id": user_id})


class InactiveProduct(ValidationError):
    code = "INACTIVE_PRODUCT"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} is not active", details={"product_id": product_id})
        self.product_id = product_id


class RefundAmountExceedsOrderTotal(ValidationError):
    code = "REFUND_AMOUNT_EXCEEDS_ORDER_TOTAL"

    def __init__(self, refund_amount_cents: int, order_total_cents: int):
        super().__init__(
            f"Refund amount {refund_amount_cents} exceeds order total {order_total_cents}",
            details={
                "refund_amount_cents": refund_amount_cents,
                "order_total_cents": order_total_cents,
            },
        )


# =============================================================================
# AUTHORIZATION (403)
# =============================================================================

class ForbiddenError(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"


# =============================================================================
# NOT FOUND (404)
# =============================================================================

class NotFoundError(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"


class ProductNotFound(NotFoundError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", details={"product_id": product_id})


class CartItemNotFound(NotFoundError):
    code = "CART_ITEM_NOT_FOUND"

    def __init__(self, cart_item_id: int):
        super().__init__(f"Cart item {cart_item_id} not found", details={"cart_item_id": cart_item_id})


class OrderNotFound(NotFoundError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", details={"order_id": order_id})


class ReturnNotFound(NotFoundError):
    code = "RETURN_NOT_FOUND"

    def __init__(self, return_id: int):
        super().__init__(f"Return {return_id} not found", details={"return_id": return_id})


class TransactionNotFound(NotFoundError):
    code = "TRANSACTION_NOT_FOUND"

    def __init__(self, transaction_id: int):
        super().__init__(
            f"Transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )


# =============================================================================
# CONFLICT (409)
# =============================================================================

class ConflictError(StorefrontError):
    status_code = 409
    code = "CONFLICT"


class InsufficientStock(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: int, requested: int | None = None):
        details = {"product_id": product_id}
        if requested is not None:
            details["requested_quantity"] = requested
        super().__init__(f"Insufficient stock for product {product_id}", details=details)
        self.product_id = product_id


class DuplicateReturn(ConflictError):
    code = "DUPLICATE_RETURN"

    def __init__(self, order_id: int, existing_return_id: int | None = None):
        super().__init__(
            f"A return already exists for order {order_id}",
            details={"order_id": order_id, "existing_return_id": existing_return_id},
        )


class InvalidOrderState(ConflictError):
    code = "INVALID_ORDER_STATE"


class InvalidStateTransition(ConflictError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, entity: str, entity_id: int, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} {entity_id} from {current} to {target}",
            details={"entity": entity, "id": entity_id, "current_status": current, "target_status": target},
        )


# =============================================================================
# PERSISTENCE (500)
# =============================================================================

class PersistenceFailure(StorefrontError):
    status_code = 500
    code = "PERSISTENCE_FAILURE"
