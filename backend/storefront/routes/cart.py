# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

# backend/storefront/routes/cart.py
"""
Cart API Routes

Every route acts on the authenticated user's own cart. Stock checks here are
advisory; checkout reserves for real.
"""

from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..errors import StorefrontError
from ..services import cart_service
from ..decorators import require_auth
from ..validation import error_response, internal_error, json_body, require_int


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    try:
        return jsonify(cart_service.get_cart_summary(db.session, g.current_user.id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return internal_error()


@cart_bp.post("/items")
@require_auth
def add_cart_item_route():
    """
    Request body: {"product_id": 1, "count": 2}

    Returns:
        201: line created or merged
        400: bad count, inactive product, not enough stock
        404: unknown product
    """
    try:
        data = json_body()
        item = cart_service.add_item(
            db.session,
            user_id=g.current_user.id,
            product_id=require_int(data, "product_id"),
            count=require_int(data, "count"),
        )
        return jsonify({"item": item.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return internal_error()


@cart_bp.patch("/items/<int:cart_item_id>")
@require_auth
def update_cart_item_route(cart_item_id: int):
    try:
        data = json_body()
        item = cart_service.update_item(
            db.session, g.current_user.id, cart_item_id, require_int(data, "count")
        )
        return jsonify({"item": item.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return internal_error()


@cart_bp.delete("/items/<int:cart_item_id>")
@require_auth
def remove_cart_item_route(cart_item_id: int):
    try:
        cart_service.remove_item(db.session, g.current_user.id, cart_item_id)
        return jsonify({"message": "Removed"}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item")
        return internal_error()


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    try:
        removed = cart_service.clear_cart(db.session, g.current_user.id)
        return jsonify({"removed": removed}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return internal_error()
