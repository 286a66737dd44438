# Overview: Flask API route for checkout; parses input and returns JSON responses.

# backend/storefront/routes/checkout.py

from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..errors import StorefrontError
from ..services import checkout_service
from ..decorators import require_auth
from ..validation import error_response, internal_error, json_body


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")


@checkout_bp.post("")
@require_auth
def checkout_route():
    """
    Place an order from the caller's cart.

    Request body: {"shipping_address": "..."}

    Returns:
        201: {"order", "items"}
        400: empty cart, inactive product, missing address
        409: insufficient stock (nothing reserved, cart unchanged)
    """
    try:
        data = json_body()
        order = checkout_service.checkout(db.session, g.current_user.id, data.get("shipping_address"))
        payload = order.to_dict(include_items=True)
        return jsonify({"order": payload, "items": payload["items"]}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Checkout failed")
        return internal_error()
