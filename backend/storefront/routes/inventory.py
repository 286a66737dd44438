# Overview: Flask API routes for stock levels and product lookup; parses input and returns JSON responses.

# backend/storefront/routes/inventory.py
"""
Inventory API routes.

Stock only ever moves through inventory_service (reserve/release). These
routes expose the admin side: low-stock view, restock, critical levels.
"""

from flask import Blueprint, jsonify, g, current_app

from ..extensions import db
from ..errors import StorefrontError
from ..models.auth import ROLE_ADMIN, ROLE_PRODUCT_MANAGER
from ..services import inventory_service
from ..decorators import require_auth, require_role
from ..validation import error_response, internal_error, json_body, require_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")
products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@inventory_bp.get("/low-stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PRODUCT_MANAGER)
def low_stock_route():
    try:
        products = inventory_service.list_low_stock(db.session)
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return internal_error()


@inventory_bp.post("/<int:product_id>/restock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PRODUCT_MANAGER)
def restock_route(product_id: int):
    """Request body: {"quantity": 25}"""
    try:
        data = json_body()
        product = inventory_service.restock(
            db.session, product_id, require_int(data, "quantity"), actor_user_id=g.current_user.id
        )
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return internal_error()


@inventory_bp.put("/<int:product_id>/critical-level")
@require_auth
@require_role(ROLE_ADMIN, ROLE_PRODUCT_MANAGER)
def critical_level_route(product_id: int):
    """Request body: {"critical_stock_level": 5}"""
    try:
        data = json_body()
        product = inventory_service.set_critical_stock_level(
            db.session, product_id, require_int(data, "critical_stock_level")
        )
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set critical stock level")
        return internal_error()


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = inventory_service.get_product(db.session, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return internal_error()
