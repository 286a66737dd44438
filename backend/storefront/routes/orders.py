# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/storefront/routes/orders.py
"""
Order API Routes

- Customers see and cancel their own orders
- Admins see every order and drive status changes
- Cancellation gives stock back in the same transaction as the status change
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import StorefrontError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import order_service
from ..decorators import require_auth, require_role, is_admin
from ..validation import (
    date_arg,
    error_response,
    internal_error,
    json_body,
    page_args,
    serialize_page,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
def list_my_orders_route():
    """Query: status, page, page_size (default 10)."""
    try:
        page, page_size = page_args(default_size=10)
        result = order_service.list_user_orders(
            db.session,
            g.current_user.id,
            status=request.args.get("status") or None,
            page=page,
            page_size=page_size,
        )
        return jsonify(serialize_page(result)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error()


@orders_bp.get("/admin/all")
@require_auth
@require_role(ROLE_ADMIN)
def list_all_orders_route():
    """
    Query: status, user_id, start, end, min_amount_cents, max_amount_cents,
    sort_by (order_date | total_amount), descending (default true),
    page, page_size.
    """
    try:
        sort_by = request.args.get("sort_by", "order_date")
        if sort_by not in ("order_date", "total_amount"):
            raise ValidationError("sort_by must be order_date or total_amount")

        page, page_size = page_args(default_size=10)
        result = order_service.list_orders(
            db.session,
            status=request.args.get("status") or None,
            user_id=request.args.get("user_id", type=int),
            start=date_arg("start"),
            end=date_arg("end"),
            min_amount_cents=request.args.get("min_amount_cents", type=int),
            max_amount_cents=request.args.get("max_amount_cents", type=int),
            sort_by=sort_by,
            descending=request.args.get("descending", "true").lower() != "false",
            page=page,
            page_size=page_size,
        )
        return jsonify(serialize_page(result)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list all orders")
        return internal_error()


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_user(
            db.session, order_id, g.current_user.id, is_admin=is_admin()
        )
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return internal_error()


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    """
    Cancel a Pending or Paid order (owner or admin).

    Returns:
        200: cancelled, stock released
        403: someone else's order
        409: order already shipped, completed or cancelled
    """
    try:
        order = order_service.cancel_order(
            db.session, order_id, actor_user_id=g.current_user.id, is_admin=is_admin()
        )
        return jsonify({"order": order.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return internal_error()


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_role(ROLE_ADMIN)
def update_order_status_route(order_id: int):
    """Request body: {"status": "Paid" | "Shipped" | "Completed" | "Cancelled"}"""
    try:
        data = json_body()
        new_status = data.get("status")
        if not new_status:
            raise ValidationError("status required")

        order = order_service.transition_order(db.session, order_id, new_status, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return internal_error()


@orders_bp.get("/<int:order_id>/verify")
@require_auth
@require_role(ROLE_ADMIN)
def verify_order_route(order_id: int):
    try:
        return jsonify(order_service.verify_ledger_consistency(db.session, order_id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify order")
        return internal_error()
