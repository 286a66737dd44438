# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/storefront/routes/returns.py
"""
Return Processing API Routes

DESIGN:
- Customers request a return for a whole shipped/completed order
- Admin approves (with refund amount) or rejects
- Admin completes an approved return: Refund row + restock, atomically
- Completing twice returns the same refund transaction
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import StorefrontError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import return_service
from ..decorators import require_auth, require_role, is_admin
from ..validation import (
    date_arg,
    error_response,
    internal_error,
    json_body,
    optional_int,
    page_args,
    require_int,
    serialize_page,
)


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


# =============================================================================
# CUSTOMER
# =============================================================================

@returns_bp.post("")
@require_auth
def create_return_route():
    """
    Request body:
    {
        "order_id": 123,
        "reason": "DefectiveProduct",
        "description": "Screen cracked"  (optional)
    }

    Returns:
        201: return created with Pending status
        400: unknown reason
        403: someone else's order
        409: order not shipped/completed, or already has a return
    """
    try:
        data = json_body()
        order_return = return_service.request_return(
            db.session,
            order_id=require_int(data, "order_id"),
            user_id=g.current_user.id,
            reason=data.get("reason"),
            description=data.get("description"),
            is_admin=is_admin(),
        )
        return jsonify({"return": order_return.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create return")
        return internal_error()


@returns_bp.get("/mine")
@require_auth
def list_my_returns_route():
    try:
        page, page_size = page_args(default_size=10)
        result = return_service.list_user_returns(db.session, g.current_user.id, page, page_size)
        return jsonify(serialize_page(result)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return internal_error()


@returns_bp.get("/<int:return_id>")
@require_auth
def get_return_route(return_id: int):
    try:
        order_return = return_service.get_return_for_user(
            db.session, return_id, g.current_user.id, is_admin=is_admin()
        )
        return jsonify({"return": order_return.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get return")
        return internal_error()


# =============================================================================
# ADMIN
# =============================================================================

@returns_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_returns_route():
    """Query: status, reason, order_id, user_id, start, end, page, page_size."""
    try:
        page, page_size = page_args(default_size=10)
        result = return_service.list_returns(
            db.session,
            status=request.args.get("status") or None,
            reason=request.args.get("reason") or None,
            order_id=request.args.get("order_id", type=int),
            user_id=request.args.get("user_id", type=int),
            start=date_arg("start"),
            end=date_arg("end"),
            page=page,
            page_size=page_size,
        )
        return jsonify(serialize_page(result)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list all returns")
        return internal_error()


@returns_bp.post("/<int:return_id>/decide")
@require_auth
@require_role(ROLE_ADMIN)
def decide_return_route(return_id: int):
    """
    Request body:
    {
        "approve": true,
        "refund_amount_cents": 10000,  (required when approving)
        "admin_note": "..."  (optional)
    }
    """
    try:
        data = json_body()
        approve = data.get("approve")
        if not isinstance(approve, bool):
            raise ValidationError("approve must be true or false")

        order_return = return_service.decide(
            db.session,
            return_id,
            approve=approve,
            actor_user_id=g.current_user.id,
            admin_note=data.get("admin_note"),
            refund_amount_cents=optional_int(data, "refund_amount_cents"),
        )
        return jsonify({"return": order_return.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to decide return")
        return internal_error()


@returns_bp.post("/<int:return_id>/complete")
@require_auth
@require_role(ROLE_ADMIN)
def complete_return_route(return_id: int):
    """
    Pay out an approved return. Safe to repeat.

    Returns:
        200: {"return", "transaction"}
        409: return is Pending or Rejected
    """
    try:
        refund = return_service.complete_refund(db.session, return_id, g.current_user.id)
        order_return = return_service.get_return(db.session, return_id)
        return jsonify({"return": order_return.to_dict(), "transaction": refund.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete return")
        return internal_error()
