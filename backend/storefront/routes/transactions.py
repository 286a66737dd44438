# Overview: Flask API routes for the transaction ledger; parses input and returns JSON responses.

# backend/storefront/routes/transactions.py
"""
Transaction ledger API routes (read-mostly).

Purchase and Refund rows are written by checkout and the return workflow.
The only direct write here is an admin Adjustment.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import ForbiddenError, StorefrontError, ValidationError
from ..models.auth import ROLE_ADMIN
from ..services import transaction_service
from ..decorators import require_auth, require_role, is_admin
from ..validation import (
    date_arg,
    error_response,
    internal_error,
    json_body,
    page_args,
    require_int,
    serialize_page,
)


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_transactions_route():
    """Query: type, status, order_id, user_id, start, end, page, page_size."""
    try:
        page, page_size = page_args()
        result = transaction_service.list_transactions(
            db.session,
            transaction_type=request.args.get("type") or None,
            status=request.args.get("status") or None,
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
        current_app.logger.exception("Failed to list transactions")
        return internal_error()


@transactions_bp.get("/mine")
@require_auth
def list_my_transactions_route():
    try:
        page, page_size = page_args()
        result = transaction_service.list_user_transactions(db.session, g.current_user.id, page, page_size)
        return jsonify(serialize_page(result)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list user transactions")
        return internal_error()


@transactions_bp.get("/statistics")
@require_auth
@require_role(ROLE_ADMIN)
def statistics_route():
    """Query: start, end (ISO-8601)."""
    try:
        stats = transaction_service.get_statistics(db.session, date_arg("start"), date_arg("end"))
        return jsonify(stats), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute transaction statistics")
        return internal_error()


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(db.session, transaction_id)
        if txn.user_id != g.current_user.id and not is_admin():
            raise ForbiddenError("Transaction belongs to another user", details={"transaction_id": transaction_id})
        return jsonify({"transaction": txn.to_dict()}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get transaction")
        return internal_error()


@transactions_bp.post("/adjustments")
@require_auth
@require_role(ROLE_ADMIN)
def create_adjustment_route():
    """
    Request body:
    {
        "order_id": 12,
        "amount_cents": -500,  (signed, non-zero)
        "description": "Courier damage credit"
    }
    """
    try:
        data = json_body()
        description = data.get("description")
        if not isinstance(description, str):
            raise ValidationError("description required")

        txn = transaction_service.record_adjustment(
            db.session,
            order_id=require_int(data, "order_id"),
            amount_cents=require_int(data, "amount_cents"),
            description=description,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"transaction": txn.to_dict()}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record adjustment")
        return internal_error()
