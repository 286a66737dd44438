"""
Request parsing helpers shared by the route modules.

Services do their own business validation; these only turn raw JSON bodies
and query strings into typed values, raising ValidationError (400) on junk.
"""

from __future__ import annotations

from datetime import datetime

from flask import jsonify, request

from .errors import StorefrontError, ValidationError
from .time_utils import parse_iso_datetime


def error_response(e: StorefrontError):
    """Translate a domain error into its JSON body and HTTP status."""
    if e.status_code >= 500:
        # Storage detail stays in the log
        return jsonify({"error": "Internal server error", "code": e.code, "details": {}}), e.status_code
    return jsonify(e.to_dict()), e.status_code


def internal_error():
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


def require_int(data: dict, key: str) -> int:
    value = data.get(key)
    if value is None:
        raise ValidationError(f"{key} required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", details={key: value})
    return value


def optional_int(data: dict, key: str) -> int | None:
    if data.get(key) is None:
        return None
    return require_int(data, key)


def date_arg(name: str) -> datetime | None:
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={name: request.args.get(name)})


def page_args(default_size: int = 20) -> tuple[int, int]:
    return (
        request.args.get("page", 1, type=int),
        request.args.get("page_size", default_size, type=int),
    )


def serialize_page(page: dict) -> dict:
    out = dict(page)
    out["items"] = [item.to_dict() for item in page["items"]]
    return out
