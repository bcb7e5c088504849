# Overview: Shared JSON error translation and request helpers for API routes.

from __future__ import annotations

from flask import current_app, g, jsonify, request

from ..extensions import db
from ..services.permission_service import PermissionDeniedError
from ..time_utils import parse_iso_date
from ..validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError


def json_error(exc: Exception, action: str):
    """
    Roll back the request's session and map a service exception to a JSON response.

    Unexpected exceptions are logged with the failing action and answered with 500.
    """
    db.session.rollback()
    if isinstance(exc, InsufficientStockError):
        return jsonify({"error": str(exc), "shortages": exc.shortages}), 400
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, PermissionDeniedError):
        return jsonify({"error": "Permission denied", "message": str(exc)}), 403
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def actor() -> str:
    """Username recorded on every write made by the current request."""
    return g.session_context.actor


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def arg_bool(name: str):
    """Optional boolean query arg: true/1/yes, false/0/no, or None when absent."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


def arg_date(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")
