# Overview: Flask API route for the change feed; lets clients poll for writes made by other sessions.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import change_feed_service
from ..validation import ValidationError, coerce_int
from .errors import json_error


changes_bp = Blueprint("changes", __name__, url_prefix="/api/changes")


@changes_bp.get("")
@require_auth
@require_permission("VIEW_DATA")
def list_changes_route():
    """
    Query: cursor (exclusive, default 0), limit (1..500, default 100), entity_type.

    Poll with the returned next_cursor to receive only newer events.
    """
    try:
        cursor = coerce_int(request.args.get("cursor", 0), "cursor")
        limit = coerce_int(request.args.get("limit", 100), "limit")
        if cursor < 0:
            raise ValidationError("cursor must be >= 0")
        result = change_feed_service.list_changes(
            cursor=cursor,
            limit=limit,
            entity_type=request.args.get("entity_type") or None,
        )
        return jsonify(result), 200

    except Exception as exc:
        return json_error(exc, "list changes")


@changes_bp.get("/cursor")
@require_auth
@require_permission("VIEW_DATA")
def latest_cursor_route():
    """Current head of the feed, so a fresh client can start polling from now."""
    try:
        return jsonify({"cursor": change_feed_service.latest_cursor()}), 200

    except Exception as exc:
        return json_error(exc, "read change cursor")
