# Overview: Flask API routes for the monthly collection batch; parses input and returns JSON responses.

"""
Collection ("cobranza") routes.

SECURITY: All routes require authentication.
- Viewing and marking items requires COLLECT_PAYMENTS
- Users without FORCE_COLLECTION only reach the batch while a forced
  collection is open (see collection_service.is_collection_open)
- Forcing a rebuild requires FORCE_COLLECTION
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import collection_service, permission_service, shipment_service
from ..services.concurrency import commit_with_retry
from ..time_utils import month_key
from .errors import actor, json_body, json_error


collection_bp = Blueprint("collection", __name__, url_prefix="/api/collection")


def _can_force() -> bool:
    return permission_service.user_has_permission(g.current_user, "FORCE_COLLECTION")


def _closed_response():
    return jsonify({"error": "Collection is not open"}), 403


@collection_bp.get("")
@require_auth
@require_permission("COLLECT_PAYMENTS")
def get_collection_route():
    """Current month's batch (built on first access). Query: q (client name filter)."""
    try:
        if not _can_force() and not collection_service.is_collection_open():
            return _closed_response()

        batch = collection_service.get_or_build_batch(actor=actor())
        commit_with_retry()
        return jsonify(collection_service.summarize_batch(batch, search=request.args.get("q"))), 200

    except Exception as exc:
        return json_error(exc, "load collection")


@collection_bp.post("/force")
@require_auth
@require_permission("FORCE_COLLECTION")
def force_collection_route():
    """Rebuild the current month's batch with every item unpaid and open it to collectors."""
    try:
        batch = collection_service.get_or_build_batch(force=True, actor=actor())
        commit_with_retry()
        return jsonify(collection_service.summarize_batch(batch)), 200

    except Exception as exc:
        return json_error(exc, "force collection")


@collection_bp.post("/items/<item_key>/paid")
@require_auth
@require_permission("COLLECT_PAYMENTS")
def set_item_paid_route(item_key: str):
    """Request body: {"paid": bool}"""
    try:
        if not _can_force() and not collection_service.is_collection_open(item_key[:7]):
            return _closed_response()

        data = json_body()
        item = collection_service.set_item_paid(item_key=item_key, paid=data.get("paid"), actor=actor())
        commit_with_retry()

        batch = collection_service.get_batch(item.year_month)
        return jsonify({"item": item.to_dict(), "batch": batch.to_dict()}), 200

    except Exception as exc:
        return json_error(exc, "mark collection item")


@collection_bp.get("/status")
@require_auth
@require_permission("VIEW_DATA")
def collection_status_route():
    """Menu flags: whether collection is open/visible and whether shipments are pending."""
    try:
        is_open = collection_service.is_collection_open()
        can_collect = permission_service.user_has_permission(g.current_user, "COLLECT_PAYMENTS")
        return jsonify({
            "year_month": month_key(),
            "is_open": is_open,
            "visible": can_collect and (is_open or _can_force()),
            "pending_shipments": shipment_service.has_pending(),
        }), 200

    except Exception as exc:
        return json_error(exc, "load collection status")
