# Overview: Flask API routes for shipments; parses input and returns JSON responses.

"""
Shipment ("envíos") routes.

SECURITY: All routes require authentication.
- Listing requires VIEW_DATA
- Create requires CREATE_SHIPMENT; arrival requires MARK_SHIPMENT_AVAILABLE
- Pickup requires PICK_UP_SHIPMENT
- Editing and deleting require EDIT_SHIPMENT / DELETE_SHIPMENT
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import shipment_service
from ..services.concurrency import commit_with_retry
from .errors import actor, json_body, json_error


shipments_bp = Blueprint("shipments", __name__, url_prefix="/api/shipments")


@shipments_bp.get("")
@require_auth
@require_permission("VIEW_DATA")
def list_shipments_route():
    """Query: status (IN_TRANSIT | AVAILABLE | PICKED_UP)."""
    try:
        shipments = shipment_service.list_shipments(status=request.args.get("status"))
        return jsonify({"items": [s.to_dict() for s in shipments], "count": len(shipments)}), 200

    except Exception as exc:
        return json_error(exc, "list shipments")


@shipments_bp.post("")
@require_auth
@require_permission("CREATE_SHIPMENT")
def create_shipment_route():
    """Request body: {"lines": [{"label": str, "qty": int > 0}]}"""
    try:
        data = json_body()
        shipment = shipment_service.create_shipment(lines=data.get("lines"), actor=actor())
        commit_with_retry()
        return jsonify(shipment.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create shipment")


@shipments_bp.post("/<int:shipment_id>/arrive")
@require_auth
@require_permission("MARK_SHIPMENT_AVAILABLE")
def mark_available_route(shipment_id: int):
    try:
        shipment = shipment_service.mark_available(shipment_id=shipment_id, actor=actor())
        commit_with_retry()
        return jsonify(shipment.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "mark shipment available")


@shipments_bp.post("/<int:shipment_id>/pickup")
@require_auth
@require_permission("PICK_UP_SHIPMENT")
def pickup_route(shipment_id: int):
    """
    Pick up an AVAILABLE shipment; its units are added to inventory once.

    A repeated pickup answers 200 with "applied": false and changes nothing.
    """
    try:
        shipment, applied = shipment_service.pick_up(shipment_id=shipment_id, actor=actor())
        commit_with_retry()
        return jsonify({"shipment": shipment.to_dict(), "applied": applied}), 200

    except Exception as exc:
        return json_error(exc, "pick up shipment")


@shipments_bp.put("/<int:shipment_id>")
@require_auth
@require_permission("EDIT_SHIPMENT")
def update_shipment_route(shipment_id: int):
    """Request body: {"lines": [...]}. Picked-up shipments apply the delta to inventory."""
    try:
        data = json_body()
        shipment = shipment_service.update_shipment(
            shipment_id=shipment_id,
            lines=data.get("lines"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(shipment.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "update shipment")


@shipments_bp.delete("/<int:shipment_id>")
@require_auth
@require_permission("DELETE_SHIPMENT")
def delete_shipment_route(shipment_id: int):
    """Picked-up shipments give their units back first; short stock keeps the shipment."""
    try:
        shipment_service.delete_shipment(shipment_id=shipment_id, actor=actor())
        commit_with_retry()
        return jsonify({"message": "Shipment deleted"}), 200

    except Exception as exc:
        return json_error(exc, "delete shipment")
