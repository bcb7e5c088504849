# Overview: Flask API routes for the client registry; parses input and returns JSON responses.

"""
Client routes.

SECURITY: All routes require authentication.
- Listing requires VIEW_DATA
- Create requires CREATE_CLIENT, toggle requires TOGGLE_CLIENT
- Edit requires EDIT_CLIENT, delete requires DELETE_CLIENT

Creating or editing a client with has_router/has_switch may assign
equipment; a stock shortage answers 400 with per-label shortages and
persists nothing.
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import client_service
from ..services.concurrency import commit_with_retry
from .errors import actor, arg_bool, json_body, json_error


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
@require_permission("VIEW_DATA")
def list_clients_route():
    """Query: zone_id, q (name search), active."""
    try:
        clients = client_service.list_clients(
            zone_id=request.args.get("zone_id"),
            search=request.args.get("q"),
            active=arg_bool("active"),
        )
        return jsonify({"items": [c.to_dict() for c in clients], "count": len(clients)}), 200

    except Exception as exc:
        return json_error(exc, "list clients")


@clients_bp.post("")
@require_auth
@require_permission("CREATE_CLIENT")
def create_client_route():
    """
    Request body:
    {
        "name": str, "ip_address": str, "mac_address": str,
        "service_units": int, "zone_id": str,
        "has_router"?: bool, "has_switch"?: bool, "apply_proration"?: bool
    }
    """
    try:
        client = client_service.create_client(payload=json_body(), actor=actor())
        commit_with_retry()
        return jsonify(client.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create client")


@clients_bp.patch("/<int:client_id>")
@require_auth
@require_permission("EDIT_CLIENT")
def update_client_route(client_id: int):
    try:
        client = client_service.update_client(client_id=client_id, payload=json_body(), actor=actor())
        commit_with_retry()
        return jsonify(client.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "update client")


@clients_bp.post("/<int:client_id>/toggle-active")
@require_auth
@require_permission("TOGGLE_CLIENT")
def toggle_client_route(client_id: int):
    try:
        client = client_service.toggle_active(client_id=client_id, actor=actor())
        commit_with_retry()
        return jsonify(client.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "toggle client")


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_permission("DELETE_CLIENT")
def delete_client_route(client_id: int):
    try:
        client_service.delete_client(client_id=client_id, actor=actor())
        commit_with_retry()
        return jsonify({"message": "Client deleted"}), 200

    except Exception as exc:
        return json_error(exc, "delete client")
