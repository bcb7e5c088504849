# Overview: Flask API routes for zones and tariffs; parses input and returns JSON responses.

"""
Zones & tariffs routes.

SECURITY: All routes require authentication.
- Reads require VIEW_DATA
- Creating/deleting zones and saving tariffs require MANAGE_SETTINGS
"""

from flask import Blueprint, jsonify

from ..decorators import require_auth, require_permission
from ..services import zone_service
from ..services.concurrency import commit_with_retry
from .errors import actor, json_body, json_error


zones_bp = Blueprint("zones", __name__, url_prefix="/api")


@zones_bp.get("/zones")
@require_auth
@require_permission("VIEW_DATA")
def list_zones_route():
    zones = zone_service.list_zones()
    return jsonify({"items": [z.to_dict() for z in zones], "count": len(zones)}), 200


@zones_bp.post("/zones")
@require_auth
@require_permission("MANAGE_SETTINGS")
def create_zone_route():
    """Request body: {"name": str, "tariff_cents": int > 0}"""
    try:
        data = json_body()
        zone = zone_service.create_zone(
            name=data.get("name"),
            tariff_cents=data.get("tariff_cents"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(zone.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create zone")


@zones_bp.delete("/zones/<zone_id>")
@require_auth
@require_permission("MANAGE_SETTINGS")
def delete_zone_route(zone_id: str):
    try:
        zone_service.delete_zone(zone_id=zone_id, actor=actor())
        commit_with_retry()
        return jsonify({"message": "Zone deleted"}), 200

    except Exception as exc:
        return json_error(exc, "delete zone")


@zones_bp.get("/zones/summary")
@require_auth
@require_permission("VIEW_DATA")
def zone_summary_route():
    return jsonify({"items": zone_service.zone_summary()}), 200


@zones_bp.get("/tariffs")
@require_auth
@require_permission("VIEW_DATA")
def get_tariffs_route():
    return jsonify({"tariffs": zone_service.get_tariff_map()}), 200


@zones_bp.put("/tariffs")
@require_auth
@require_permission("MANAGE_SETTINGS")
def save_tariffs_route():
    """
    Request body: {"tariffs": {zone_id: price_cents}}

    Saved wholesale; invalid or non-positive values are stored as 0.
    """
    try:
        data = json_body()
        tariffs = zone_service.save_tariffs(tariffs=data.get("tariffs"), actor=actor())
        commit_with_retry()
        return jsonify({"tariffs": tariffs}), 200

    except Exception as exc:
        return json_error(exc, "save tariffs")
