# Overview: Flask API routes for equipment inventory and movements; parses input and returns JSON responses.

"""
Inventory routes.

SECURITY: All routes require authentication.
- Views require VIEW_DATA
- New units require CREATE_EQUIPMENT; group deletion requires DELETE_EQUIPMENT
- Group stock configuration requires MANAGE_SETTINGS
- Sales, assignments, generic movements and the router paid flag require REGISTER_MOVEMENT
- Sale gains require MANAGE_ADJUSTMENTS; movement deletion requires DELETE_MOVEMENT

Time semantics:
- date_from / date_to filters are inclusive calendar days (YYYY-MM-DD).
"""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import adjustment_service, inventory_service, movement_service
from ..services.concurrency import commit_with_retry
from .errors import actor, arg_bool, arg_date, json_body, json_error


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _movement_dict(movement, gain_ids: set[int]) -> dict:
    data = movement.to_dict()
    data["has_gain"] = movement.id in gain_ids
    return data


@inventory_bp.get("/groups")
@require_auth
@require_permission("VIEW_DATA")
def list_groups_route():
    groups = inventory_service.group_inventory()
    return jsonify({"items": [g.to_dict() for g in groups], "count": len(groups)}), 200


@inventory_bp.put("/groups")
@require_auth
@require_permission("MANAGE_SETTINGS")
def set_group_stock_route():
    """Request body: {"rows": [{"label": str, "quantity": int, "price_cents"?: int}]}"""
    try:
        data = json_body()
        groups = inventory_service.set_group_stock(rows=data.get("rows"), actor=actor())
        commit_with_retry()
        return jsonify({"items": [g.to_dict() for g in groups], "count": len(groups)}), 200

    except Exception as exc:
        return json_error(exc, "set group stock")


@inventory_bp.delete("/groups/<label>")
@require_auth
@require_permission("DELETE_EQUIPMENT")
def delete_group_route(label: str):
    """Delete the AVAILABLE units of a label; SOLD and ASSIGNED history is kept."""
    try:
        deleted = inventory_service.delete_group(key=label, actor=actor())
        commit_with_retry()
        return jsonify({"deleted": deleted}), 200

    except Exception as exc:
        return json_error(exc, "delete equipment group")


@inventory_bp.post("/equipment")
@require_auth
@require_permission("CREATE_EQUIPMENT")
def create_equipment_route():
    """Request body: {"label": str, "price_cents"?: int, "category"?: str}"""
    try:
        data = json_body()
        unit = inventory_service.create_equipment(
            label=data.get("label"),
            price_cents=data.get("price_cents"),
            category=data.get("category"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(unit.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create equipment")


@inventory_bp.post("/sales")
@require_auth
@require_permission("REGISTER_MOVEMENT")
def register_sale_route():
    """Request body: {"label": str, "qty"?: int, "amount_cents"?: int, "detail"?: object}"""
    try:
        data = json_body()
        movements = movement_service.register_sale(
            label=data.get("label"),
            qty=data.get("qty", 1),
            amount_cents=data.get("amount_cents"),
            detail=data.get("detail"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 201

    except Exception as exc:
        return json_error(exc, "register sale")


@inventory_bp.post("/assignments")
@require_auth
@require_permission("REGISTER_MOVEMENT")
def register_assignment_route():
    """Request body: {"label": "router"|"switch", "client_id": int, "is_paid"?: bool}"""
    try:
        data = json_body()
        movement = movement_service.register_assignment(
            label=data.get("label"),
            client_id=data.get("client_id"),
            is_paid=data.get("is_paid") is True,
            detail=data.get("detail"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(movement.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "register assignment")


@inventory_bp.post("/movements")
@require_auth
@require_permission("REGISTER_MOVEMENT")
def record_movement_route():
    """
    Generic single-unit movement.

    Request body:
    {
        "equipment_id": int,
        "kind": "sale" | "assignment",
        "client_id"?: int,          // required for assignments
        "detail"?: object,
        "amount_cents"?: int
    }

    The actor is always the authenticated user.
    """
    try:
        data = json_body()
        if data.get("equipment_id") is None:
            return jsonify({"error": "equipment_id is required"}), 400

        movement = movement_service.record_movement(
            equipment_id=data.get("equipment_id"),
            kind=data.get("kind"),
            client_id=data.get("client_id"),
            detail=data.get("detail"),
            amount_cents=data.get("amount_cents"),
            is_paid=data.get("is_paid") is True,
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(movement.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "record movement")


@inventory_bp.get("/movements")
@require_auth
@require_permission("VIEW_DATA")
def list_movements_route():
    """Query: actor, kind, label, paid, date_from, date_to."""
    try:
        movements = movement_service.list_movements(
            actor=request.args.get("actor"),
            kind=request.args.get("kind"),
            label=request.args.get("label"),
            paid=arg_bool("paid"),
            date_from=arg_date("date_from"),
            date_to=arg_date("date_to"),
        )
        gain_ids = adjustment_service.manual_gain_movement_ids()
        return jsonify({
            "items": [_movement_dict(m, gain_ids) for m in movements],
            "count": len(movements),
        }), 200

    except Exception as exc:
        return json_error(exc, "list movements")


@inventory_bp.post("/movements/<int:movement_id>/paid")
@require_auth
@require_permission("REGISTER_MOVEMENT")
def set_router_paid_route(movement_id: int):
    """Request body: {"paid": bool}. Keeps the router fee adjustment in step."""
    try:
        data = json_body()
        movement = movement_service.set_router_paid(
            movement_id=movement_id,
            paid=data.get("paid"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(movement.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "set router paid flag")


@inventory_bp.post("/movements/<int:movement_id>/gain")
@require_auth
@require_permission("MANAGE_ADJUSTMENTS")
def record_sale_gain_route(movement_id: int):
    """Request body: {"amount_cents": int >= 0}. A second gain on the same sale answers 409."""
    try:
        data = json_body()
        adjustment = adjustment_service.record_sale_gain(
            movement_id=movement_id,
            amount_cents=data.get("amount_cents"),
            actor=actor(),
        )
        commit_with_retry()
        return jsonify(adjustment.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "record sale gain")


@inventory_bp.delete("/movements/<int:movement_id>")
@require_auth
@require_permission("DELETE_MOVEMENT")
def delete_movement_route(movement_id: int):
    """Revert a movement: its unit returns to stock and its adjustments are removed."""
    try:
        unit = movement_service.delete_movement(movement_id=movement_id, actor=actor())
        commit_with_retry()
        return jsonify({
            "message": "Movement deleted",
            "equipment": unit.to_dict() if unit else None,
        }), 200

    except Exception as exc:
        return json_error(exc, "delete movement")


@inventory_bp.get("/sales-bonus")
@require_auth
@require_permission("VIEW_DATA")
def sales_bonus_route():
    try:
        return jsonify(movement_service.sales_bonus_summary()), 200
    except Exception as exc:
        return json_error(exc, "compute sales bonus")
