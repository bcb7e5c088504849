# Overview: Flask API routes for panel account management; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_permission
from ..models.auth import ROLE_OWNER
from ..services import auth_service
from ..services.concurrency import commit_with_retry
from .errors import json_body, json_error


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Request body: {"username": str, "password": str, "role": str}

    Only an owner can create another owner.
    """
    try:
        data = json_body()
        role = data.get("role")
        if auth_service.validate_role(role) == ROLE_OWNER and g.current_user.role != ROLE_OWNER:
            return jsonify({"error": "Only an owner can grant the owner role"}), 403

        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            role=role,
        )
        commit_with_retry()
        return jsonify(user.to_dict()), 201

    except Exception as exc:
        return json_error(exc, "create user")


@users_bp.patch("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    """Request body: {"role"?: str, "is_active"?: bool}"""
    try:
        data = json_body()
        user = auth_service.update_user(
            user_id=user_id,
            acting_user=g.current_user,
            role=data.get("role"),
            is_active=data.get("is_active"),
        )
        commit_with_retry()
        return jsonify(user.to_dict()), 200

    except Exception as exc:
        return json_error(exc, "update user")
