# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login issues a signed, time-limited session token, returned in the body
  (for Authorization: Bearer use) and set as the HTTP-only "auth" cookie
- Failed logins answer "Invalid credentials" without telling an unknown
  user from a wrong password
- Logout revokes the session and clears the cookie
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import request_token, require_auth
from ..extensions import db
from ..services import auth_service, permission_service, session_service
from ..services.concurrency import commit_with_retry
from .errors import json_body, json_error


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_auth_cookie(response, token: str):
    cfg = current_app.config
    response.set_cookie(
        cfg["SESSION_COOKIE_NAME_AUTH"],
        token,
        max_age=int(cfg["SESSION_HOURS"]) * 3600,
        httponly=True,
        secure=cfg["SESSION_COOKIE_SECURE"],
        samesite="Lax",
        path="/",
    )
    return response


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body: {"username": str, "password": str}
    """
    try:
        data = json_body()
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            db.session.rollback()
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        current_app.logger.info("User %s logged in", user.username)

        response = jsonify({
            "user": user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(user)),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        })
        return _set_auth_cookie(response, token), 200

    except Exception as exc:
        return json_error(exc, "login user")


@auth_bp.post("/logout")
def logout_route():
    """Revoke the current session (bearer token or auth cookie) and clear the cookie."""
    try:
        token = request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(current_app.config["SESSION_COOKIE_NAME_AUTH"], path="/")
        return response, 200

    except Exception as exc:
        return json_error(exc, "logout user")


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with permissions, for the panel's menu filtering."""
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_user_permissions(user)),
        "session": g.session_context.session.to_dict(),
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Request body: {"current_password": str, "new_password": str}

    Every other session of the user is revoked; the current one stays valid.
    """
    try:
        data = json_body()
        auth_service.change_password(
            user=g.current_user,
            current_password=data.get("current_password"),
            new_password=data.get("new_password"),
            keep_session_id=g.session_context.session.id,
        )
        commit_with_retry()
        return jsonify({"message": "Password changed"}), 200

    except Exception as exc:
        return json_error(exc, "change password")
