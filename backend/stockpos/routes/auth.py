# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/stockpos/routes/auth.py
"""
Authentication API routes

A session is issued at login and revoked at logout. The bearer token
replaces any client-side notion of "current role": every protected route
re-derives identity and role from the session.
"""

from flask import Blueprint, request, jsonify, g

from ..services import auth_service
from ..services import session_service
from ..decorators import bearer_token, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({"error": "username and password must be strings"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        return jsonify({"error": "Invalid username or password"}), 401

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "user": auth_service.serialize_user(user),
        "token": token,
        "session": session.to_dict(),
        "message": f"Welcome, {user.get('username')}!",
    }), 200


@auth_bp.post("/logout")
def logout_route():
    """Revoke session token (logout)."""
    token = bearer_token()
    if not token:
        return jsonify({"error": "Authorization header required"}), 401

    if not session_service.revoke_session(token, reason="User logout"):
        return jsonify({"error": "Invalid or expired token"}), 401

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    context = g.session_context
    return jsonify({
        "user_id": context.user_id,
        "username": context.username,
        "role": context.role,
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Change the caller's own password.

    Requires the current password. Other sessions stay valid.
    """
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    confirm_password = data.get("confirm_password", new_password)

    if not all([current_password, new_password]):
        return jsonify({"error": "current_password and new_password required"}), 400
    if new_password != confirm_password:
        return jsonify({"error": "New passwords do not match."}), 400

    auth_service.change_password(g.session_context.username, current_password, new_password)
    return jsonify({"message": "Password updated successfully."}), 200
