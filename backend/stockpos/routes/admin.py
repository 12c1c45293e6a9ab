# Overview: Flask API routes for admin operations; user account management.

from flask import Blueprint, request, jsonify, g

from ..services import auth_service
from ..services.auth_service import serialize_user
from ..validation import PayloadPolicy, validate_payload
from ..decorators import require_auth, require_role


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

CREATE_USER_POLICY = PayloadPolicy(
    writable_fields=frozenset({"username", "password", "role"}),
    required=frozenset({"username", "password"}),
)


@admin_bp.get("/users")
@require_auth
@require_role("admin")
def list_users_route():
    return jsonify({"users": [serialize_user(u) for u in auth_service.list_users()]}), 200


@admin_bp.post("/users")
@require_auth
@require_role("admin")
def create_user_route():
    """Create an operator account. Role defaults to "user"."""
    patch = validate_payload(payload=request.get_json(silent=True), policy=CREATE_USER_POLICY)
    user = auth_service.create_user(
        username=patch["username"],
        password=patch["password"],
        role=patch.get("role") or auth_service.ROLE_USER,
    )
    return jsonify({"user": serialize_user(user)}), 201


@admin_bp.delete("/users/<user_id>")
@require_auth
@require_role("admin")
def delete_user_route(user_id: str):
    if user_id == g.session_context.user_id:
        return jsonify({"error": "Cannot delete the account you are signed in with"}), 400
    auth_service.delete_user(user_id)
    return jsonify({"message": "User deleted successfully."}), 200
