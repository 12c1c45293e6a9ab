# Overview: Request decorators for API routes; authentication and role checks.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "session_context")


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require a valid session.

    Sets g.session_context (user_id, username, role) for the request.
    Returns 401 when the header is missing or the token is invalid,
    expired, revoked, or belongs to a deleted account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the session role to be one of `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.session_context.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
