# Overview: Service-layer operations for auth; user accounts in the users collection with bcrypt hashes.

"""
Accounts

Users are documents in the `users` collection:
    {username, password_hash, role}

Roles:
- admin: manages stock, users, sales history and Z-reports
- user:  sells stock

Passwords are hashed with bcrypt and never stored or compared in plaintext.
"""

import bcrypt
from flask import current_app

from stockpos.time_utils import to_utc_z
from stockpos.validation import ValidationError, coerce_text
from . import session_service
from .document_store import DocumentSnapshot, NotFoundError, StoreError, store


USERS = "users"

ROLE_ADMIN = "admin"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_USER)

DEFAULT_ADMIN_USERNAME = "admin"


class AuthError(StoreError):
    """Raised for rejected credentials or forbidden account changes."""


def hash_password(password: str) -> str:
    """Hash password using bcrypt with the configured cost factor."""
    if not isinstance(password, str) or not password:
        raise ValidationError("password cannot be blank")
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe check of `password` against a stored bcrypt hash."""
    if not isinstance(password, str) or not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in storage
        return False


def serialize_user(user: DocumentSnapshot) -> dict:
    return {
        "id": user.id,
        "username": user.get("username"),
        "role": user.get("role"),
        "created_at": to_utc_z(user.created_at),
    }


def find_user(username: str) -> DocumentSnapshot | None:
    matches = store.query(USERS, username=username)
    return matches[0] if matches else None


def get_user(user_id: str) -> DocumentSnapshot:
    user = store.get(USERS, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def create_user(username, password, role: str = ROLE_USER) -> DocumentSnapshot:
    """
    Create a new account.

    Raises ValidationError for blank fields, unknown roles or a username
    that is already taken.
    """
    username = coerce_text("username", username, max_length=64)
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if find_user(username) is not None:
        raise ValidationError("Username already exists. Please choose a different username.")

    return store.add(USERS, {
        "username": username,
        "password_hash": hash_password(password),
        "role": role,
    })


def list_users() -> list[DocumentSnapshot]:
    return sorted(store.list(USERS), key=lambda u: str(u.get("username", "")).lower())


def delete_user(user_id: str) -> None:
    """Delete an account. The last remaining admin cannot be deleted."""
    user = get_user(user_id)
    if user.get("role") == ROLE_ADMIN:
        admins = store.query(USERS, role=ROLE_ADMIN)
        if len(admins) <= 1:
            raise AuthError("Cannot delete the last admin account")
    store.delete(USERS, user_id)
    session_service.revoke_user_sessions(user_id, reason="User deleted")


def authenticate(username: str, password: str) -> DocumentSnapshot | None:
    """Return the user if the credentials are valid, otherwise None."""
    if not username or not password:
        return None
    user = find_user(username)
    if user is None:
        return None
    if not verify_password(password, user.get("password_hash")):
        return None
    return user


def change_password(username: str, current_password: str, new_password) -> DocumentSnapshot:
    user = authenticate(username, current_password)
    if user is None:
        raise AuthError("Current password is incorrect")
    return store.update(USERS, user.id, {"password_hash": hash_password(new_password)})


def ensure_admin(password: str) -> tuple[DocumentSnapshot, bool]:
    """
    Make sure the default admin account exists.

    Returns (user, created). An existing admin keeps its password and
    role is reasserted to admin.
    """
    existing = find_user(DEFAULT_ADMIN_USERNAME)
    if existing is not None:
        if existing.get("role") != ROLE_ADMIN:
            existing = store.update(USERS, existing.id, {"role": ROLE_ADMIN})
        return existing, False
    return create_user(DEFAULT_ADMIN_USERNAME, password, role=ROLE_ADMIN), True
