from __future__ import annotations

from ..extensions import db
from stockpos.time_utils import to_utc_z


class SessionToken(db.Model):
    """
    Server-side session issued at login and revoked at logout.

    Only the SHA-256 hash of the bearer token is stored. The operator's
    user id, username and role are captured at login and stay fixed for
    the session lifetime.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_id", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Users are documents, so this is the document id, not a foreign key
    user_id = db.Column(db.String(64), nullable=False)
    username = db.Column(db.String(64), nullable=False)
    role = db.Column(db.String(16), nullable=False)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user_agent = db.Column(db.String(255), nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<SessionToken id={self.id} user={self.username!r} revoked={self.is_revoked}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "role": self.role,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }
