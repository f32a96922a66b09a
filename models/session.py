from datetime import datetime, timedelta
from models.db import db

class Session(db.Model):
    """Server-side login session; the client holds the raw token, we keep its hash."""

    __tablename__ = "sessions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(128), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_seen_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked = db.Column(db.Boolean, default=False, nullable=False)

    # issuing client; the CLI bootstrap has no IP
    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    user = db.relationship("User")

    def is_live(self, now, idle_seconds: int) -> bool:
        """Not revoked, not past absolute expiry, not idle for ``idle_seconds``."""
        if self.revoked or self.expires_at <= now:
            return False
        last_seen = self.last_seen_at or self.created_at
        return last_seen + timedelta(seconds=idle_seconds) > now
