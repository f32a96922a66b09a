import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session

def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def create_session(user_id: int, ip=None, user_agent=None) -> str:
    """
    Creates a server-side session and returns the RAW token.
    Only the hash is stored in DB. Callable from the CLI, where there is no request.
    """
    raw_token = secrets.token_urlsafe(32)
    token_hash = _hash_token(raw_token)

    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)
    expires_at = datetime.utcnow() + timedelta(seconds=lifetime)

    row = Session(
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        ip=ip,
        user_agent=(user_agent or "")[:255] or None,
    )
    db.session.add(row)
    db.session.commit()
    return raw_token

def _token_from_request():
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "courtbook_session")
    return request.cookies.get(cookie_name)

def get_session_from_request():
    raw_token = _token_from_request()
    if not raw_token:
        return None

    token_hash = _hash_token(raw_token)
    now = datetime.utcnow()

    sess = Session.query.filter_by(token_hash=token_hash).first()
    idle_seconds = current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)
    if not sess or not sess.is_live(now, idle_seconds):
        return None

    # Update activity timestamp (touch)
    sess.last_seen_at = now
    db.session.commit()

    return sess
