from functools import wraps
from flask import g, jsonify, request
from security.session import get_session_from_request

# never authenticated; Stripe calls webhooks without a session
PUBLIC_PREFIXES = ("/health", "/webhooks/")

def load_current_user():
    """Resolve g.user from a bearer token or the session cookie."""
    g.user = None
    g.session = None
    if request.path.startswith(PUBLIC_PREFIXES):
        return

    sess = get_session_from_request()
    if sess:
        g.session = sess
        g.user = sess.user

def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            resp = jsonify(error="Authentication required")
            resp.headers["WWW-Authenticate"] = 'Bearer realm="courtbook"'
            return resp, 401
        return fn(*args, **kwargs)
    return wrapper
