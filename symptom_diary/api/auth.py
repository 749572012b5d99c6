"""
JWT authentication helpers and middleware for the Flask API.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Dict, Any, Optional

import jwt
from flask import request, jsonify

from symptom_diary.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from symptom_diary.models import AccessContext

# In-memory session store (use Redis in production)
# Structure: {token: {"ctx": AccessContext, "created_at": datetime, "last_activity": datetime}}
sessions: Dict[str, Dict[str, Any]] = {}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(ctx: AccessContext) -> str:
    """Generate a JWT token for an authenticated identity."""
    payload = {
        "sub": ctx.user_id,
        "role": ctx.role,
        "display_name": ctx.display_name,
        "iat": _now(),
        "exp": _now() + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def open_session(ctx: AccessContext) -> str:
    """Issue a token for *ctx* and register its session."""
    token = generate_token(ctx)
    sessions[token] = {
        "ctx": ctx,
        "created_at": _now(),
        "last_activity": _now(),
    }
    return token


def close_session(token: str) -> None:
    sessions.pop(token, None)


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        # Check Authorization header (Bearer token)
        if "Authorization" in request.headers:
            auth_header = request.headers["Authorization"]
            try:
                token = auth_header.split(" ")[1]
            except IndexError:
                return jsonify({"error": "Invalid authorization header format"}), 401

        # Fallback: query param, for EventSource clients that cannot set headers
        if not token:
            token = request.args.get("token")

        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        payload = verify_token(token)
        if not payload:
            return jsonify({"error": "Invalid or expired token"}), 401

        if token not in sessions:
            return jsonify({"error": "Session not found. Please login again."}), 401

        session_data = sessions[token]
        session_data["last_activity"] = _now()

        # Attach session data to the request context
        request.session_data = session_data
        request.ctx = session_data["ctx"]
        request.token = token

        return f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions():
    """Remove sessions that have been inactive beyond TOKEN_EXPIRY_HOURS."""
    now = _now()
    expired = [
        tok for tok, data in list(sessions.items())
        if (now - data["last_activity"]).total_seconds() > TOKEN_EXPIRY_HOURS * 3600
    ]
    for tok in expired:
        sessions.pop(tok, None)
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
