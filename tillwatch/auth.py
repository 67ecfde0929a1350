"""
Manager session gate.

A single shared manager password opens a Flask session. When TRUST_PROXY_AUTH
is set, an upstream identity proxy's headers are accepted instead.
"""
import hmac
import logging
from functools import wraps
from typing import Dict, Optional

from flask import current_app, jsonify, request, session

DEFAULT_ACTOR_NAME = "Manager"
PROXY_USER_HEADER = "X-Forwarded-User"
PROXY_NAME_HEADER = "X-Forwarded-Preferred-Username"


def check_password(candidate: str) -> bool:
    expected = current_app.config.get("MANAGER_PASSWORD") or ""
    return bool(candidate) and hmac.compare_digest(str(candidate).encode(), expected.encode())


def login(name: str = None) -> Dict[str, str]:
    session.clear()
    session["user_id"] = "manager"
    session["user_name"] = name or DEFAULT_ACTOR_NAME
    logging.info(f"Manager login from {request.remote_addr}")
    return current_user()


def logout() -> None:
    session.clear()


def current_user() -> Optional[Dict[str, str]]:
    if current_app.config.get("TRUST_PROXY_AUTH"):
        proxy_user = request.headers.get(PROXY_USER_HEADER)
        if proxy_user:
            return {
                "id": proxy_user,
                "name": request.headers.get(PROXY_NAME_HEADER) or proxy_user,
            }
    if not session.get("user_id"):
        return None
    return {"id": session["user_id"], "name": session.get("user_name") or DEFAULT_ACTOR_NAME}


def actor():
    """(id, display name) for audit entries and notes."""
    user = current_user() or {}
    return user.get("id"), user.get("name") or DEFAULT_ACTOR_NAME


def login_required(f):
    @wraps(f)
    def wrapped(*args, **kwargs):
        if current_user() is None:
            return jsonify({"error": "Unauthorized"}), 401
        return f(*args, **kwargs)
    return wrapped
