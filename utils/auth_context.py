from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request

from security.errors import MissingTokenError


def get_orchestrator():
    return current_app.extensions["auth_orchestrator"]


def bearer_from_request() -> tuple[Optional[str], bool]:
    """
    Returns (token, from_cookie). The httpOnly cookie wins over the
    Authorization header.
    """
    cookie_name = current_app.config.get("AUTH_COOKIE_NAME", "admin_session_token")
    token = request.cookies.get(cookie_name)
    if token:
        return token, True

    header = request.headers.get("Authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip(), False
    return None, False


def load_current_principal():
    g.principal = None
    g.session = None
    g.auth_error = None

    token, from_cookie = bearer_from_request()
    g.auth_via_cookie = from_cookie
    if not token:
        g.auth_error = MissingTokenError()
        return

    outcome = get_orchestrator().authenticate(token)
    if not outcome.ok:
        g.auth_error = outcome.error
        return
    g.principal = outcome.principal
    g.session = outcome.session


def error_response(error):
    return jsonify(error.to_dict()), error.status


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "principal", None) is None:
            return error_response(getattr(g, "auth_error", None) or MissingTokenError())
        return fn(*args, **kwargs)
    return wrapper
