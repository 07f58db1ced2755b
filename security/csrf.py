import hmac
import secrets

from flask import current_app, request

from security.errors import ForbiddenError

CSRF_COOKIE = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"


def issue_csrf_token(resp):
    token = secrets.token_urlsafe(32)
    resp.set_cookie(
        CSRF_COOKIE,
        token,
        httponly=False,  # must be readable by client JS
        secure=current_app.config.get("SESSION_COOKIE_SECURE", True),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Strict"),
        path="/",
    )
    return resp


def clear_csrf_token(resp):
    resp.delete_cookie(CSRF_COOKIE, path="/")
    return resp


def check_csrf():
    """Double-submit check. Returns a ForbiddenError or None."""
    cookie_token = request.cookies.get(CSRF_COOKIE)
    header_token = request.headers.get(CSRF_HEADER)
    if not cookie_token or not header_token:
        return ForbiddenError("CSRF validation failed")
    if not hmac.compare_digest(cookie_token, header_token):
        return ForbiddenError("CSRF validation failed")
    return None
