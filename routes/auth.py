from flask import Blueprint, current_app, g, jsonify, request

from security.csrf import clear_csrf_token, issue_csrf_token
from security.errors import RateLimitedError
from security.rate_limit import check_and_increment_login_rate
from utils.audit import client_ip, client_user_agent, log_event
from utils.auth_context import bearer_from_request, error_response, get_orchestrator, login_required

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "admin_session_token")


def _set_auth_cookie(resp, token: str, max_age: int):
    resp.set_cookie(
        _cookie_name(),
        token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", True),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Strict"),
        max_age=max_age,
        path="/",
    )
    return resp


def _clear_auth_cookie(resp):
    resp.delete_cookie(_cookie_name(), path="/")
    return clear_csrf_token(resp)


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = data.get("email") or ""
    password = data.get("password") or ""

    allowed, retry_after = check_and_increment_login_rate(now=get_orchestrator().clock())
    if not allowed:
        log_event("LOGIN_RATE_LIMIT", metadata={"retry_after": retry_after})
        return error_response(RateLimitedError(retry_after_seconds=retry_after))

    outcome = get_orchestrator().login(email, password, ip=client_ip(), user_agent=client_user_agent())
    if not outcome.ok:
        return error_response(outcome.error)

    return jsonify(message="Verification code sent to your email", **outcome.data), 200


@auth_bp.post("/resend")
def resend_code():
    data = request.get_json(silent=True) or {}
    email = data.get("email") or ""

    outcome = get_orchestrator().resend_code(email, ip=client_ip(), user_agent=client_user_agent())
    if not outcome.ok:
        return error_response(outcome.error)

    return jsonify(message="New verification code sent to your email", **outcome.data), 200


@auth_bp.post("/verify")
def verify():
    data = request.get_json(silent=True) or {}
    email = data.get("email") or ""
    code = data.get("code")
    if isinstance(code, int):
        code = str(code)

    outcome = get_orchestrator().verify_code(email, code, ip=client_ip(), user_agent=client_user_agent())
    if not outcome.ok:
        return error_response(outcome.error)

    body = {
        "message": "Verification successful",
        "principal": outcome.principal.public_dict(),
        "session": outcome.session.public_dict(),
        "expires_in": outcome.data["expires_in"],
    }
    if current_app.config.get("AUTH_TOKEN_IN_BODY", False):
        body["token"] = outcome.token

    resp = jsonify(body)
    _set_auth_cookie(resp, outcome.token, outcome.data["expires_in"])
    issue_csrf_token(resp)
    return resp, 200


@auth_bp.post("/logout")
def logout():
    token, _ = bearer_from_request()
    outcome = get_orchestrator().logout(token)

    # cookie is cleared either way
    if not outcome.ok:
        resp, status = error_response(outcome.error)
    else:
        resp, status = jsonify(message="Logged out", **outcome.data), 200
    _clear_auth_cookie(resp)
    return resp, status


@auth_bp.post("/logout_all")
@login_required
def logout_all():
    outcome = get_orchestrator().logout_all(g.principal.id)

    resp = jsonify(message="Logged out everywhere", **outcome.data)
    _clear_auth_cookie(resp)
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(principal=g.principal.public_dict()), 200


@auth_bp.get("/session")
@login_required
def current_session():
    return jsonify(session=g.session.public_dict()), 200
