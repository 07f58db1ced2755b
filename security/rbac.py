from functools import wraps

from flask import g

from models.principal import role_allows
from security.errors import ForbiddenError, MissingTokenError
from utils.auth_context import error_response


def has_role(required) -> bool:
    principal = getattr(g, "principal", None)
    if not principal:
        return False
    return role_allows(principal.role, required)


def require_role(required):
    """
    Usage: @require_role(Role.SUPER_ADMIN)
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return error_response(getattr(g, "auth_error", None) or MissingTokenError())

            if not role_allows(principal.role, required):
                return error_response(ForbiddenError())

            return fn(*args, **kwargs)
        return wrapper
    return decorator
