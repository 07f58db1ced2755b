"""
Bearer token codec (PyJWT / HS256).

A token binds a principal id to an opaque session token. ``verify`` returns
``None`` for every kind of failure, so callers cannot tell a forged token
from an expired or malformed one.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

TOKEN_TYPE = "admin_session"
_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "sid", "typ", "exp", "iat"]


@dataclass(frozen=True)
class TokenClaims:
    principal_id: int
    session_token: str


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenCodec:
    def __init__(self, secret: str, ttl_hours: int = 24,
                 clock: Callable[[], datetime] = _aware_utcnow):
        if not secret:
            raise RuntimeError("AUTH_SIGNING_SECRET is not configured")
        self._secret = secret
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    @classmethod
    def from_config(cls, config, clock: Callable[[], datetime] = _aware_utcnow):
        return cls(
            secret=config.get("AUTH_SIGNING_SECRET"),
            ttl_hours=config.get("TOKEN_TTL_HOURS", 24),
            clock=clock,
        )

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def _now(self) -> datetime:
        now = self.clock()
        # naive datetimes are UTC throughout this codebase
        return now if now.tzinfo else now.replace(tzinfo=timezone.utc)

    def sign(self, principal_id: int, session_token: str, token_type: str = TOKEN_TYPE) -> str:
        now = self._now()
        payload = {
            "sub": str(principal_id),
            "sid": session_token,
            "typ": token_type,
            "iat": now,
            "exp": now + self.ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> Optional[TokenClaims]:
        if not token or not isinstance(token, str):
            return None
        try:
            # expiry is checked below against our clock, not the wall clock
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require": _REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidTokenError:
            return None

        if payload.get("typ") != TOKEN_TYPE:
            return None

        try:
            expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
            principal_id = int(payload["sub"])
        except (TypeError, ValueError, OverflowError):
            return None
        if expires_at <= self._now():
            return None

        session_token = payload.get("sid")
        if not isinstance(session_token, str) or not session_token:
            return None
        return TokenClaims(principal_id=principal_id, session_token=session_token)
