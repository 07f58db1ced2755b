"""
Login flow: password -> emailed code -> single active session -> bearer token.

No state is held between the steps. Everything lives in the store
(login_attempts, verification_codes, sessions) and the client carries the
email from the password step to the code step.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from models import db
from models.principal import Principal
from models.session import Session
from security.errors import (
    AuthError,
    AuthenticationError,
    CodeUsedError,
    DeliveryError,
    ExpiredCodeError,
    InvalidCodeError,
    LockedError,
    MissingTokenError,
    RateLimitedError,
    SessionExpiredError,
    TokenInvalidError,
    ValidationError,
)
from security.lockout import LockoutGuard
from security.password import burn_password_check, password_too_long, verify_password
from security.session import SessionManager
from security.tokens import TokenCodec
from security.verification import CodeCheck, VerificationCodeManager
from utils.audit import log_event
from utils.device import describe_device
from utils.emails import is_valid_email, normalize_email
from utils.logging import get_logger

logger = get_logger(__name__)

@dataclass
class AuthOutcome:
    error: Optional[AuthError] = None
    principal: Optional[Principal] = None
    session: Optional[Session] = None
    token: Optional[str] = None
    data: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, error: AuthError) -> "AuthOutcome":
        return cls(error=error)


class AuthOrchestrator:
    def __init__(self, lockout: LockoutGuard, codes: VerificationCodeManager,
                 sessions: SessionManager, tokens: TokenCodec, mailer):
        self.lockout = lockout
        self.codes = codes
        self.sessions = sessions
        self.tokens = tokens
        self.mailer = mailer

    @property
    def clock(self):
        return self.lockout.clock

    @classmethod
    def from_config(cls, config, mailer, clock=None):
        kwargs = {"clock": clock} if clock is not None else {}
        return cls(
            lockout=LockoutGuard.from_config(config, **kwargs),
            codes=VerificationCodeManager.from_config(config, **kwargs),
            sessions=SessionManager.from_config(config, **kwargs),
            tokens=TokenCodec.from_config(config, **kwargs),
            mailer=mailer,
        )

    # -- helpers -----------------------------------------------------------

    def _resolve(self, email: str) -> Optional[Principal]:
        return Principal.query.filter_by(email=email, is_active=True).first()

    def _locked(self, until: datetime) -> LockedError:
        retry_after = max(int((until - self.lockout.clock()).total_seconds()), 1)
        return LockedError(lockout_until=until, retry_after_seconds=retry_after)

    def _deliver(self, principal: Principal, code: str, ip=None, user_agent=None) -> Optional[DeliveryError]:
        ttl_minutes = self.codes.ttl_seconds // 60
        try:
            self.mailer.send_verification_code(principal.email, code, ttl_minutes)
        except DeliveryError as exc:
            log_event("CODE_DELIVERY_FAILED", principal_id=principal.id, ip=ip, user_agent=user_agent)
            return exc
        return None

    def _code_sent(self, principal: Principal) -> AuthOutcome:
        return AuthOutcome(
            principal=principal,
            data={
                "email": principal.email,
                "expires_in": self.codes.ttl_seconds,
                "resend_after": int(self.codes.cooldown.total_seconds()),
            },
        )

    # -- Anonymous -> CodePending -------------------------------------------

    def login(self, email: str, password: str, ip: Optional[str] = None,
              user_agent: Optional[str] = None) -> AuthOutcome:
        email = normalize_email(email)
        if not is_valid_email(email) or not isinstance(password, str) or not password:
            return AuthOutcome.fail(ValidationError("Email and password are required"))
        if password_too_long(password):
            return AuthOutcome.fail(ValidationError("Password is too long"))

        principal = self._resolve(email)
        if principal is None:
            locked, until = self.lockout.check_email_lockout(email)
            if locked:
                log_event("LOGIN_LOCKED", metadata={"email": email, "lockout_until": until.isoformat()},
                          ip=ip, user_agent=user_agent)
                return AuthOutcome.fail(self._locked(until))

            burn_password_check(password)
            fail_count, until = self.lockout.record_failure(None, email, "password", ip, user_agent)
            log_event("LOGIN_FAIL", metadata={"email": email, "reason": "unknown_principal"},
                      ip=ip, user_agent=user_agent)
            if until is not None:
                return AuthOutcome.fail(self._locked(until))
            remaining = max(self.lockout.max_failures - fail_count, 0)
            return AuthOutcome.fail(AuthenticationError(attempts_remaining=remaining))

        locked, until = self.lockout.check_lockout(principal.id)
        if locked:
            log_event("LOGIN_LOCKED", principal_id=principal.id,
                      metadata={"lockout_until": until.isoformat()}, ip=ip, user_agent=user_agent)
            return AuthOutcome.fail(self._locked(until))

        if not verify_password(password, principal.password_hash):
            fail_count, until = self.lockout.record_failure(principal.id, email, "password", ip, user_agent)
            log_event("LOGIN_FAIL", principal_id=principal.id,
                      metadata={"fail_count": fail_count, "locked_now": until is not None},
                      ip=ip, user_agent=user_agent)
            if until is not None:
                return AuthOutcome.fail(self._locked(until))
            remaining = max(self.lockout.max_failures - fail_count, 0)
            return AuthOutcome.fail(AuthenticationError(attempts_remaining=remaining))

        _, code = self.codes.issue(principal.id, principal.email, ip=ip)
        failure = self._deliver(principal, code, ip, user_agent)
        if failure:
            return AuthOutcome.fail(failure)

        log_event("LOGIN_PASSWORD_OK", principal_id=principal.id, ip=ip, user_agent=user_agent)
        return self._code_sent(principal)

    # -- CodePending -> CodePending ------------------------------------------

    def resend_code(self, email: str, ip: Optional[str] = None,
                    user_agent: Optional[str] = None) -> AuthOutcome:
        email = normalize_email(email)
        if not is_valid_email(email):
            return AuthOutcome.fail(ValidationError("Email is required"))

        principal = self._resolve(email)
        if principal is None:
            locked, until = self.lockout.check_email_lockout(email)
            if locked:
                return AuthOutcome.fail(self._locked(until))
            return AuthOutcome.fail(AuthenticationError())

        locked, until = self.lockout.check_lockout(principal.id)
        if locked:
            return AuthOutcome.fail(self._locked(until))

        allowed, retry_after = self.codes.can_resend(principal.id)
        if not allowed:
            log_event("CODE_RATE_LIMITED", principal_id=principal.id,
                      metadata={"retry_after": retry_after}, ip=ip, user_agent=user_agent)
            return AuthOutcome.fail(RateLimitedError(retry_after_seconds=retry_after))

        _, code = self.codes.issue(principal.id, principal.email, ip=ip)
        failure = self._deliver(principal, code, ip, user_agent)
        if failure:
            return AuthOutcome.fail(failure)

        log_event("CODE_RESEND", principal_id=principal.id, ip=ip, user_agent=user_agent)
        return self._code_sent(principal)

    # -- CodePending -> Authenticated ----------------------------------------

    def verify_code(self, email: str, code: str, ip: Optional[str] = None,
                    user_agent: Optional[str] = None) -> AuthOutcome:
        email = normalize_email(email)
        code = (code or "").strip() if isinstance(code, str) else ""
        if not is_valid_email(email) or not code.isdigit() or len(code) != self.codes.code_length:
            return AuthOutcome.fail(ValidationError("Email and verification code are required"))

        principal = self._resolve(email)
        if principal is None:
            locked, until = self.lockout.check_email_lockout(email)
            if locked:
                return AuthOutcome.fail(self._locked(until))
            return AuthOutcome.fail(InvalidCodeError())

        locked, until = self.lockout.check_lockout(principal.id)
        if locked:
            return AuthOutcome.fail(self._locked(until))

        check = self.codes.validate(principal.id, code)
        if check is CodeCheck.INVALID:
            fail_count, until = self.lockout.record_failure(principal.id, email, "code", ip, user_agent)
            log_event("VERIFICATION_FAIL", principal_id=principal.id,
                      metadata={"fail_count": fail_count}, ip=ip, user_agent=user_agent)
            if until is not None:
                return AuthOutcome.fail(self._locked(until))
            return AuthOutcome.fail(InvalidCodeError())
        if check is CodeCheck.EXPIRED:
            log_event("VERIFICATION_EXPIRED", principal_id=principal.id, ip=ip, user_agent=user_agent)
            return AuthOutcome.fail(ExpiredCodeError())
        if check is CodeCheck.USED:
            log_event("VERIFICATION_REUSED", principal_id=principal.id, ip=ip, user_agent=user_agent)
            return AuthOutcome.fail(CodeUsedError())

        self.lockout.record_success(principal.id, email, "code", ip, user_agent)
        sess, raw_token = self.sessions.create_session(
            principal.id, describe_device(user_agent), ip, user_agent
        )
        token = self.tokens.sign(principal.id, raw_token)

        log_event("LOGIN_SUCCESS", principal_id=principal.id, entity="session", entity_id=sess.id,
                  metadata={"device": sess.device_info}, ip=ip, user_agent=user_agent)
        return AuthOutcome(
            principal=principal,
            session=sess,
            token=token,
            data={"expires_in": self.tokens.ttl_seconds},
        )

    # -- per request -----------------------------------------------------------

    def authenticate(self, bearer_token: Optional[str]) -> AuthOutcome:
        if not bearer_token:
            return AuthOutcome.fail(MissingTokenError())

        claims = self.tokens.verify(bearer_token)
        if claims is None:
            return AuthOutcome.fail(TokenInvalidError())

        sess = self.sessions.validate_session(claims.session_token)
        if sess is None or sess.principal_id != claims.principal_id:
            return AuthOutcome.fail(SessionExpiredError())

        principal = db.session.get(Principal, sess.principal_id)
        if principal is None or not principal.is_active:
            self.sessions.terminate_all_sessions(sess.principal_id, reason="deactivated")
            return AuthOutcome.fail(SessionExpiredError())

        return AuthOutcome(principal=principal, session=sess)

    # -- Authenticated -> Anonymous --------------------------------------------

    def logout(self, bearer_token: Optional[str]) -> AuthOutcome:
        if not bearer_token:
            return AuthOutcome.fail(MissingTokenError())

        claims = self.tokens.verify(bearer_token)
        if claims is None:
            return AuthOutcome.fail(TokenInvalidError())

        ended = self.sessions.terminate_session(claims.session_token)
        log_event("LOGOUT", principal_id=claims.principal_id, metadata={"ended": ended})
        return AuthOutcome(data={"ended": ended})

    def logout_all(self, principal_id: int) -> AuthOutcome:
        count = self.sessions.terminate_all_sessions(principal_id)
        log_event("LOGOUT_ALL", principal_id=principal_id, metadata={"ended_sessions": count})
        return AuthOutcome(data={"ended_sessions": count})

    # -- administration ----------------------------------------------------------

    def release_lockout(self, principal_id: int, actor_id: Optional[int] = None) -> AuthOutcome:
        count = self.lockout.release_lockout(principal_id)
        log_event("LOCKOUT_RELEASED", principal_id=actor_id, entity="principal", entity_id=principal_id,
                  metadata={"released": count})
        return AuthOutcome(data={"released": count})

    def terminate_principal_sessions(self, principal_id: int, actor_id: Optional[int] = None) -> AuthOutcome:
        count = self.sessions.terminate_all_sessions(principal_id, reason="terminated_by_admin")
        log_event("SESSIONS_TERMINATED", principal_id=actor_id, entity="principal", entity_id=principal_id,
                  metadata={"ended_sessions": count})
        return AuthOutcome(data={"ended_sessions": count})

    def purge_expired(self, retention_days: int = 30) -> dict:
        """Storage hygiene only; nothing here is needed for correctness."""
        cutoff = self.lockout.clock() - timedelta(days=retention_days)
        out = {
            "sessions_expired": self.sessions.cleanup_expired(),
            "attempts_deleted": self.lockout.purge_attempts(cutoff),
            "codes_deleted": self.codes.purge(cutoff),
        }
        logger.info("purge_expired", **out)
        return out
