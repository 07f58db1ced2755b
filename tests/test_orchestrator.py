"""End-to-end login flows through the orchestrator, without HTTP."""
from datetime import timedelta

import pytest

from helpers import DEVICE_A, DEVICE_B, PASSWORD, make_principal
from models import db
from models.audit_log import AuditLog
from models.principal import Role, role_allows
from models.session import Session
from security.errors import (
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


def _sign_in(orchestrator, mailer, principal, user_agent=DEVICE_A, ip="10.0.0.1"):
    outcome = orchestrator.login(principal.email, PASSWORD, ip=ip, user_agent=user_agent)
    assert outcome.ok, outcome.error
    outcome = orchestrator.verify_code(principal.email, mailer.last_code, ip=ip, user_agent=user_agent)
    assert outcome.ok, outcome.error
    return outcome


class TestHappyPath:
    def test_password_then_code_then_authenticated_request(self, orchestrator, mailer, principal):
        outcome = orchestrator.login("admin@example.com", PASSWORD, ip="10.0.0.1", user_agent=DEVICE_A)

        assert outcome.ok
        assert outcome.data["email"] == "admin@example.com"
        assert outcome.data["expires_in"] == 300
        assert outcome.data["resend_after"] == 60
        assert mailer.sent[0][0] == "admin@example.com"

        outcome = orchestrator.verify_code("admin@example.com", mailer.last_code, user_agent=DEVICE_A)
        assert outcome.ok
        assert outcome.token
        assert outcome.session.device_info == "Windows PC"
        assert outcome.data["expires_in"] == 24 * 3600

        auth = orchestrator.authenticate(outcome.token)
        assert auth.ok
        assert auth.principal.id == principal.id
        assert auth.session.id == outcome.session.id

    def test_email_is_normalized_between_steps(self, orchestrator, mailer, principal):
        assert orchestrator.login("  ADMIN@Example.com ", PASSWORD).ok
        assert orchestrator.verify_code("Admin@EXAMPLE.com", mailer.last_code).ok

    def test_flow_is_audited(self, orchestrator, mailer, principal):
        _sign_in(orchestrator, mailer, principal)

        actions = [row.action for row in AuditLog.query.order_by(AuditLog.id).all()]
        assert actions == ["LOGIN_PASSWORD_OK", "LOGIN_SUCCESS"]


class TestPasswordStep:
    def test_wrong_password_gives_attempts_remaining(self, orchestrator, principal):
        for remaining in (4, 3, 2, 1):
            outcome = orchestrator.login(principal.email, "wrong-password")
            assert isinstance(outcome.error, AuthenticationError)
            assert outcome.error.code == "INVALID_CREDENTIALS"
            assert outcome.error.details["attempts_remaining"] == remaining

    def test_unknown_email_looks_like_wrong_password(self, orchestrator, principal):
        outcome = orchestrator.login("nobody@example.com", PASSWORD)

        assert outcome.error.code == "INVALID_CREDENTIALS"
        assert outcome.error.details["attempts_remaining"] == 4

    def test_inactive_principal_cannot_log_in(self, orchestrator, app):
        make_principal("gone@example.com", is_active=False)
        assert orchestrator.login("gone@example.com", PASSWORD).error.code == "INVALID_CREDENTIALS"

    def test_principal_without_hash_fails_closed(self, orchestrator, mailer, app):
        make_principal("nohash@example.com", password=None)

        outcome = orchestrator.login("nohash@example.com", "admin123")
        assert outcome.error.code == "INVALID_CREDENTIALS"
        assert mailer.sent == []

    @pytest.mark.parametrize("email,password", [
        ("", PASSWORD),
        ("not-an-email", PASSWORD),
        ("admin@example.com", ""),
        ("admin@example.com", None),
        ("admin@example.com", "x" * 2000),
        ("admin@example.com", "x" * 73),
        ("admin@example.com", "\u00e9" * 37),
    ])
    def test_malformed_input_is_rejected_before_the_store(self, orchestrator, principal, email, password):
        outcome = orchestrator.login(email, password)

        assert isinstance(outcome.error, ValidationError)
        assert orchestrator.lockout.consecutive_failures(principal.id) == 0

    def test_delivery_failure_is_surfaced(self, orchestrator, mailer, principal):
        mailer.fail = True

        outcome = orchestrator.login(principal.email, PASSWORD)
        assert isinstance(outcome.error, DeliveryError)
        assert outcome.error.code == "DELIVERY_FAILED"

    def test_repeated_sign_ins_keep_working(self, orchestrator, mailer, principal, clock):
        for _ in range(5):
            signed_in = _sign_in(orchestrator, mailer, principal)
            assert orchestrator.logout(signed_in.token).ok
            clock.advance(minutes=2)

        assert orchestrator.login(principal.email, PASSWORD).ok
        assert len(mailer.sent) == 6

    def test_overlong_password_does_not_count_as_a_failure(self, orchestrator, principal):
        for _ in range(6):
            outcome = orchestrator.login(principal.email, "x" * 80)
            assert outcome.error.code == "VALIDATION_ERROR"

        assert orchestrator.lockout.failures_remaining(principal.id) == 5
        assert orchestrator.login(principal.email, PASSWORD).ok


class TestLockout:
    def test_five_failures_lock_even_the_correct_password(self, orchestrator, mailer, principal, clock):
        for _ in range(4):
            assert orchestrator.login(principal.email, "wrong").error.code == "INVALID_CREDENTIALS"
            clock.advance(minutes=1)

        fifth = orchestrator.login(principal.email, "wrong")
        assert isinstance(fifth.error, LockedError)
        expected_until = clock.now + timedelta(minutes=15)
        assert fifth.error.details["lockout_until"] == expected_until

        clock.advance(seconds=30)
        sixth = orchestrator.login(principal.email, PASSWORD)
        assert isinstance(sixth.error, LockedError)
        assert sixth.error.code == "ACCOUNT_LOCKED"
        assert sixth.error.details["lockout_until"] == expected_until
        assert sixth.error.details["retry_after_seconds"] == 15 * 60 - 30
        assert mailer.sent == []

    def test_lockout_ends_after_duration(self, orchestrator, mailer, principal, clock):
        for _ in range(5):
            orchestrator.login(principal.email, "wrong")

        clock.advance(minutes=15)
        assert orchestrator.login(principal.email, PASSWORD).ok

    def test_case_variants_share_one_counter(self, orchestrator, principal):
        for variant in ("admin@example.com", "ADMIN@example.com", "Admin@Example.Com ",
                        " admin@EXAMPLE.com", "aDmIn@example.com"):
            outcome = orchestrator.login(variant, "wrong")

        assert isinstance(outcome.error, LockedError)

    def test_unknown_email_locks_like_a_real_account(self, orchestrator, principal, clock):
        for _ in range(5):
            known = orchestrator.login(principal.email, "wrong")
            unknown = orchestrator.login("ghost@example.com", "wrong")

        assert known.error.code == unknown.error.code == "ACCOUNT_LOCKED"
        assert known.error.status == unknown.error.status == 423
        assert known.error.details == unknown.error.details

        clock.advance(minutes=1)
        assert orchestrator.login("ghost@example.com", PASSWORD).error.code == "ACCOUNT_LOCKED"
        assert orchestrator.resend_code("ghost@example.com").error.code == "ACCOUNT_LOCKED"
        assert orchestrator.verify_code("ghost@example.com", "123456").error.code == "ACCOUNT_LOCKED"

        clock.advance(minutes=14)
        assert orchestrator.resend_code("ghost@example.com").error.code == "INVALID_CREDENTIALS"

    def test_wrong_codes_count_towards_lockout(self, orchestrator, mailer, principal):
        assert orchestrator.login(principal.email, PASSWORD).ok
        wrong = "000000" if mailer.last_code != "000000" else "111111"

        for _ in range(4):
            assert isinstance(orchestrator.verify_code(principal.email, wrong).error, InvalidCodeError)

        assert isinstance(orchestrator.verify_code(principal.email, wrong).error, LockedError)
        assert isinstance(orchestrator.verify_code(principal.email, mailer.last_code).error, LockedError)

    def test_successful_login_clears_lockout_and_counter(self, orchestrator, mailer, principal):
        for _ in range(4):
            orchestrator.login(principal.email, "wrong")
        _sign_in(orchestrator, mailer, principal)

        assert orchestrator.lockout.failures_remaining(principal.id) == 5

    def test_admin_release(self, orchestrator, principal, super_admin):
        for _ in range(5):
            orchestrator.login(principal.email, "wrong")

        outcome = orchestrator.release_lockout(principal.id, actor_id=super_admin.id)
        assert outcome.data["released"] == 1
        assert orchestrator.login(principal.email, PASSWORD).ok


class TestCodeStep:
    def test_code_cannot_be_reused(self, orchestrator, mailer, principal):
        orchestrator.login(principal.email, PASSWORD)
        code = mailer.last_code

        assert orchestrator.verify_code(principal.email, code).ok
        outcome = orchestrator.verify_code(principal.email, code)
        assert isinstance(outcome.error, CodeUsedError)
        assert outcome.error.code == "CODE_USED"

    def test_wrong_code(self, orchestrator, mailer, principal):
        orchestrator.login(principal.email, PASSWORD)
        wrong = "000000" if mailer.last_code != "000000" else "111111"

        outcome = orchestrator.verify_code(principal.email, wrong)
        assert outcome.error.code == "INVALID_CODE"
        assert orchestrator.verify_code(principal.email, mailer.last_code).ok

    def test_unknown_email_gets_invalid_code(self, orchestrator, principal):
        assert orchestrator.verify_code("ghost@example.com", "123456").error.code == "INVALID_CODE"

    @pytest.mark.parametrize("code", ["", None, "12345", "1234567", "abcdef"])
    def test_malformed_code(self, orchestrator, principal, code):
        assert isinstance(orchestrator.verify_code(principal.email, code).error, ValidationError)

    def test_expired_code_then_resend_then_cooldown(self, orchestrator, mailer, principal, clock):
        orchestrator.login(principal.email, PASSWORD)
        stale = mailer.last_code

        clock.advance(minutes=6)
        outcome = orchestrator.verify_code(principal.email, stale)
        assert isinstance(outcome.error, ExpiredCodeError)
        assert outcome.error.code == "EXPIRED_CODE"

        resent = orchestrator.resend_code(principal.email)
        assert resent.ok
        assert len(mailer.sent) == 2

        again = orchestrator.resend_code(principal.email)
        assert isinstance(again.error, RateLimitedError)
        assert again.error.code == "RATE_LIMITED"
        assert again.error.details["retry_after_seconds"] == 60

        assert orchestrator.verify_code(principal.email, mailer.last_code).ok

    def test_resend_for_unknown_email(self, orchestrator, mailer, principal):
        assert orchestrator.resend_code("ghost@example.com").error.code == "INVALID_CREDENTIALS"
        assert mailer.sent == []

    def test_resend_delivery_failure(self, orchestrator, mailer, principal, clock):
        orchestrator.login(principal.email, PASSWORD)
        clock.advance(seconds=61)
        mailer.fail = True

        assert orchestrator.resend_code(principal.email).error.code == "DELIVERY_FAILED"


class TestSessions:
    def test_second_device_evicts_first(self, orchestrator, mailer, principal, clock):
        device_a = _sign_in(orchestrator, mailer, principal, user_agent=DEVICE_A)
        clock.advance(minutes=2)
        device_b = _sign_in(orchestrator, mailer, principal, user_agent=DEVICE_B)

        stale = orchestrator.authenticate(device_a.token)
        assert isinstance(stale.error, SessionExpiredError)
        assert stale.error.code == "SESSION_EXPIRED"

        fresh = orchestrator.authenticate(device_b.token)
        assert fresh.ok
        assert fresh.session.device_info == "iPhone"

        active = Session.query.filter_by(principal_id=principal.id, is_active=True).all()
        assert [s.id for s in active] == [device_b.session.id]

    def test_missing_and_invalid_tokens(self, orchestrator):
        assert isinstance(orchestrator.authenticate(None).error, MissingTokenError)
        assert orchestrator.authenticate("").error.code == "NO_TOKEN"

        garbage = orchestrator.authenticate("not.a.token")
        assert isinstance(garbage.error, TokenInvalidError)
        assert garbage.error.code == "SESSION_EXPIRED"

    def test_token_expires_with_session(self, orchestrator, mailer, principal, clock):
        signed_in = _sign_in(orchestrator, mailer, principal)

        clock.advance(hours=24, seconds=1)
        assert orchestrator.authenticate(signed_in.token).error.code == "SESSION_EXPIRED"

    def test_token_for_someone_elses_session_is_rejected(self, orchestrator, mailer, principal):
        signed_in = _sign_in(orchestrator, mailer, principal)
        other = make_principal("other@example.com")
        claims = orchestrator.tokens.verify(signed_in.token)

        forged = orchestrator.tokens.sign(other.id, claims.session_token)
        assert orchestrator.authenticate(forged).error.code == "SESSION_EXPIRED"

    def test_logout(self, orchestrator, mailer, principal):
        signed_in = _sign_in(orchestrator, mailer, principal)

        outcome = orchestrator.logout(signed_in.token)
        assert outcome.ok
        assert outcome.data["ended"] is True
        assert orchestrator.authenticate(signed_in.token).error.code == "SESSION_EXPIRED"

    def test_logout_all(self, orchestrator, mailer, principal):
        signed_in = _sign_in(orchestrator, mailer, principal)

        assert orchestrator.logout_all(principal.id).data["ended_sessions"] == 1
        assert not orchestrator.authenticate(signed_in.token).ok

    def test_deactivated_principal_loses_session(self, orchestrator, mailer, principal):
        signed_in = _sign_in(orchestrator, mailer, principal)
        principal.is_active = False
        db.session.commit()

        assert orchestrator.authenticate(signed_in.token).error.code == "SESSION_EXPIRED"
        assert Session.query.filter_by(principal_id=principal.id, is_active=True).count() == 0

    def test_admin_terminates_sessions(self, orchestrator, mailer, principal, super_admin):
        signed_in = _sign_in(orchestrator, mailer, principal)

        outcome = orchestrator.terminate_principal_sessions(principal.id, actor_id=super_admin.id)
        assert outcome.data["ended_sessions"] == 1
        assert not orchestrator.authenticate(signed_in.token).ok


def test_purge_expired(orchestrator, mailer, principal, clock):
    _sign_in(orchestrator, mailer, principal)
    orchestrator.login(principal.email, "wrong")

    clock.advance(days=40)
    counts = orchestrator.purge_expired(retention_days=30)

    assert counts == {"sessions_expired": 1, "attempts_deleted": 2, "codes_deleted": 1}


def test_roles_are_a_closed_enum(principal, super_admin):
    assert role_allows(super_admin.role, Role.ADMIN)
    assert role_allows(principal.role, Role.ADMIN)
    assert not role_allows(principal.role, Role.SUPER_ADMIN)
    assert not role_allows("OWNER", Role.ADMIN)
