from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func

from models import db, utcnow
from models.account_lockout import AccountLockout
from models.login_attempt import LoginAttempt
from utils.logging import get_logger

logger = get_logger(__name__)


class LockoutGuard:
    """
    Progressive lockout keyed on the resolved principal id.

    Failures are counted inside a sliding window and only after the
    principal's last successful attempt. Lockout expiry is evaluated
    lazily in ``check_lockout``; no sweeper is needed.
    """

    def __init__(self, max_failures: int = 5, window_minutes: int = 15,
                 lockout_minutes: int = 15, clock=utcnow):
        self.max_failures = max_failures
        self.window = timedelta(minutes=window_minutes)
        self.lockout = timedelta(minutes=lockout_minutes)
        self.clock = clock

    @classmethod
    def from_config(cls, config, clock=utcnow):
        return cls(
            max_failures=config.get("LOCKOUT_MAX_FAILURES", 5),
            window_minutes=config.get("LOCKOUT_WINDOW_MINUTES", 15),
            lockout_minutes=config.get("LOCKOUT_MINUTES", 15),
            clock=clock,
        )

    def _active_lockout(self, principal_id: int) -> Optional[AccountLockout]:
        return (
            AccountLockout.query
            .filter_by(principal_id=principal_id, is_active=True)
            .order_by(AccountLockout.id.desc())
            .first()
        )

    def check_lockout(self, principal_id: int) -> tuple[bool, Optional[datetime]]:
        """
        Returns (locked, lockout_until)
        """
        row = self._active_lockout(principal_id)
        if not row:
            return False, None

        now = self.clock()
        if row.lockout_until <= now:
            row.is_active = False
            row.released_at = now
            db.session.commit()
            logger.info("lockout_expired", principal_id=principal_id)
            return False, None

        return True, row.lockout_until

    def _email_failures(self, email: str, at: datetime) -> int:
        return LoginAttempt.query.filter(
            LoginAttempt.principal_id.is_(None),
            LoginAttempt.email == email,
            LoginAttempt.success.is_(False),
            LoginAttempt.created_at >= at - self.window,
            LoginAttempt.created_at <= at,
        ).count()

    def check_email_lockout(self, email: str) -> tuple[bool, Optional[datetime]]:
        """
        Lockout for an email that resolves to no principal. There is no
        lockout row; no attempts are recorded while locked, so the newest
        failure is the one that tripped the limit.
        """
        last = (
            LoginAttempt.query
            .filter(
                LoginAttempt.principal_id.is_(None),
                LoginAttempt.email == email,
                LoginAttempt.success.is_(False),
            )
            .order_by(LoginAttempt.created_at.desc(), LoginAttempt.id.desc())
            .first()
        )
        if last is None:
            return False, None

        until = last.created_at + self.lockout
        if until <= self.clock() or self._email_failures(email, last.created_at) < self.max_failures:
            return False, None
        return True, until

    def consecutive_failures(self, principal_id: int) -> int:
        since = self.clock() - self.window
        last_success_id = (
            db.session.query(func.max(LoginAttempt.id))
            .filter(LoginAttempt.principal_id == principal_id, LoginAttempt.success.is_(True))
            .scalar()
        )

        q = LoginAttempt.query.filter(
            LoginAttempt.principal_id == principal_id,
            LoginAttempt.success.is_(False),
            LoginAttempt.created_at >= since,
        )
        if last_success_id is not None:
            q = q.filter(LoginAttempt.id > last_success_id)
        return q.count()

    def failures_remaining(self, principal_id: int) -> int:
        return max(self.max_failures - self.consecutive_failures(principal_id), 0)

    def record_failure(self, principal_id: Optional[int], email: str, stage: str = "password",
                       ip: Optional[str] = None, user_agent: Optional[str] = None) -> tuple[int, Optional[datetime]]:
        """
        Appends a failed attempt. Returns (fail_count, lockout_until) where
        lockout_until is set only when this failure locked the account.
        """
        now = self.clock()
        db.session.add(LoginAttempt(
            principal_id=principal_id,
            email=email,
            stage=stage,
            success=False,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
            created_at=now,
        ))
        db.session.flush()

        if principal_id is None:
            # unknown emails answer exactly like a real account, lockout included
            fail_count = self._email_failures(email, now)
            db.session.commit()
            if fail_count < self.max_failures:
                return fail_count, None
            return fail_count, now + self.lockout

        fail_count = self.consecutive_failures(principal_id)
        if fail_count < self.max_failures:
            db.session.commit()
            return fail_count, None

        until = now + self.lockout
        row = self._active_lockout(principal_id)
        if row:
            # extend in place: one active lockout per principal
            row.lockout_until = max(row.lockout_until, until)
            until = row.lockout_until
        else:
            db.session.add(AccountLockout(
                principal_id=principal_id,
                lockout_until=until,
                is_active=True,
                reason="Multiple failed login attempts",
                created_at=now,
            ))
        db.session.commit()

        logger.warning("account_locked", principal_id=principal_id, fail_count=fail_count,
                       lockout_until=until.isoformat())
        return fail_count, until

    def record_success(self, principal_id: int, email: str, stage: str = "code",
                       ip: Optional[str] = None, user_agent: Optional[str] = None) -> None:
        """
        Appends a successful attempt and clears any active lockout. Older
        failures stay in place and age out of the window.
        """
        now = self.clock()
        db.session.add(LoginAttempt(
            principal_id=principal_id,
            email=email,
            stage=stage,
            success=True,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
            created_at=now,
        ))
        self._deactivate(principal_id, now)
        db.session.commit()

    def release_lockout(self, principal_id: int) -> int:
        count = self._deactivate(principal_id, self.clock())
        db.session.commit()
        if count:
            logger.info("lockout_released", principal_id=principal_id)
        return count

    def _deactivate(self, principal_id: int, now: datetime) -> int:
        return (
            AccountLockout.query
            .filter_by(principal_id=principal_id, is_active=True)
            .update({"is_active": False, "released_at": now}, synchronize_session=False)
        )

    def purge_attempts(self, older_than: datetime) -> int:
        count = (
            LoginAttempt.query
            .filter(LoginAttempt.created_at < older_than)
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return count
