import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy import update

from models import db, utcnow
from models.session import Session
from utils.logging import get_logger

logger = get_logger(__name__)


def _hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_session_token() -> str:
    # 256 bits from the OS CSPRNG; unrelated to principal id or time
    return secrets.token_urlsafe(32)


class SessionManager:
    """
    Server-side sessions with at most one active session per principal.

    ``create_session`` always deactivates first and inserts second, inside
    one transaction. Two logins racing from different devices end with the
    later writer's session active.
    """

    def __init__(self, ttl_hours: int = 24, idle_timeout_minutes: int = 0, clock=utcnow):
        self.ttl = timedelta(hours=ttl_hours)
        self.idle_timeout = timedelta(minutes=idle_timeout_minutes) if idle_timeout_minutes else None
        self.clock = clock

    @classmethod
    def from_config(cls, config, clock=utcnow):
        return cls(
            ttl_hours=config.get("SESSION_TTL_HOURS", 24),
            idle_timeout_minutes=config.get("SESSION_IDLE_TIMEOUT_MINUTES", 0),
            clock=clock,
        )

    def _evict(self, principal_id: int, reason: str) -> int:
        result = db.session.execute(
            update(Session)
            .where(Session.principal_id == principal_id, Session.is_active.is_(True))
            .values(is_active=False, ended_at=self.clock(), end_reason=reason)
        )
        return result.rowcount

    def create_session(self, principal_id: int, device_info: Optional[str] = None,
                       ip: Optional[str] = None, user_agent: Optional[str] = None) -> tuple[Session, str]:
        """
        Evicts every active session of the principal, then creates a new one.
        Returns (session_row, raw_token). Only the token hash is stored.
        """
        now = self.clock()

        evicted = self._evict(principal_id, "evicted")
        db.session.flush()

        raw_token = generate_session_token()
        row = Session(
            principal_id=principal_id,
            token_hash=_hash_token(raw_token),
            device_info=device_info,
            ip=ip,
            user_agent=(user_agent or "")[:255] or None,
            is_active=True,
            created_at=now,
            expires_at=now + self.ttl,
            last_activity_at=now,
        )
        db.session.add(row)
        db.session.commit()

        logger.info("session_created", principal_id=principal_id, session_id=row.id, evicted=evicted)
        return row, raw_token

    def validate_session(self, raw_token: str) -> Optional[Session]:
        if not raw_token:
            return None

        sess = Session.query.filter_by(token_hash=_hash_token(raw_token), is_active=True).first()
        if not sess:
            return None

        now = self.clock()
        expired = sess.expires_at <= now
        if not expired and self.idle_timeout is not None:
            last_seen = sess.last_activity_at or sess.created_at
            expired = last_seen + self.idle_timeout <= now

        if expired:
            sess.is_active = False
            sess.ended_at = now
            sess.end_reason = "expired"
            db.session.commit()
            return None

        # Update activity timestamp (touch)
        sess.last_activity_at = now
        db.session.commit()
        return sess

    def terminate_session(self, raw_token: str) -> bool:
        if not raw_token:
            return False
        result = db.session.execute(
            update(Session)
            .where(Session.token_hash == _hash_token(raw_token), Session.is_active.is_(True))
            .values(is_active=False, ended_at=self.clock(), end_reason="logout")
        )
        db.session.commit()
        return result.rowcount > 0

    def terminate_all_sessions(self, principal_id: int, reason: str = "logout_all") -> int:
        count = self._evict(principal_id, reason)
        db.session.commit()
        return count

    def active_session(self, principal_id: int) -> Optional[Session]:
        return (
            Session.query
            .filter(
                Session.principal_id == principal_id,
                Session.is_active.is_(True),
                Session.expires_at > self.clock(),
            )
            .order_by(Session.created_at.desc())
            .first()
        )

    def cleanup_expired(self) -> int:
        now = self.clock()
        result = db.session.execute(
            update(Session)
            .where(Session.is_active.is_(True), Session.expires_at <= now)
            .values(is_active=False, ended_at=now, end_reason="expired")
        )
        db.session.commit()
        return result.rowcount
