import enum
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, update

from models import db, utcnow
from models.verification_code import VerificationCode
from utils.logging import get_logger

logger = get_logger(__name__)


class CodeCheck(enum.Enum):
    OK = "OK"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"
    USED = "USED"


def generate_code(length: int = 6) -> str:
    # uniform over 10**length, zero-padded
    return str(secrets.randbelow(10 ** length)).zfill(length)


def hash_code(principal_id: int, code: str) -> str:
    # principal id salts the digest so equal codes do not share a hash
    return hashlib.sha256(f"{principal_id}:{code}".encode("utf-8")).hexdigest()


class VerificationCodeManager:
    """
    Single-use, time-limited numeric codes sent after a correct password.

    Only the newest non-superseded row for a principal is authoritative:
    ``issue`` flags every earlier unused row as superseded in the same
    transaction that inserts the new one.
    """

    def __init__(self, ttl_minutes: int = 5, resend_cooldown_seconds: int = 60,
                 max_issues_per_window: int = 3, issue_window_minutes: int = 10,
                 code_length: int = 6, clock=utcnow):
        self.ttl = timedelta(minutes=ttl_minutes)
        self.cooldown = timedelta(seconds=resend_cooldown_seconds)
        self.max_issues = max_issues_per_window
        self.issue_window = timedelta(minutes=issue_window_minutes)
        self.code_length = code_length
        self.clock = clock

    @classmethod
    def from_config(cls, config, clock=utcnow):
        return cls(
            ttl_minutes=config.get("VERIFICATION_CODE_TTL_MINUTES", 5),
            resend_cooldown_seconds=config.get("VERIFICATION_RESEND_COOLDOWN_SECONDS", 60),
            max_issues_per_window=config.get("VERIFICATION_MAX_ISSUES_PER_WINDOW", 3),
            issue_window_minutes=config.get("VERIFICATION_ISSUE_WINDOW_MINUTES", 10),
            code_length=config.get("VERIFICATION_CODE_LENGTH", 6),
            clock=clock,
        )

    @property
    def ttl_seconds(self) -> int:
        return int(self.ttl.total_seconds())

    def issue(self, principal_id: int, email: str, ip: Optional[str] = None) -> tuple[VerificationCode, str]:
        """
        Returns (row, raw_code). Only the hash is stored; the raw code goes
        to the mailer and nowhere else.
        """
        now = self.clock()
        code = generate_code(self.code_length)

        db.session.execute(
            update(VerificationCode)
            .where(
                VerificationCode.principal_id == principal_id,
                VerificationCode.used.is_(False),
                VerificationCode.superseded.is_(False),
            )
            .values(superseded=True)
        )

        row = VerificationCode(
            principal_id=principal_id,
            email=email,
            code_hash=hash_code(principal_id, code),
            created_at=now,
            expires_at=now + self.ttl,
            used=False,
            superseded=False,
            ip=ip,
        )
        db.session.add(row)
        db.session.commit()

        logger.info("verification_code_issued", principal_id=principal_id, code_id=row.id)
        return row, code

    def latest(self, principal_id: int) -> Optional[VerificationCode]:
        return (
            VerificationCode.query
            .filter_by(principal_id=principal_id, superseded=False)
            .order_by(VerificationCode.created_at.desc(), VerificationCode.id.desc())
            .first()
        )

    def consume(self, code_id: int) -> bool:
        """
        Flip ``used`` with a single conditional UPDATE. Of any number of
        concurrent callers for the same row exactly one sees True.
        """
        result = db.session.execute(
            update(VerificationCode)
            .where(VerificationCode.id == code_id, VerificationCode.used.is_(False))
            .values(used=True, used_at=self.clock())
        )
        db.session.commit()
        return result.rowcount == 1

    def validate(self, principal_id: int, submitted: str) -> CodeCheck:
        row = self.latest(principal_id)
        if row is None:
            return CodeCheck.INVALID
        if row.used:
            return CodeCheck.USED
        if self.clock() > row.expires_at:
            return CodeCheck.EXPIRED
        if not hmac.compare_digest(row.code_hash, hash_code(principal_id, submitted or "")):
            return CodeCheck.INVALID
        if not self.consume(row.id):
            return CodeCheck.USED
        return CodeCheck.OK

    def _issued_since(self, principal_id: int, since: datetime) -> int:
        return (
            db.session.query(func.count(VerificationCode.id))
            .filter(VerificationCode.principal_id == principal_id, VerificationCode.created_at > since)
            .scalar()
        )

    def can_issue(self, principal_id: int) -> tuple[bool, int]:
        """
        Hard limit only: at most ``max_issues`` codes per rolling window.
        Returns (allowed, retry_after_seconds).
        """
        now = self.clock()
        since = now - self.issue_window
        if self._issued_since(principal_id, since) < self.max_issues:
            return True, 0

        oldest = (
            db.session.query(func.min(VerificationCode.created_at))
            .filter(VerificationCode.principal_id == principal_id, VerificationCode.created_at > since)
            .scalar()
        )
        retry_after = int((oldest + self.issue_window - now).total_seconds())
        return False, max(retry_after, 1)

    def can_resend(self, principal_id: int) -> tuple[bool, int]:
        """
        Cooldown since the newest code, then the hard window limit.
        Returns (allowed, retry_after_seconds).
        """
        now = self.clock()
        newest = (
            db.session.query(func.max(VerificationCode.created_at))
            .filter(VerificationCode.principal_id == principal_id)
            .scalar()
        )
        if newest is not None and now < newest + self.cooldown:
            retry_after = int((newest + self.cooldown - now).total_seconds())
            return False, max(retry_after, 1)

        return self.can_issue(principal_id)

    def purge(self, older_than: datetime) -> int:
        count = (
            VerificationCode.query
            .filter(VerificationCode.expires_at < older_than)
            .delete(synchronize_session=False)
        )
        db.session.commit()
        return count
