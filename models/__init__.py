from .db import db, utcnow
from .principal import Principal, Role
from .audit_log import AuditLog
from .session import Session
from .login_attempt import LoginAttempt
from .account_lockout import AccountLockout
from .verification_code import VerificationCode
from .ip_rate_limit import IpRateLimit
