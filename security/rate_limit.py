from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from models import db, utcnow
from models.ip_rate_limit import IpRateLimit
from utils.audit import client_ip


def check_and_increment_login_rate(ip=None, now=None) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    Fixed window per IP, in front of the per-principal lockout.
    """
    ip = ip or client_ip() or "unknown"
    now = now or utcnow()

    window_seconds = current_app.config.get("LOGIN_RATE_WINDOW_SECONDS", 60)
    max_requests = current_app.config.get("LOGIN_RATE_MAX_REQUESTS", 15)

    row = IpRateLimit.query.filter_by(ip=ip).first()
    if not row:
        row = IpRateLimit(ip=ip, window_start=now, count=0)
        db.session.add(row)
        try:
            db.session.flush()
        except IntegrityError:
            # another request created the row first
            db.session.rollback()
            row = IpRateLimit.query.filter_by(ip=ip).first()

    window_end = row.window_start + timedelta(seconds=window_seconds)

    # Reset window if expired
    if now >= window_end:
        row.window_start = now
        row.count = 0
        window_end = row.window_start + timedelta(seconds=window_seconds)

    row.count += 1
    db.session.commit()

    if row.count > max_requests:
        retry_after = int((window_end - now).total_seconds())
        return False, max(retry_after, 1)

    return True, 0
