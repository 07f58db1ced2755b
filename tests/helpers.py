from datetime import datetime, timedelta

from models import db
from models.principal import Principal, Role
from security.errors import DeliveryError
from security.password import hash_password

PASSWORD = "Correct-Horse-Battery-9"
DEVICE_A = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"
DEVICE_B = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) Mobile/15E148"


class FakeClock:
    """Naive-UTC clock that only moves when a test tells it to."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 3, 2, 9, 30, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send_verification_code(self, to_email, code, ttl_minutes=5):
        if self.fail:
            raise DeliveryError("SMTP unavailable")
        self.sent.append((to_email, code))

    @property
    def last_code(self):
        return self.sent[-1][1]


def make_principal(email, role=Role.ADMIN, password=PASSWORD, is_active=True):
    principal = Principal(
        email=email,
        role=role,
        is_active=is_active,
        # low cost keeps the suite fast
        password_hash=hash_password(password, rounds=4) if password else None,
    )
    db.session.add(principal)
    db.session.commit()
    return principal
