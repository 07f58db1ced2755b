import pytest

from app import create_app
from config import Config
from helpers import FakeClock, FakeMailer, make_principal
from models import db
from models.principal import Role


class TestConfig(Config):
    TESTING = True
    AUTH_SIGNING_SECRET = "test-signing-secret-for-automation-only-0123456789"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SESSION_COOKIE_SECURE = False
    LOGIN_RATE_MAX_REQUESTS = 1000
    LOG_LEVEL = "WARNING"
    LOG_JSON = False


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def app(clock, mailer):
    app = create_app(TestConfig, mailer=mailer, clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def orchestrator(app):
    return app.extensions["auth_orchestrator"]


@pytest.fixture
def principal(app):
    return make_principal("admin@example.com")


@pytest.fixture
def super_admin(app):
    return make_principal("root@example.com", role=Role.SUPER_ADMIN)
