import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


class Config:
    # Signing secret for bearer tokens. No default: create_app refuses to start without it.
    AUTH_SIGNING_SECRET = os.getenv("AUTH_SIGNING_SECRET")

    # SQLite database file stored next to the app as authcore.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "authcore.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Cookie carrying the signed bearer token
    AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "admin_session_token")
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv("SESSION_COOKIE_SAMESITE", "Strict")
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", "true")
    # Also return the token in the /auth/verify body (non-browser clients)
    AUTH_TOKEN_IN_BODY = _env_bool("AUTH_TOKEN_IN_BODY", "false")

    # Sessions
    SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
    SESSION_IDLE_TIMEOUT_MINUTES = int(os.getenv("SESSION_IDLE_TIMEOUT_MINUTES", "0"))  # 0 = off
    TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))

    # Progressive lockout
    LOCKOUT_MAX_FAILURES = int(os.getenv("LOCKOUT_MAX_FAILURES", "5"))
    LOCKOUT_WINDOW_MINUTES = int(os.getenv("LOCKOUT_WINDOW_MINUTES", "15"))
    LOCKOUT_MINUTES = int(os.getenv("LOCKOUT_MINUTES", "15"))

    # Email verification codes
    VERIFICATION_CODE_LENGTH = 6
    VERIFICATION_CODE_TTL_MINUTES = int(os.getenv("VERIFICATION_CODE_TTL_MINUTES", "5"))
    VERIFICATION_RESEND_COOLDOWN_SECONDS = int(os.getenv("VERIFICATION_RESEND_COOLDOWN_SECONDS", "60"))
    VERIFICATION_MAX_ISSUES_PER_WINDOW = int(os.getenv("VERIFICATION_MAX_ISSUES_PER_WINDOW", "3"))
    VERIFICATION_ISSUE_WINDOW_MINUTES = int(os.getenv("VERIFICATION_ISSUE_WINDOW_MINUTES", "10"))

    # Simple IP rate limit for the password endpoint
    LOGIN_RATE_WINDOW_SECONDS = int(os.getenv("LOGIN_RATE_WINDOW_SECONDS", "60"))
    LOGIN_RATE_MAX_REQUESTS = int(os.getenv("LOGIN_RATE_MAX_REQUESTS", "15"))

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")
    SMTP_TIMEOUT_SECONDS = int(os.getenv("SMTP_TIMEOUT_SECONDS", "10"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", "true")

    # Basic app settings
    DEBUG = False
