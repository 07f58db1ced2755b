from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    # Naive UTC, matching how DateTime columns are stored
    return datetime.now(timezone.utc).replace(tzinfo=None)
