from models.db import db, utcnow


class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)

    # NULL when the email did not resolve to a principal; such rows never lock anything
    principal_id = db.Column(db.Integer, db.ForeignKey("principals.id"), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=False, index=True)

    stage = db.Column(db.String(16), nullable=False, default="password")  # password | code
    success = db.Column(db.Boolean, nullable=False, default=False)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
