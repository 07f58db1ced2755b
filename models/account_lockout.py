from models.db import db, utcnow


class AccountLockout(db.Model):
    __tablename__ = "account_lockouts"

    id = db.Column(db.Integer, primary_key=True)
    principal_id = db.Column(db.Integer, db.ForeignKey("principals.id"), nullable=False, index=True)

    lockout_until = db.Column(db.DateTime, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    reason = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    released_at = db.Column(db.DateTime, nullable=True)
