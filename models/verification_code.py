from models.db import db, utcnow


class VerificationCode(db.Model):
    __tablename__ = "verification_codes"

    id = db.Column(db.Integer, primary_key=True)
    principal_id = db.Column(db.Integer, db.ForeignKey("principals.id"), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=False)

    # sha256 of "<principal_id>:<code>"; the raw code is never stored
    code_hash = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)

    # used flips false -> true once; superseded is set when a newer code is issued
    used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    superseded = db.Column(db.Boolean, default=False, nullable=False)

    ip = db.Column(db.String(64), nullable=True)
