import enum

from models.db import db, utcnow


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


# Higher rank implies every permission of the lower ranks
ROLE_RANK = {
    Role.ADMIN: 1,
    Role.SUPER_ADMIN: 2,
}


def role_allows(role, required) -> bool:
    """True when ``role`` carries at least the privileges of ``required``."""
    try:
        role = Role(role)
        required = Role(required)
    except ValueError:
        return False
    return ROLE_RANK[role] >= ROLE_RANK[required]


class Principal(db.Model):
    __tablename__ = "principals"

    id = db.Column(db.Integer, primary_key=True)

    # always stored normalized (see utils.emails.normalize_email)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    # NULL means the principal can never authenticate with a password
    password_hash = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(120), nullable=True)

    role = db.Column(db.Enum(Role, name="principal_role"), nullable=False, default=Role.ADMIN)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role.value,
            "is_active": self.is_active,
        }
