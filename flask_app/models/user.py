# flask_app/models/user.py

from flask import current_app
from flask_login import UserMixin
from sqlalchemy import Enum, func
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from .base import BaseModel, db
from .enums import UserRole


class User(BaseModel, UserMixin):
    """Volunteer portal account, uniquely identified by email"""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    profile_photo_url = db.Column(db.String(500), nullable=True)
    role = db.Column(
        Enum(UserRole, name="user_role_enum"),
        default=UserRole.VOLUNTEER,
        nullable=False,
        index=True,
    )
    password_hash = db.Column(db.String(255), nullable=True)  # null for passkey-only accounts
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<User {self.email}>"

    @property
    def is_admin(self):
        return self.role == UserRole.ADMIN

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    @staticmethod
    def find_by_email(email):
        """Find user by email (case-insensitive) with error handling"""
        try:
            return User.query.filter(func.lower(User.email) == email.strip().lower()).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error finding user by email {email}: {str(e)}")
            return None


class Passkey(BaseModel):
    """WebAuthn credential registered to an account"""

    __tablename__ = "passkeys"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    credential_id = db.Column(db.String(255), unique=True, nullable=False)
    public_key = db.Column(db.LargeBinary, nullable=False)
    counter = db.Column(db.Integer, default=0, nullable=False)
    device_name = db.Column(db.String(100), nullable=True)
    last_used_at = db.Column(db.DateTime, nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<Passkey user={self.user_id} device={self.device_name}>"
