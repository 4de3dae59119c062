"""ORM model for accounts (credentials, verification and reset state)."""

from sqlalchemy import Boolean, Column, DateTime, Integer, String, false, func

from app.models.base import Base


class User(Base):
    """
    Account used for JWT authentication and role-based access control.

    role: 'admin' or 'user'. Verification and reset tokens are nullable and
    always written together with their expiry.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="user", server_default="user")
    email_verified = Column(Boolean, nullable=False, default=False, server_default=false())
    verification_token = Column(String(128), nullable=True, index=True)
    verification_token_expires = Column(DateTime(timezone=True), nullable=True)
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
