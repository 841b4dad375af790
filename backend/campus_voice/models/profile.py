from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.sql import func

from campus_voice.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # same id as the identity provider's user
    role = Column(String(16), nullable=False)  # student, admin
    display_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Account(Base):
    """Local credentials, used only by the sql identity provider."""
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    jti = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
