import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from portfolio_admin.core.time import utcnow
from portfolio_admin.db.base import Base


class TwoFactorSession(Base):
    """A login that passed the password check and is waiting for a second factor."""
    __tablename__ = "two_factor_sessions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # sha256 hex of the pre-2FA token; the token itself embeds the email and has no fixed length
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at_utc = Column(DateTime(timezone=True), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)
