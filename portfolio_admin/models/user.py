import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from portfolio_admin.core.time import utcnow
from portfolio_admin.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    is_active = Column(Boolean, default=True, nullable=False)

    # secret and backup codes are written at setup, the flag only after confirmation
    two_factor_enabled = Column(Boolean, default=False, nullable=False)
    two_factor_secret = Column(String(64), nullable=True)
    backup_codes = Column(JSON, nullable=True)
    backup_codes_version = Column(Integer, default=0, nullable=False)

    created_at_utc = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at_utc = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
