"""Credential store: lookups and the few writes the auth flows need on ``users``."""
import logging
from typing import List

from sqlalchemy.orm import Session

from portfolio_admin.core import security
from portfolio_admin.core.errors import ConflictError
from portfolio_admin.core.time import utcnow
from portfolio_admin.models import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def get_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def create_user(
    db: Session,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    is_active: bool = True,
) -> User:
    email = normalize_email(email)
    if get_by_email(db, email):
        raise ConflictError("User already exists", reason=f"duplicate registration for {email}")

    user = User(
        email=email,
        password_hash=security.hash_password(password),
        first_name=first_name,
        last_name=last_name,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def store_two_factor_setup(db: Session, user: User, secret: str, backup_codes: List[str]) -> User:
    """Persist fresh secret material; the enabled flag is left untouched."""
    if user.two_factor_secret:
        # a previous unconfirmed setup is overwritten
        logger.info(f"Replacing unconfirmed 2FA secret for user {user.id}")
    user.two_factor_secret = secret
    user.backup_codes = list(backup_codes)
    user.backup_codes_version = (user.backup_codes_version or 0) + 1
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def enable_two_factor(db: Session, user: User) -> User:
    user.two_factor_enabled = True
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def disable_two_factor(db: Session, user: User) -> None:
    """Clear the flag, secret and backup codes in a single UPDATE."""
    db.query(User).filter(User.id == user.id).update(
        {
            User.two_factor_enabled: False,
            User.two_factor_secret: None,
            User.backup_codes: None,
            User.backup_codes_version: User.backup_codes_version + 1,
            User.updated_at_utc: utcnow(),
        },
        synchronize_session=False,
    )
    db.commit()
    db.refresh(user)


def consume_backup_code(db: Session, user: User, remaining: List[str], commit: bool = True) -> bool:
    """Write ``remaining`` only if no one else touched the codes since ``user`` was loaded.

    Returns False when a concurrent request consumed a code (or disabled 2FA) first.
    With ``commit=False`` the caller owns the transaction and must commit or roll back.
    """
    expected_version = user.backup_codes_version or 0
    updated = db.query(User).filter(
        User.id == user.id,
        User.backup_codes_version == expected_version,
    ).update(
        {
            User.backup_codes: list(remaining),
            User.backup_codes_version: expected_version + 1,
            User.updated_at_utc: utcnow(),
        },
        synchronize_session=False,
    )
    if not commit:
        return updated == 1
    db.commit()
    if updated != 1:
        return False
    db.refresh(user)
    return True
