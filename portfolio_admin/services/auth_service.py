import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List

from sqlalchemy.orm import Session

from portfolio_admin.core import mfa, security
from portfolio_admin.core.config import get_settings
from portfolio_admin.core.errors import (
    AccountDeactivated,
    AlreadyEnabled,
    InternalError,
    InvalidCode,
    InvalidCodeFormat,
    InvalidCredentials,
    InvalidOrExpiredSession,
    InvalidState,
    NotEnabled,
    RegistrationDisabled,
    SetupNotStarted,
)
from portfolio_admin.models import User
from portfolio_admin.services import two_factor_sessions, users

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    user: User
    access_token: str | None = None
    temp_token: str | None = None

    @property
    def requires_2fa(self) -> bool:
        return self.temp_token is not None


@dataclass
class SecondFactorResult:
    user: User
    access_token: str
    remaining_backup_codes: int | None = None


@dataclass
class TwoFactorSetup:
    secret: str
    otpauth_url: str
    qr_code: str
    backup_codes: List[str]


def login(db: Session, email: str, password: str) -> LoginResult:
    user = users.get_by_email(db, email)
    if not user:
        raise InvalidCredentials(reason=f"unknown email {users.normalize_email(email)}")
    if not security.verify_password(password, user.password_hash):
        raise InvalidCredentials(reason=f"wrong password for user {user.id}")
    if not user.is_active:
        raise AccountDeactivated(reason=f"login attempt on deactivated user {user.id}")

    if not user.two_factor_enabled:
        logger.info(f"User {user.id} signed in")
        return LoginResult(user=user, access_token=security.create_access_token(user.id, user.email))

    if not user.two_factor_secret:
        # flag without a secret should be impossible; refuse rather than let the password alone through
        logger.error(f"User {user.id} has 2FA enabled but no secret stored")
        raise InternalError(reason=f"user {user.id} has two_factor_enabled without a secret")

    settings = get_settings()
    two_factor_sessions.purge_expired(db)
    temp_token = security.create_pending_token(user.id, user.email)
    two_factor_sessions.create(
        db,
        user_id=user.id,
        token=temp_token,
        ttl=timedelta(minutes=settings.two_factor_session_minutes),
    )
    logger.info(f"User {user.id} passed password check, awaiting second factor")
    return LoginResult(user=user, temp_token=temp_token)


def register(db: Session, email: str, password: str, first_name: str, last_name: str) -> LoginResult:
    if not get_settings().registration_enabled:
        raise RegistrationDisabled(reason=f"registration attempt for {users.normalize_email(email)}")
    user = users.create_user(db, email, password, first_name, last_name)
    logger.info(f"Registered user {user.id}")
    return LoginResult(user=user, access_token=security.create_access_token(user.id, user.email))


def _check_code_format(code: str, use_backup_code: bool) -> None:
    if use_backup_code:
        if not mfa.is_valid_backup_code_format(code):
            raise InvalidCodeFormat("Invalid backup code format")
    elif not mfa.is_valid_totp_format(code):
        raise InvalidCodeFormat("Invalid code format")


def verify_second_factor(db: Session, code: str, temp_token: str, use_backup_code: bool = False) -> SecondFactorResult:
    _check_code_format(code, use_backup_code)

    verification = security.verify_token(temp_token)
    if not verification.ok:
        raise InvalidOrExpiredSession(reason=f"pre-2FA token {verification.status.value}: {verification.error}")
    if not verification.is_pending:
        raise InvalidOrExpiredSession(reason="full session token presented as pre-2FA token")

    session = two_factor_sessions.find_active(db, temp_token)
    if not session:
        raise InvalidOrExpiredSession(reason="no active two-factor session for token")
    if session.user_id != verification.claims.get("sub"):
        raise InvalidOrExpiredSession(reason=f"token subject does not own session {session.id}")

    user = users.get_by_id(db, session.user_id)
    if not user or not user.two_factor_enabled or not user.is_active:
        raise InvalidState(reason=f"session {session.id} for user without active 2FA")

    remaining = None
    if use_backup_code:
        if not mfa.verify_backup_code(code, user.backup_codes):
            raise InvalidCode(reason=f"wrong backup code for user {user.id}")
        remaining = mfa.consume_backup_code(code, user.backup_codes)
    elif not mfa.verify_code(code, user.two_factor_secret):
        raise InvalidCode(reason=f"wrong TOTP code for user {user.id}")

    # code consumption and session consumption commit together or not at all
    if remaining is not None and not users.consume_backup_code(db, user, remaining, commit=False):
        db.rollback()
        raise InvalidCode(reason=f"backup code for user {user.id} consumed concurrently")
    if not two_factor_sessions.mark_verified(db, session.id, commit=False):
        db.rollback()
        raise InvalidOrExpiredSession(reason=f"session {session.id} verified concurrently")
    db.commit()

    access_token = security.create_access_token(user.id, user.email, two_factor_verified=True)
    two_factor_sessions.delete_all_for_user(db, user.id, except_id=session.id)

    logger.info(f"User {user.id} completed second factor ({'backup code' if use_backup_code else 'TOTP'})")
    return SecondFactorResult(
        user=user,
        access_token=access_token,
        remaining_backup_codes=len(remaining) if remaining is not None else None,
    )


def setup_two_factor(db: Session, user: User) -> TwoFactorSetup:
    if user.two_factor_enabled:
        raise AlreadyEnabled(reason=f"setup requested by user {user.id} with 2FA already on")

    settings = get_settings()
    enrollment = mfa.generate_secret(user.email)
    try:
        qr_code = mfa.enrollment_data_uri(enrollment.otpauth_url)
    except mfa.EncodingError as exc:
        raise InternalError("Failed to setup 2FA", reason=str(exc)) from exc
    backup_codes = mfa.generate_backup_codes(settings.backup_code_count)

    users.store_two_factor_setup(db, user, enrollment.secret, backup_codes)
    logger.info(f"Stored unconfirmed 2FA secret for user {user.id}")
    return TwoFactorSetup(
        secret=enrollment.secret,
        otpauth_url=enrollment.otpauth_url,
        qr_code=qr_code,
        backup_codes=backup_codes,
    )


def confirm_two_factor(db: Session, user: User, code: str) -> User:
    if not mfa.is_valid_totp_format(code):
        raise InvalidCodeFormat("Invalid verification code format")
    if not user.two_factor_secret:
        raise SetupNotStarted(reason=f"confirm requested by user {user.id} before setup")
    if not mfa.verify_code(code, user.two_factor_secret):
        raise InvalidCode(reason=f"wrong confirmation code for user {user.id}")

    users.enable_two_factor(db, user)
    logger.info(f"2FA enabled for user {user.id}")
    return user


def disable_two_factor(db: Session, user: User) -> None:
    if not user.two_factor_enabled:
        raise NotEnabled(reason=f"disable requested by user {user.id} with 2FA off")

    users.disable_two_factor(db, user)
    purged = two_factor_sessions.delete_all_for_user(db, user.id)
    logger.info(f"2FA disabled for user {user.id}; purged {purged} pending sessions")
