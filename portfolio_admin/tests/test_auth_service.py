from datetime import timedelta

import pyotp
import pytest

from portfolio_admin.core import errors, security
from portfolio_admin.models import TwoFactorSession, User
from portfolio_admin.services import auth_service, two_factor_sessions, users

from .conftest import PASSWORD, make_user


def enable_2fa(db, user):
    setup = auth_service.setup_two_factor(db, user)
    auth_service.confirm_two_factor(db, user, pyotp.TOTP(setup.secret).now())
    return setup


def pending_login(db, user):
    result = auth_service.login(db, user.email, PASSWORD)
    assert result.requires_2fa
    return result.temp_token


# --- login ---

def test_login_without_2fa_issues_full_token(db, user):
    result = auth_service.login(db, "  ADMIN@example.com ", PASSWORD)
    assert not result.requires_2fa
    claims = security.verify_token(result.access_token).claims
    assert claims["sub"] == user.id
    assert not claims.get("temporary")
    assert db.query(TwoFactorSession).count() == 0


def test_unknown_email_and_wrong_password_look_identical(db, user):
    with pytest.raises(errors.InvalidCredentials) as unknown:
        auth_service.login(db, "nobody@example.com", PASSWORD)
    with pytest.raises(errors.InvalidCredentials) as wrong:
        auth_service.login(db, user.email, "nope")
    assert unknown.value.status_code == wrong.value.status_code == 401
    assert unknown.value.detail == wrong.value.detail
    # only the server-side reason differs
    assert unknown.value.reason != wrong.value.reason


def test_deactivated_account_is_distinct(db):
    make_user(db, email="off@example.com", is_active=False)
    with pytest.raises(errors.AccountDeactivated):
        auth_service.login(db, "off@example.com", PASSWORD)


def test_deactivated_account_with_wrong_password_stays_invalid_credentials(db):
    make_user(db, email="off@example.com", is_active=False)
    with pytest.raises(errors.InvalidCredentials):
        auth_service.login(db, "off@example.com", "wrong")


def test_login_with_2fa_returns_only_pending_token(db, user):
    enable_2fa(db, user)
    result = auth_service.login(db, user.email, PASSWORD)
    assert result.requires_2fa
    assert result.access_token is None
    assert security.verify_token(result.temp_token).is_pending
    assert two_factor_sessions.find_active(db, result.temp_token) is not None


# --- setup / confirm / disable ---

def test_setup_stores_secret_but_leaves_2fa_off(db, user):
    setup = auth_service.setup_two_factor(db, user)
    db.refresh(user)
    assert user.two_factor_secret == setup.secret
    assert user.backup_codes == setup.backup_codes
    assert len(setup.backup_codes) == 10
    assert user.two_factor_enabled is False
    assert setup.qr_code.startswith("data:image/png;base64,")


def test_setup_again_overwrites_unconfirmed_secret(db, user):
    first = auth_service.setup_two_factor(db, user)
    second = auth_service.setup_two_factor(db, user)
    db.refresh(user)
    assert user.two_factor_secret == second.secret != first.secret


def test_setup_rejected_when_already_enabled(db, user):
    enable_2fa(db, user)
    with pytest.raises(errors.AlreadyEnabled):
        auth_service.setup_two_factor(db, user)


def test_confirm_requires_setup(db, user):
    with pytest.raises(errors.SetupNotStarted):
        auth_service.confirm_two_factor(db, user, "123456")


def test_confirm_rejects_bad_format_before_anything_else(db, user):
    with pytest.raises(errors.InvalidCodeFormat):
        auth_service.confirm_two_factor(db, user, "12ab")


def test_wrong_confirmation_code_keeps_state_and_allows_retry(db, user):
    setup = auth_service.setup_two_factor(db, user)
    totp = pyotp.TOTP(setup.secret)
    wrong = next(c for c in ("000000", "111111", "222222") if not totp.verify(c, valid_window=2))
    with pytest.raises(errors.InvalidCode):
        auth_service.confirm_two_factor(db, user, wrong)
    db.refresh(user)
    assert user.two_factor_enabled is False
    assert user.two_factor_secret == setup.secret

    auth_service.confirm_two_factor(db, user, totp.now())
    db.refresh(user)
    assert user.two_factor_enabled is True


def test_disable_requires_enabled(db, user):
    with pytest.raises(errors.NotEnabled):
        auth_service.disable_two_factor(db, user)


def test_disable_clears_secret_codes_and_pending_sessions(db, user):
    enable_2fa(db, user)
    temp_token = pending_login(db, user)
    auth_service.disable_two_factor(db, user)

    db.refresh(user)
    assert user.two_factor_enabled is False
    assert user.two_factor_secret is None
    assert user.backup_codes is None
    assert db.query(TwoFactorSession).filter(TwoFactorSession.user_id == user.id).count() == 0
    with pytest.raises(errors.InvalidOrExpiredSession):
        auth_service.verify_second_factor(db, "123456", temp_token)


# --- second factor ---

def test_verify_with_totp_issues_full_token_and_purges_siblings(db, user):
    setup = enable_2fa(db, user)
    stale = pending_login(db, user)
    temp_token = pending_login(db, user)

    result = auth_service.verify_second_factor(db, pyotp.TOTP(setup.secret).now(), temp_token)
    claims = security.verify_token(result.access_token).claims
    assert claims["sub"] == user.id
    assert claims["two_factor_verified"] is True
    assert not claims.get("temporary")
    assert result.remaining_backup_codes is None

    assert two_factor_sessions.find_active(db, temp_token) is None
    assert two_factor_sessions.find_active(db, stale) is None


def test_pending_token_is_single_use(db, user):
    setup = enable_2fa(db, user)
    temp_token = pending_login(db, user)
    code = pyotp.TOTP(setup.secret).now()
    auth_service.verify_second_factor(db, code, temp_token)
    with pytest.raises(errors.InvalidOrExpiredSession):
        auth_service.verify_second_factor(db, code, temp_token)


def test_verify_with_backup_code_consumes_it(db, user):
    setup = enable_2fa(db, user)
    code = setup.backup_codes[0]

    result = auth_service.verify_second_factor(db, code.lower(), pending_login(db, user), use_backup_code=True)
    assert result.remaining_backup_codes == 9
    db.refresh(user)
    assert code not in user.backup_codes

    with pytest.raises(errors.InvalidCode):
        auth_service.verify_second_factor(db, code, pending_login(db, user), use_backup_code=True)


def test_wrong_totp_and_wrong_backup_code_look_identical(db, user):
    setup = enable_2fa(db, user)
    totp = pyotp.TOTP(setup.secret)
    wrong_totp = next(c for c in ("000000", "111111", "222222", "333333") if not totp.verify(c, valid_window=2))
    wrong_backup = next(c for c in ("AAAAAAAA", "BBBBBBBB") if c not in setup.backup_codes)

    with pytest.raises(errors.InvalidCode) as totp_exc:
        auth_service.verify_second_factor(db, wrong_totp, pending_login(db, user))
    with pytest.raises(errors.InvalidCode) as backup_exc:
        auth_service.verify_second_factor(db, wrong_backup, pending_login(db, user), use_backup_code=True)
    assert totp_exc.value.detail == backup_exc.value.detail
    assert totp_exc.value.status_code == backup_exc.value.status_code == 400


@pytest.mark.parametrize(
    "code,use_backup",
    [("12345", False), ("ABCDEFGH", False), ("1234", True), ("ABCD-EFG", True)],
)
def test_malformed_code_is_rejected_before_session_lookup(db, code, use_backup):
    # no user or session exists at all: format is checked first
    with pytest.raises(errors.InvalidCodeFormat):
        auth_service.verify_second_factor(db, code, "whatever", use_backup_code=use_backup)


def test_expired_session_fails_regardless_of_code(db, user):
    setup = enable_2fa(db, user)
    temp_token = pending_login(db, user)
    record = two_factor_sessions.find_active(db, temp_token)
    record.expires_at_utc = record.expires_at_utc - timedelta(minutes=11)
    db.commit()

    with pytest.raises(errors.InvalidOrExpiredSession):
        auth_service.verify_second_factor(db, pyotp.TOTP(setup.secret).now(), temp_token)


def test_expired_pending_token_fails(db, user):
    setup = enable_2fa(db, user)
    expired = security.create_token(
        {"sub": user.id, "email": user.email, "type": security.PENDING_TOKEN, "temporary": True},
        expires_minutes=-1,
    )
    two_factor_sessions.create(db, user.id, expired, timedelta(minutes=10))
    with pytest.raises(errors.InvalidOrExpiredSession) as exc:
        auth_service.verify_second_factor(db, pyotp.TOTP(setup.secret).now(), expired)
    assert "expired" in exc.value.reason


def test_full_token_cannot_stand_in_for_pending_token(db, user):
    setup = enable_2fa(db, user)
    full = security.create_access_token(user.id, user.email)
    two_factor_sessions.create(db, user.id, full, timedelta(minutes=10))
    with pytest.raises(errors.InvalidOrExpiredSession):
        auth_service.verify_second_factor(db, pyotp.TOTP(setup.secret).now(), full)


def test_session_for_user_without_2fa_is_invalid_state(db, user):
    temp_token = security.create_pending_token(user.id, user.email)
    two_factor_sessions.create(db, user.id, temp_token, timedelta(minutes=10))
    with pytest.raises(errors.InvalidState):
        auth_service.verify_second_factor(db, "123456", temp_token)


def test_backup_code_lost_race_fails(db, user):
    setup = enable_2fa(db, user)
    temp_token = pending_login(db, user)
    stale_view = users.get_by_id(db, user.id)
    # another request consumed a code after this one loaded the user
    db.query(User).filter(User.id == user.id).update(
        {User.backup_codes_version: User.backup_codes_version + 1}, synchronize_session=False
    )
    db.commit()
    assert not users.consume_backup_code(db, stale_view, setup.backup_codes[1:])

    db.expire_all()
    result = auth_service.verify_second_factor(db, setup.backup_codes[0], temp_token, use_backup_code=True)
    assert result.remaining_backup_codes == 9


# --- registration ---

def test_register_issues_full_token(db):
    result = auth_service.register(db, "New@Example.com", "Secret123!", "New", "Person")
    assert result.user.email == "new@example.com"
    assert security.verify_token(result.access_token).ok


def test_register_duplicate_email(db, user):
    with pytest.raises(errors.ConflictError):
        auth_service.register(db, user.email.upper(), "Secret123!", "Dup", "User")


def test_register_can_be_disabled(db, monkeypatch):
    from portfolio_admin.core.config import get_settings

    monkeypatch.setenv("REGISTRATION_ENABLED", "false")
    get_settings.cache_clear()
    with pytest.raises(errors.RegistrationDisabled):
        auth_service.register(db, "new@example.com", "Secret123!", "New", "Person")


def test_verify_with_backup_code_lost_race_raises_invalid_code(db, user, monkeypatch):
    setup = enable_2fa(db, user)
    temp_token = pending_login(db, user)
    load_user = users.get_by_id

    def load_then_race(session, user_id):
        loaded = load_user(session, user_id)
        session.query(User).filter(User.id == user_id).update(
            {User.backup_codes_version: User.backup_codes_version + 1}, synchronize_session=False
        )
        session.commit()
        return loaded

    monkeypatch.setattr(users, "get_by_id", load_then_race)
    with pytest.raises(errors.InvalidCode) as exc:
        auth_service.verify_second_factor(db, setup.backup_codes[0], temp_token, use_backup_code=True)
    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid verification code"
    assert "concurrently" in exc.value.reason

    # the session was not consumed, so a retry with a fresh view succeeds
    monkeypatch.setattr(users, "get_by_id", load_user)
    db.expire_all()
    result = auth_service.verify_second_factor(db, setup.backup_codes[0], temp_token, use_backup_code=True)
    assert result.remaining_backup_codes == 9


def test_backup_code_survives_when_session_is_consumed_concurrently(db, user, monkeypatch):
    setup = enable_2fa(db, user)
    temp_token = pending_login(db, user)
    version = db.get(User, user.id).backup_codes_version
    monkeypatch.setattr(two_factor_sessions, "mark_verified", lambda session, session_id, commit=True: False)

    with pytest.raises(errors.InvalidOrExpiredSession):
        auth_service.verify_second_factor(db, setup.backup_codes[0], temp_token, use_backup_code=True)

    db.expire_all()
    stored = db.get(User, user.id)
    assert stored.backup_codes == setup.backup_codes
    assert stored.backup_codes_version == version
