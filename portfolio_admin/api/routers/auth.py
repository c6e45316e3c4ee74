from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from portfolio_admin.api.deps import get_current_user
from portfolio_admin.db.session import get_db
from portfolio_admin.models import User
from portfolio_admin.schemas.auth import (
    EnableTwoFactorRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    SetupTwoFactorResponse,
    TwoFactorChallengeResponse,
    UserOut,
    VerifyTwoFactorRequest,
    VerifyTwoFactorResponse,
)
from portfolio_admin.services import auth_service


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    response.headers["Pragma"] = "no-cache"


router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(no_store)])


@router.post("/login", response_model=SessionResponse | TwoFactorChallengeResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """
    Password login.
    Returns a session token directly, or a temp token to round-trip to
    /verify-2fa when the account has two-factor enabled.
    """
    result = auth_service.login(db, body.email, body.password)
    if result.requires_2fa:
        return TwoFactorChallengeResponse(temp_token=result.temp_token)
    return SessionResponse(access_token=result.access_token, user=UserOut.model_validate(result.user))


@router.post("/verify-2fa", response_model=VerifyTwoFactorResponse, response_model_exclude_none=True)
def verify_2fa(body: VerifyTwoFactorRequest, db: Session = Depends(get_db)):
    result = auth_service.verify_second_factor(db, body.code, body.temp_token, body.use_backup_code)
    return VerifyTwoFactorResponse(
        token=result.access_token,
        remaining_backup_codes=result.remaining_backup_codes,
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    result = auth_service.register(db, body.email, body.password, body.first_name, body.last_name)
    return SessionResponse(access_token=result.access_token, user=UserOut.model_validate(result.user))


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return MeResponse(user=UserOut.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
def logout():
    # tokens are stateless; the client drops its copy
    return MessageResponse(message="Logout successful")


@router.post("/setup-2fa", response_model=SetupTwoFactorResponse)
def setup_2fa(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    setup = auth_service.setup_two_factor(db, user)
    return SetupTwoFactorResponse(
        qr_code=setup.qr_code,
        secret=setup.secret,
        backup_codes=setup.backup_codes,
    )


@router.post("/enable-2fa", response_model=MessageResponse)
def enable_2fa(body: EnableTwoFactorRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    auth_service.confirm_two_factor(db, user, body.token)
    return MessageResponse(message="Two-Factor Authentication has been enabled successfully")


@router.post("/disable-2fa", response_model=MessageResponse)
def disable_2fa(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    auth_service.disable_two_factor(db, user)
    return MessageResponse(message="Two-Factor Authentication has been disabled")
